import time
import uuid
from typing import List, Optional

from access_control import AccessControlManager, AccessLevel, Scheduler, require
from backend import RedisBackend
from codec import decode
from constants import DEFAULT_TITLE, MERGE_MAX_RETRIES
from errors import InvalidOperation, NotFound
from logging_config import get_logger
from merge_engine import MergeEngine, RoomChange, check_deadline, deadline_for, merge_field
from schemas.entities import WRITE_SCOPE, ChatEntry, Room, Task, UserInfo, UserType

logger = get_logger(__name__)

CHATS = "chats"
TASKS = "tasks"


def generate_room_id() -> str:
    return uuid.uuid4().hex


def generate_entry_id() -> str:
    return uuid.uuid4().hex[:12]


class RoomLifecycleManager:
    """Create, read, rename and delete rooms, plus the chat and task collections.

    Methods that take an `actor` check that actor's access against the same
    record the change is computed from. Without an actor the caller is
    trusted to have authorized the request.
    """

    def __init__(self, backend: RedisBackend, max_retries: int = MERGE_MAX_RETRIES):
        self.backend = backend
        self.engine = MergeEngine(backend, max_retries=max_retries)
        self.access = AccessControlManager(backend, self.engine)

    # Rooms

    def create(self, creator_id: str, email: str, title: Optional[str] = None) -> Room:
        if not email:
            raise InvalidOperation("A creator email is required")
        room_id = generate_room_id()
        metadata = {"creatorId": creator_id, "email": email, "title": title or DEFAULT_TITLE}
        room = self.backend.create_room(
            room_id,
            metadata=metadata,
            users_accesses={email: [WRITE_SCOPE]},
            default_accesses=[],
        )
        logger.info(f"Room {room_id} created by {email}")
        self.engine.invalidate(room_id)
        return room

    def read(self, room_id: str, requester: str) -> Room:
        room = self.backend.get_room(room_id)
        require(room, requester, AccessLevel.READ)
        return room

    def list_rooms(self, identity: str) -> List[Room]:
        return self.backend.list_rooms(identity)

    def rename(
        self,
        room_id: str,
        title: str,
        actor: Optional[UserInfo] = None,
        timeout: Optional[float] = None,
    ) -> Room:
        title = (title or "").strip()
        if not title:
            raise InvalidOperation("Title cannot be empty")

        def transform(room: Room) -> RoomChange:
            if actor is not None:
                require(room, actor.email, AccessLevel.WRITE)
            return RoomChange(metadata=merge_field(room, "title", title))

        room = self.engine.mutate(room_id, transform, timeout=timeout)
        logger.info(f"Room {room_id} renamed to {title!r}")
        return room

    def delete(self, room_id: str, actor: Optional[UserInfo] = None, timeout: Optional[float] = None) -> None:
        deadline = deadline_for(timeout)
        if actor is not None:
            require(self.backend.get_room(room_id), actor.email, AccessLevel.OWNER)
        check_deadline(deadline, room_id)
        self.backend.delete_room(room_id)
        logger.info(f"Room {room_id} deleted")
        self.engine.invalidate(room_id)

    # Sharing

    def share(
        self,
        room_id: str,
        email: str,
        user_type: UserType,
        actor: UserInfo,
        schedule: Optional[Scheduler] = None,
        timeout: Optional[float] = None,
    ) -> Room:
        return self.access.grant(room_id, email, user_type, actor, enforce=True, schedule=schedule, timeout=timeout)

    def remove_collaborator(
        self,
        room_id: str,
        email: str,
        actor: Optional[UserInfo] = None,
        timeout: Optional[float] = None,
    ) -> Room:
        return self.access.revoke(room_id, email, actor=actor, timeout=timeout)

    # Collections

    def read_collection(self, room_id: str, name: str, entity_type, requester: Optional[str]):
        room = self.backend.get_room(room_id)
        if requester is not None:
            require(room, requester, AccessLevel.READ)
        return room, decode(room.metadata.to_record().get(name), entity_type)

    def _update_collection(self, room_id: str, name: str, entity_type, fn, actor, timeout):
        guard = None
        if actor is not None:
            guard = lambda room: require(room, actor.email, AccessLevel.WRITE)
        return self.engine.update_collection(room_id, name, entity_type, fn, guard=guard, timeout=timeout)

    def _replace_collection(self, room_id: str, name: str, entries, actor, expected_version, timeout):
        if actor is not None:
            require(self.backend.get_room(room_id), actor.email, AccessLevel.WRITE)
        return self.engine.replace_collection(
            room_id, name, entries, expected_version=expected_version, timeout=timeout
        )

    def get_chats(self, room_id: str, requester: Optional[str] = None) -> List[ChatEntry]:
        return self.read_collection(room_id, CHATS, ChatEntry, requester)[1]

    def append_chat(
        self,
        room_id: str,
        text: str,
        actor: UserInfo,
        timeout: Optional[float] = None,
    ) -> ChatEntry:
        if not text or not text.strip():
            raise InvalidOperation("Message text cannot be empty")
        entry_id = generate_entry_id()
        author = actor.display_name
        appended = {}

        def append(chats: List[ChatEntry]) -> List[ChatEntry]:
            # never earlier than this author's latest message, whatever the clock says
            latest = max((c.timestamp for c in chats if c.author == author), default=None)
            timestamp = int(time.time() * 1000)
            if latest is not None and timestamp <= latest:
                timestamp = latest + 1
            appended["entry"] = ChatEntry(id=entry_id, author=author, text=text, timestamp=timestamp)
            return chats + [appended["entry"]]

        self._update_collection(room_id, CHATS, ChatEntry, append, actor, timeout)
        entry = appended["entry"]
        logger.debug(f"Chat message {entry.id} appended to room {room_id}")
        return entry

    def replace_chats(
        self,
        room_id: str,
        chats: List[ChatEntry],
        actor: Optional[UserInfo] = None,
        expected_version: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Room:
        return self._replace_collection(room_id, CHATS, chats, actor, expected_version, timeout)

    def get_tasks(self, room_id: str, requester: Optional[str] = None) -> List[Task]:
        return self.read_collection(room_id, TASKS, Task, requester)[1]

    def add_task(
        self,
        room_id: str,
        task: Task,
        actor: Optional[UserInfo] = None,
        timeout: Optional[float] = None,
    ) -> Task:
        task = task.model_copy(update={"id": task.id or generate_entry_id(), "completed": False})

        def append(tasks: List[Task]) -> List[Task]:
            if any(t.id == task.id for t in tasks):
                raise InvalidOperation(f"Task {task.id} already exists")
            return tasks + [task]

        self._update_collection(room_id, TASKS, Task, append, actor, timeout)
        logger.debug(f"Task {task.id} added to room {room_id}")
        return task

    def toggle_task(
        self,
        room_id: str,
        task_id: str,
        actor: Optional[UserInfo] = None,
        timeout: Optional[float] = None,
    ) -> Task:
        def toggle(tasks: List[Task]) -> List[Task]:
            if not any(t.id == task_id for t in tasks):
                raise NotFound(f"Task {task_id} not found in room {room_id}")
            return [t.model_copy(update={"completed": not t.completed}) if t.id == task_id else t for t in tasks]

        _, tasks = self._update_collection(room_id, TASKS, Task, toggle, actor, timeout)
        return next(t for t in tasks if t.id == task_id)

    def delete_task(
        self,
        room_id: str,
        task_id: str,
        actor: Optional[UserInfo] = None,
        timeout: Optional[float] = None,
    ) -> None:
        def remove(tasks: List[Task]) -> List[Task]:
            remaining = [t for t in tasks if t.id != task_id]
            if len(remaining) == len(tasks):
                raise NotFound(f"Task {task_id} not found in room {room_id}")
            return remaining

        self._update_collection(room_id, TASKS, Task, remove, actor, timeout)
        logger.debug(f"Task {task_id} deleted from room {room_id}")

    def replace_tasks(
        self,
        room_id: str,
        tasks: List[Task],
        actor: Optional[UserInfo] = None,
        expected_version: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Room:
        return self._replace_collection(room_id, TASKS, tasks, actor, expected_version, timeout)
