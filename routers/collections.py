from fastapi import APIRouter, Depends

from dependencies import get_current_user, get_lifecycle, get_timeout
from logging_config import get_logger
from room_lifecycle import CHATS, TASKS, RoomLifecycleManager, generate_entry_id
from schemas.entities import ChatEntry, Task, UserInfo
from schemas.rooms import (
    ChatsResponse,
    CreateTaskRequest,
    ReplaceChatsRequest,
    ReplaceTasksRequest,
    SendChatRequest,
    TasksResponse,
)

logger = get_logger(__name__)

collections_router = APIRouter(prefix="/rooms/{room_id}", tags=["collections"])


@collections_router.get("/chats", response_model=ChatsResponse)
def get_chats(
    room_id: str,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
):
    room, chats = rooms.read_collection(room_id, CHATS, ChatEntry, user.email)
    return ChatsResponse(room_id=room_id, version=room.version, chats=chats)


@collections_router.post("/chats", status_code=201, response_model=ChatEntry)
def send_chat(
    room_id: str,
    body: SendChatRequest,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
    timeout: float = Depends(get_timeout),
):
    logger.debug(f"Chat message for room {room_id} from {user.email}")
    return rooms.append_chat(room_id, body.text, user, timeout=timeout)


@collections_router.put("/chats", response_model=ChatsResponse)
def replace_chats(
    room_id: str,
    body: ReplaceChatsRequest,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
    timeout: float = Depends(get_timeout),
):
    # Clients always send the entire collection, never a delta
    room = rooms.replace_chats(
        room_id, body.chats, actor=user, expected_version=body.expected_version, timeout=timeout
    )
    return ChatsResponse(room_id=room_id, version=room.version, chats=body.chats)


@collections_router.get("/tasks", response_model=TasksResponse)
def get_tasks(
    room_id: str,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
):
    room, tasks = rooms.read_collection(room_id, TASKS, Task, user.email)
    return TasksResponse(room_id=room_id, version=room.version, tasks=tasks)


@collections_router.post("/tasks", status_code=201, response_model=Task)
def add_task(
    room_id: str,
    body: CreateTaskRequest,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
    timeout: float = Depends(get_timeout),
):
    task = Task(id=generate_entry_id(), **body.model_dump())
    logger.debug(f"Adding task {task.id} to room {room_id} for {user.email}")
    return rooms.add_task(room_id, task, actor=user, timeout=timeout)


@collections_router.put("/tasks", response_model=TasksResponse)
def replace_tasks(
    room_id: str,
    body: ReplaceTasksRequest,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
    timeout: float = Depends(get_timeout),
):
    room = rooms.replace_tasks(
        room_id, body.tasks, actor=user, expected_version=body.expected_version, timeout=timeout
    )
    return TasksResponse(room_id=room_id, version=room.version, tasks=body.tasks)


@collections_router.post("/tasks/{task_id}/toggle", response_model=Task)
def toggle_task(
    room_id: str,
    task_id: str,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
    timeout: float = Depends(get_timeout),
):
    return rooms.toggle_task(room_id, task_id, actor=user, timeout=timeout)


@collections_router.delete("/tasks/{task_id}", status_code=204)
def delete_task(
    room_id: str,
    task_id: str,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
    timeout: float = Depends(get_timeout),
):
    rooms.delete_task(room_id, task_id, actor=user, timeout=timeout)
