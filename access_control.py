from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

from backend import RedisBackend
from errors import Forbidden, InvalidOperation
from logging_config import get_logger
from merge_engine import MergeEngine
from schemas.entities import (
    PRESENCE_WRITE_SCOPE,
    READ_SCOPE,
    WRITE_SCOPE,
    AccessGrant,
    Room,
    UserInfo,
    UserType,
)

logger = get_logger(__name__)

DOCUMENT_ACCESS_KIND = "$documentAccess"

# Scheduler for work that must run after the response, e.g. BackgroundTasks.add_task
Scheduler = Callable[..., Any]


class AccessLevel(IntEnum):
    NO_ACCESS = 0
    READ = 1
    WRITE = 2
    OWNER = 3


USER_TYPE_SCOPES: Dict[UserType, List[str]] = {
    UserType.creator: [WRITE_SCOPE],
    UserType.editor: [WRITE_SCOPE],
    UserType.viewer: [READ_SCOPE, PRESENCE_WRITE_SCOPE],
}


def get_access_type(user_type: UserType) -> List[str]:
    return list(USER_TYPE_SCOPES.get(user_type, USER_TYPE_SCOPES[UserType.viewer]))


def check_access(room: Room, identity: str) -> List[str]:
    """Explicit scopes for `identity`, else the room's default scopes."""
    if identity in room.users_accesses:
        return list(room.users_accesses[identity])
    return list(room.default_accesses)


def access_level(room: Room, identity: str) -> AccessLevel:
    if identity and identity == room.owner:
        return AccessLevel.OWNER
    scopes = check_access(room, identity)
    if WRITE_SCOPE in scopes:
        return AccessLevel.WRITE
    if READ_SCOPE in scopes:
        return AccessLevel.READ
    return AccessLevel.NO_ACCESS


def require(room: Room, identity: str, level: AccessLevel) -> AccessLevel:
    actual = access_level(room, identity)
    if actual < level:
        logger.warning(f"{identity} has {actual.name} on room {room.id}, {level.name} required")
        raise Forbidden(f"You do not have {level.name.lower()} access to room {room.id}")
    return actual


class AccessControlManager:
    """Grants, revocations and access checks for rooms.

    Checks always read the record fresh from the store, so a grant or
    revocation applies to the very next request.
    """

    def __init__(self, backend: RedisBackend, engine: MergeEngine):
        self.backend = backend
        self.engine = engine

    def check_access(self, room_id: str, identity: str) -> List[str]:
        return check_access(self.backend.get_room(room_id), identity)

    def level(self, room_id: str, identity: str) -> AccessLevel:
        return access_level(self.backend.get_room(room_id), identity)

    def authorize(self, room_id: str, identity: str, level: AccessLevel = AccessLevel.READ) -> Room:
        room = self.backend.get_room(room_id)
        require(room, identity, level)
        return room

    def grant(
        self,
        room_id: str,
        email: str,
        user_type: UserType,
        grantor: UserInfo,
        enforce: bool = True,
        schedule: Optional[Scheduler] = None,
        timeout: Optional[float] = None,
    ) -> Room:
        """Give `email` the scopes for `user_type`, then notify them.

        With `enforce` the grantor must hold write access on the record the
        grant is computed from.
        """
        email = (email or "").strip()
        if not email:
            raise InvalidOperation("An email is required to share a room")
        scopes = get_access_type(user_type)

        def apply(room: Room, accesses: Dict[str, List[str]]):
            if enforce:
                require(room, grantor.email, AccessLevel.WRITE)
            if email == room.owner:
                raise InvalidOperation("The owner's access cannot be changed")
            accesses[email] = scopes
            return accesses

        room = self.engine.update_accesses(room_id, apply, timeout=timeout)
        logger.info(f"Granted {scopes} on room {room_id} to {email} by {grantor.email}")

        grant = AccessGrant(room_id=room_id, email=email, scopes=scopes, user_type=user_type, granted_by=grantor.email)
        if schedule is not None:
            schedule(self.send_grant_notification, grant, grantor)
        else:
            self.send_grant_notification(grant, grantor)
        return room

    def revoke(
        self,
        room_id: str,
        email: str,
        actor: Optional[UserInfo] = None,
        timeout: Optional[float] = None,
    ) -> Room:
        def apply(room: Room, accesses: Dict[str, List[str]]):
            if actor is not None:
                require(room, actor.email, AccessLevel.WRITE)
            if email == room.owner:
                logger.warning(f"Refused to remove owner {email} from room {room_id}")
                raise InvalidOperation("You cannot remove yourself from the document")
            if email not in accesses:
                return None
            accesses[email] = None
            return accesses

        room = self.engine.update_accesses(room_id, apply, timeout=timeout)
        logger.info(f"Revoked access on room {room_id} for {email}")
        return room

    def send_grant_notification(self, grant: AccessGrant, grantor: UserInfo) -> bool:
        """Best-effort delivery. The grant is already durable whatever happens here."""
        user_type = grant.user_type.value if grant.user_type else "viewer"
        payload = {
            "userType": user_type,
            "title": f"You have been granted {user_type} access to the document by {grantor.display_name}",
            "updatedBy": grantor.display_name,
            "avatar": grantor.avatar,
            "email": grantor.email,
            "roomId": grant.room_id,
        }
        try:
            self.backend.notify(grant.email, DOCUMENT_ACCESS_KIND, payload, room_id=grant.room_id)
            return True
        except Exception as e:
            logger.error(f"Failed to notify {grant.email} about access to room {grant.room_id}: {e}", exc_info=True)
            return False
