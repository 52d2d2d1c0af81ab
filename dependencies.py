from typing import Optional

from fastapi import Header, HTTPException, Query

from backend import get_backend
from constants import OPERATION_TIMEOUT_SECONDS
from room_lifecycle import RoomLifecycleManager
from schemas.entities import UserInfo

_lifecycle: Optional[RoomLifecycleManager] = None


def get_lifecycle() -> RoomLifecycleManager:
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = RoomLifecycleManager(get_backend())
    return _lifecycle


def get_current_user(
    x_user_email: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_avatar: Optional[str] = Header(None),
) -> UserInfo:
    # Identity is asserted by the auth proxy in front of this service
    if not x_user_email or not x_user_email.strip():
        raise HTTPException(status_code=401, detail="Missing user identity")
    return UserInfo(email=x_user_email.strip(), id=x_user_id, name=x_user_name, avatar=x_user_avatar)


def get_timeout(
    timeout: Optional[float] = Query(None, gt=0, description="Seconds before the operation gives up without writing"),
) -> float:
    return timeout if timeout is not None else OPERATION_TIMEOUT_SECONDS
