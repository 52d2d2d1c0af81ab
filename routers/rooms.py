from fastapi import APIRouter, BackgroundTasks, Depends
from typing import List

from access_control import access_level
from dependencies import get_current_user, get_lifecycle, get_timeout
from logging_config import get_logger
from room_lifecycle import RoomLifecycleManager
from schemas.entities import Notification, UserInfo
from schemas.rooms import CreateRoomRequest, RenameRoomRequest, RoomResponse, ShareRoomRequest

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])
notifications_router = APIRouter(prefix="/notifications", tags=["notifications"])


@rooms_router.post("/", status_code=201, response_model=RoomResponse)
def create_room(
    body: CreateRoomRequest,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
):
    logger.info(f"Room creation request from {user.email}, title: {body.title}")
    room = rooms.create(user.id or user.email, user.email, title=body.title)
    return RoomResponse.from_room(room, access_level(room, user.email).name)


@rooms_router.get("/", response_model=List[RoomResponse])
def list_rooms(
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
):
    found = rooms.list_rooms(user.email)
    logger.debug(f"Listing {len(found)} rooms for {user.email}")
    return [RoomResponse.from_room(room, access_level(room, user.email).name) for room in found]


@rooms_router.get("/{room_id}", response_model=RoomResponse)
def get_room(
    room_id: str,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
):
    """
    Get a room the caller has access to.

    Returns 404 if the room does not exist (or was deleted) and 403 if the
    caller has neither an explicit grant nor a default scope on it.
    """
    room = rooms.read(room_id, user.email)
    return RoomResponse.from_room(room, access_level(room, user.email).name)


@rooms_router.patch("/{room_id}", response_model=RoomResponse)
def rename_room(
    room_id: str,
    body: RenameRoomRequest,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
    timeout: float = Depends(get_timeout),
):
    logger.info(f"Rename request for room {room_id} from {user.email}")
    room = rooms.rename(room_id, body.title, actor=user, timeout=timeout)
    return RoomResponse.from_room(room, access_level(room, user.email).name)


@rooms_router.delete("/{room_id}", status_code=204)
def delete_room(
    room_id: str,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
    timeout: float = Depends(get_timeout),
):
    logger.info(f"Delete request for room {room_id} from {user.email}")
    rooms.delete(room_id, actor=user, timeout=timeout)


@rooms_router.put("/{room_id}/access", response_model=RoomResponse)
def share_room(
    room_id: str,
    body: ShareRoomRequest,
    background_tasks: BackgroundTasks,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
    timeout: float = Depends(get_timeout),
):
    logger.info(f"Share request for room {room_id}: {body.email} as {body.user_type.value} by {user.email}")
    # notification goes out after the response, once the grant is durable
    room = rooms.share(room_id, body.email, body.user_type, user, schedule=background_tasks.add_task, timeout=timeout)
    return RoomResponse.from_room(room, access_level(room, user.email).name)


@rooms_router.delete("/{room_id}/access/{email}", response_model=RoomResponse)
def remove_collaborator(
    room_id: str,
    email: str,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
    timeout: float = Depends(get_timeout),
):
    logger.info(f"Remove collaborator {email} from room {room_id} by {user.email}")
    room = rooms.remove_collaborator(room_id, email, actor=user, timeout=timeout)
    return RoomResponse.from_room(room, access_level(room, user.email).name)


@notifications_router.get("/", response_model=List[Notification])
def list_notifications(
    limit: int = 50,
    user: UserInfo = Depends(get_current_user),
    rooms: RoomLifecycleManager = Depends(get_lifecycle),
):
    return rooms.backend.get_notifications(user.email, limit=limit)
