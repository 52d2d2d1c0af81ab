from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional

from schemas.entities import ChatEntry, Room, Task, TaskPriority, UserType


class CreateRoomRequest(BaseModel):
    title: Optional[str] = None

class RenameRoomRequest(BaseModel):
    title: str

class ShareRoomRequest(BaseModel):
    email: str
    user_type: UserType = UserType.viewer

class RoomResponse(BaseModel):
    id: str
    title: str
    creator_id: Optional[str]
    email: Optional[str]
    users_accesses: Dict[str, List[str]]
    default_accesses: List[str]
    version: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    access_level: Optional[str] = None

    @classmethod
    def from_room(cls, room: Room, access_level: Optional[str] = None) -> "RoomResponse":
        return cls(
            id=room.id,
            title=room.metadata.title,
            creator_id=room.metadata.creator_id,
            email=room.metadata.email,
            users_accesses=room.users_accesses,
            default_accesses=room.default_accesses,
            version=room.version,
            created_at=room.created_at,
            updated_at=room.updated_at,
            access_level=access_level,
        )

class SendChatRequest(BaseModel):
    text: str

class ReplaceChatsRequest(BaseModel):
    chats: List[ChatEntry]
    expected_version: Optional[int] = None

class ChatsResponse(BaseModel):
    room_id: str
    version: int
    chats: List[ChatEntry]

class CreateTaskRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.medium
    due_date: str = Field(default="", alias="dueDate")
    assignee: str = ""

class ReplaceTasksRequest(BaseModel):
    tasks: List[Task]
    expected_version: Optional[int] = None

class TasksResponse(BaseModel):
    room_id: str
    version: int
    tasks: List[Task]
