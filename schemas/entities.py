from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from constants import DEFAULT_TITLE

# A collection as it sits in the metadata record: a list of encoded entries,
# a single encoded entry, or nothing at all. Anything else is read as one
# undecodable entry.
RawCollection = Any

WRITE_SCOPE = "room:write"
READ_SCOPE = "room:read"
PRESENCE_WRITE_SCOPE = "room:presence:write"


class UserType(str, Enum):
    creator = "creator"
    editor = "editor"
    viewer = "viewer"


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class RoomMetadata(BaseModel):
    """Typed view of the shared metadata record.

    Named fields are validated when a record crosses the store boundary.
    Unknown fields are kept as extras so a write never drops a field some
    other feature owns.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    creator_id: Optional[str] = Field(default=None, alias="creatorId")
    email: Optional[str] = None
    title: str = DEFAULT_TITLE
    chats: RawCollection = None
    tasks: RawCollection = None

    def to_record(self) -> Dict[str, Any]:
        # only fields present in the record; None-valued fields stay None
        return self.model_dump(by_alias=True, exclude_unset=True)


class Room(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    metadata: RoomMetadata
    users_accesses: Dict[str, List[str]] = Field(default_factory=dict, alias="usersAccesses")
    default_accesses: List[str] = Field(default_factory=list, alias="defaultAccesses")
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def owner(self) -> Optional[str]:
        return self.metadata.email


class ChatEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    # older entries were written with "user"
    author: str = Field(validation_alias=AliasChoices("author", "user"))
    text: str
    timestamp: int


class Task(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.medium
    due_date: str = Field(default="", alias="dueDate")
    assignee: str = ""
    completed: bool = False


class AccessGrant(BaseModel):
    """One change to a room's usersAccesses. scopes=None means revocation."""

    room_id: str
    email: str
    scopes: Optional[List[str]] = None
    user_type: Optional[UserType] = None
    granted_by: Optional[str] = None


class Notification(BaseModel):
    recipient: str
    kind: str
    room_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class UserInfo(BaseModel):
    """Identity of the acting user as supplied by the auth layer."""

    email: str
    id: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email
