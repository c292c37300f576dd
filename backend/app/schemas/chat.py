from pydantic import Field, field_validator
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from app.schemas.base import CamelModel
from app.schemas.user import UserPublic

# client-sendable types; "system" is server-generated only
MessageType = Literal["text", "image", "file", "call", "location", "contact"]

# --- Messages ---

class FileData(CamelModel):
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    url: Optional[str] = None

class ReadReceipt(CamelModel):
    user_id: int
    read_at: datetime

class Reaction(CamelModel):
    user_id: int
    emoji: str
    reacted_at: datetime

class ReplyPreview(CamelModel):
    id: int
    sender: UserPublic
    content: str
    message_type: str

class MessageOut(CamelModel):
    id: int
    chat_id: int
    sender: UserPublic
    content: str  # always plaintext on the wire
    message_type: str
    encrypted: bool
    file_data: Optional[FileData] = None
    call_data: Optional[Dict[str, Any]] = None
    reply_to: Optional[ReplyPreview] = None
    read_by: List[ReadReceipt] = []
    reactions: List[Reaction] = []
    edited_at: Optional[datetime] = None
    created_at: datetime

class MessageCreate(CamelModel):
    content: str
    message_type: MessageType = "text"
    reply_to: Optional[int] = None
    file_data: Optional[FileData] = None
    call_data: Optional[Dict[str, Any]] = None

class MessageUpdate(CamelModel):
    content: str

class ReactionCreate(CamelModel):
    emoji: str = Field(..., min_length=1, max_length=32)

class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int
    has_more: bool

class MessagePage(CamelModel):
    messages: List[MessageOut]
    pagination: Pagination

class MessageResponse(CamelModel):
    message: MessageOut

class MarkReadResponse(CamelModel):
    marked_count: int

class MessageSearchResponse(CamelModel):
    messages: List[MessageOut]
    count: int
    query: str

# --- Chats ---

class ChatOut(CamelModel):
    id: int
    name: str
    is_group: bool
    participants: List[UserPublic]
    admin: Optional[UserPublic] = None
    last_message: Optional[MessageOut] = None
    group_avatar: str = ""
    created_at: datetime
    updated_at: datetime

class ChatCreate(CamelModel):
    participant_ids: List[int]
    is_group: bool = False
    name: str = ""

class ChatCreateResponse(CamelModel):
    chat: ChatOut
    is_existing: bool = False

class ChatListResponse(CamelModel):
    chats: List[ChatOut]
    count: int

# --- Groups ---

class GroupMembersAdd(CamelModel):
    user_ids: List[int]

    @field_validator("user_ids")
    @classmethod
    def not_empty(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("User IDs array is required")
        return v

class GroupInfoUpdate(CamelModel):
    name: Optional[str] = None
    group_avatar: Optional[str] = None

class GroupMembersAddResponse(CamelModel):
    chat: ChatOut
    added_members: List[UserPublic]

class GroupMemberRemoveResponse(CamelModel):
    removed_user: UserPublic

class GroupInfoUpdateResponse(CamelModel):
    chat: ChatOut
    changes: List[str]

class LeaveGroupResponse(CamelModel):
    group_deleted: bool
    new_admin_id: Optional[int] = None

# --- Search ---

class ChatSearchResponse(CamelModel):
    chats: List[ChatOut]
    count: int
    query: str

class GlobalSearchCounts(CamelModel):
    users: int
    chats: int
    messages: int
    total: int

class GlobalSearchResponse(CamelModel):
    users: List[UserPublic]
    chats: List[ChatOut]
    messages: List[MessageOut]
    counts: GlobalSearchCounts
    query: str
