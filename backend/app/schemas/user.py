from pydantic import EmailStr, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.schemas.base import CamelModel

class UserCreate(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)

class UserLogin(CamelModel):
    email: EmailStr
    password: str

class UserPublic(CamelModel):
    id: int
    username: str
    avatar: str = ""
    is_online: bool = False
    last_seen: Optional[datetime] = None

class UserMe(UserPublic):
    email: str
    settings: Dict[str, Any] = {}
    created_at: datetime

class UserProfile(UserPublic):
    status: str = "offline"
    is_friend: bool = False
    created_at: datetime

class AuthResponse(CamelModel):
    token: str
    user: UserMe

class ProfileUpdate(CamelModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    avatar: Optional[str] = None

class SettingsUpdate(CamelModel):
    settings: Dict[str, Any]

class UserSearchResponse(CamelModel):
    users: List[UserPublic]
    count: int

class FriendRequestOut(CamelModel):
    id: int
    sender: UserPublic = Field(..., alias="from")
    status: str
    created_at: datetime

class FriendListResponse(CamelModel):
    friends: List[UserPublic]
    count: int

class FriendRequestListResponse(CamelModel):
    requests: List[FriendRequestOut]
