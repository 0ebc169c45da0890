# schemas.py
from datetime import datetime
from typing import ClassVar, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_serializer


class ViewerAwareModel(BaseModel):
    """Drops per-viewer flags from the output when no viewer was known."""

    viewer_flags: ClassVar[Tuple[str, ...]] = ()

    @model_serializer(mode="wrap")
    def drop_unset_viewer_flags(self, handler):
        data = handler(self)
        for name in self.viewer_flags:
            if data.get(name) is None:
                data.pop(name, None)
        return data


def _clean_username(value):
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("Username cannot be blank")
    return value


# --- User Schemas ---
class UserBase(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    display_name: Optional[str] = None
    bio: Optional[str] = None
    profile_picture: Optional[str] = None
    website: Optional[str] = None

    @field_validator("username")
    @classmethod
    def username_not_blank(cls, value):
        return _clean_username(value)


class UserCreate(UserBase):
    password: str = Field(..., min_length=1)


class UserUpdate(BaseModel):
    # password is deliberately absent: it cannot be changed through a profile update
    username: Optional[str] = Field(None, min_length=1, max_length=64)
    display_name: Optional[str] = None
    bio: Optional[str] = None
    profile_picture: Optional[str] = None
    website: Optional[str] = None

    @field_validator("username")
    @classmethod
    def username_not_blank(cls, value):
        return _clean_username(value)


class User(UserBase):
    id: int


class UserWithStats(User, ViewerAwareModel):
    viewer_flags: ClassVar[Tuple[str, ...]] = ("is_following",)

    video_count: int
    follower_count: int
    following_count: int
    is_following: Optional[bool] = None


# --- Video Schemas ---
class Video(BaseModel):
    id: int
    user_id: int
    video_url: str
    thumbnail_url: Optional[str] = None
    caption: Optional[str] = None
    tags: List[str] = []
    created_at: datetime
    views: int = 0
    duration: int

    @field_validator("tags", mode="before")
    @classmethod
    def null_tags_as_empty(cls, value):
        return value or []


class VideoWithUser(Video, ViewerAwareModel):
    viewer_flags: ClassVar[Tuple[str, ...]] = ("is_liked",)

    user: User
    like_count: int
    comment_count: int
    is_liked: Optional[bool] = None


# --- Like / Follow Schemas ---
class Like(BaseModel):
    id: int
    user_id: int
    video_id: int
    created_at: datetime


class LikeResult(BaseModel):
    message: str
    like_count: int


class Follow(BaseModel):
    id: int
    follower_id: int
    followed_id: int
    created_at: datetime


# --- Comment Schemas ---
class CommentCreate(BaseModel):
    content: str


class Comment(BaseModel):
    id: int
    user_id: int
    video_id: int
    content: str
    created_at: datetime


class CommentWithUser(Comment):
    user: User
    # comments cannot be liked; kept so clients can render a counter
    like_count: int = 0


# --- Auth Schemas ---
class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResult(BaseModel):
    user: User
    access_token: str
    token_type: str = "bearer"


class Message(BaseModel):
    message: str
