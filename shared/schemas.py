"""Shared data models for ChitChat.

Embedded documents are built from these models and dumped by alias, so
every stored sub-document carries its own `_id`.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from bson import ObjectId


def new_id() -> str:
    """Hex ObjectId string used for every document and sub-document."""
    return str(ObjectId())


def is_valid_id(value: Optional[str]) -> bool:
    return bool(value) and ObjectId.is_valid(value)


class Document(BaseModel):
    """Base for stored documents with an `_id`."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def to_doc(self) -> dict:
        return self.model_dump(by_alias=True)


class Identity(BaseModel):
    """Denormalized snapshot of a user, copied into other documents."""
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image: Optional[str] = None

    @classmethod
    def of(cls, user: dict) -> "Identity":
        return cls(
            email=user["email"],
            first_name=user.get("first_name"),
            last_name=user.get("last_name"),
            profile_image=user.get("profile_image"),
        )


class User(Document):
    """A registered account."""
    email: str
    first_name: str
    last_name: str
    password_hash: str
    otp_hash: Optional[str] = None
    otp_expire: Optional[datetime] = None
    is_verified: bool = False
    profile_image: Optional[str] = None
    cover_image: Optional[str] = None
    posts: list[dict] = Field(default_factory=list)
    friends: list[dict] = Field(default_factory=list)
    friend_requests: list[dict] = Field(default_factory=list)
    notifications: list[dict] = Field(default_factory=list)
    followers: list[dict] = Field(default_factory=list)
    following: list[dict] = Field(default_factory=list)


class Post(Document, Identity):
    """A post, stored embedded in its owner and in the flat collection."""
    title: str
    post_text: Optional[str] = None
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    liked: list[dict] = Field(default_factory=list)
    comments: list[dict] = Field(default_factory=list)


class FriendRequest(Document, Identity):
    """A pending request, embedded in the receiver; identity is the sender."""


class Friend(Document, Identity):
    """One side of a symmetric friend edge; identity is the counterpart."""
    chats: list[dict] = Field(default_factory=list)


class Notification(Document, Identity):
    """Identity is the actor; subject_id points at a post or request."""
    action: str
    subject_id: Optional[str] = None
    title: Optional[str] = None
    read: bool = False


class Like(Document):
    """A like on a post."""
    post_id: str
    post_owner_email: str
    liked_by_email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image: Optional[str] = None


class Comment(Document, Identity):
    """A comment on a post; identity is the commenter."""
    comment_text: str


class Follow(Document):
    """A follow edge, stored on both the follower and the followee."""
    follower_email: str
    followee_email: str


class ChatMessage(Document):
    """A chat message, duplicated into both sides of a friend edge."""
    friend_id: str
    sender_email: str
    receiver_email: str
    text: str


# Request bodies. Fields are optional so handlers can report missing input
# with their own messages.

class SignupRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class OtpVerifyRequest(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class MediaUploadRequest(BaseModel):
    email: Optional[str] = None
    media: Optional[str] = None  # base64 data URL


class PostCreate(BaseModel):
    email: Optional[str] = None
    title: Optional[str] = None
    post_text: Optional[str] = None
    media: Optional[str] = None  # base64 data URL


class PostDisplayRequest(BaseModel):
    email: Optional[str] = None
    post_id: Optional[str] = None
    notif_id: Optional[str] = None


class LikeRequest(BaseModel):
    poster_email: Optional[str] = None
    liker_email: Optional[str] = None
    post_id: Optional[str] = None


class CommentCreate(BaseModel):
    post_email: Optional[str] = None
    post_id: Optional[str] = None
    commenter_email: Optional[str] = None
    comment_text: Optional[str] = None


class NotificationClearRequest(BaseModel):
    email: Optional[str] = None
    notif_id: Optional[str] = None


class FriendRequestCreate(BaseModel):
    adder_email: Optional[str] = None
    receiver_email: Optional[str] = None


class FriendRequestAccept(BaseModel):
    user_email: Optional[str] = None    # the user accepting
    friend_email: Optional[str] = None  # the user who sent the request


class UnfriendRequest(BaseModel):
    user_email: Optional[str] = None
    receiver_email: Optional[str] = None


class FollowRequest(BaseModel):
    user_email: Optional[str] = None
    follow_email: Optional[str] = None


class ChatUserRequest(BaseModel):
    user_email: Optional[str] = None
    chat_email: Optional[str] = None


class MessageCreate(BaseModel):
    sender_email: Optional[str] = None
    receiver_email: Optional[str] = None
    text: Optional[str] = None


class ChatHistoryRequest(BaseModel):
    user_email: Optional[str] = None
    friend_id: Optional[str] = None
    limit: int = 50
