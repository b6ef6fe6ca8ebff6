"""
API request and response models for msgboard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in board/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.

Wire format is camelCase (userId, textColor, appealType) to match the
browser client. Python attribute names stay snake_case; the alias generator
handles the translation in both directions.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import User
from board.models import Appeal, Message, Reply
from board.uploads import StoredImage


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _RequestModel(_WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(_RequestModel):
    """Request body for POST /api/register. Every field is required."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)
    gender: str = Field(min_length=1, max_length=30)
    age: str = Field(min_length=1, max_length=10)

    @field_validator("age", mode="before")
    @classmethod
    def age_as_text(cls, value):
        """Accept 22 as well as "22"; the account stores age as text."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class LoginRequest(_RequestModel):
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class MessageCreate(_RequestModel):
    """Request body for POST /api/messages.

    images are file references previously returned by POST /api/public/upload,
    kept in the order given. The multipart form builds this same model once
    its inline files are stored.
    """

    name: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1, max_length=5000)
    text_color: str = Field(default="#000", max_length=32)
    images: list[str] = Field(default_factory=list, max_length=10)


class MessagePatch(_RequestModel):
    """Request body for PUT /api/messages/{id}. Omitted fields are left unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    message: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    text_color: Optional[str] = Field(default=None, max_length=32)


class ReplyCreate(_RequestModel):
    reply: str = Field(min_length=1, max_length=2000)


class AppealCreate(_RequestModel):
    appeal_type: str = Field(min_length=1, max_length=100)
    report: str = Field(min_length=1, max_length=1000)
    content: str = Field(min_length=1, max_length=5000)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


class StatusMessage(BaseModel):
    message: str


class UserResponse(_WireModel):
    """A user account as returned by registration. Never includes the password hash."""

    id: int
    username: str
    role: str
    gender: str
    age: str
    avatar: str
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            role=user.role,
            gender=user.gender,
            age=user.age,
            avatar=user.avatar,
            created_at=user.created_at or "",
        )


class LoginResponse(_WireModel):
    token: str
    user_id: int
    avatar: str
    gender: str


class CurrentUserResponse(_WireModel):
    user_id: int
    role: str


class AuthorInfo(_WireModel):
    """Display fields joined onto messages, replies and appeals."""

    id: int
    username: str
    avatar: str
    gender: str

    @classmethod
    def from_user(cls, user: Optional[User]) -> Optional["AuthorInfo"]:
        if user is None:
            return None
        return cls(id=user.id, username=user.username, avatar=user.avatar, gender=user.gender)


class MessageResponse(_WireModel):
    """A message as stored. replies holds reply ids in creation order."""

    id: int
    user_id: int
    name: str
    message: str
    text_color: str
    images: list[str]
    likes: int
    replies: list[int]
    created_at: str

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            user_id=message.author_id,
            name=message.name,
            message=message.text,
            text_color=message.text_color,
            images=message.images,
            likes=message.likes,
            replies=message.reply_ids,
            created_at=message.created_at,
        )


class ReplyResponse(_WireModel):
    id: int
    message_id: int
    user_id: int
    reply: str
    created_at: str
    user: Optional[AuthorInfo] = None

    @classmethod
    def from_reply(cls, reply: Reply, author: Optional[User] = None) -> "ReplyResponse":
        return cls(
            id=reply.id,
            message_id=reply.message_id,
            user_id=reply.author_id,
            reply=reply.text,
            created_at=reply.created_at,
            user=AuthorInfo.from_user(author),
        )


class MessageListItem(_WireModel):
    """One message in GET /api/messages with author and replies populated.

    user is None when the author account no longer exists. replies follows
    the message's reply list order.
    """

    id: int
    user_id: int
    user: Optional[AuthorInfo]
    name: str
    message: str
    text_color: str
    images: list[str]
    likes: int
    replies: list[ReplyResponse]
    created_at: str


class AppealResponse(_WireModel):
    id: int
    user_id: int
    appeal_type: str
    report: str
    content: str
    created_at: str
    user: Optional[AuthorInfo] = None

    @classmethod
    def from_appeal(cls, appeal: Appeal, reporter: Optional[User] = None) -> "AppealResponse":
        return cls(
            id=appeal.id,
            user_id=appeal.reporter_id,
            appeal_type=appeal.appeal_type,
            report=appeal.report,
            content=appeal.content,
            created_at=appeal.created_at,
            user=AuthorInfo.from_user(reporter),
        )


class UploadedFile(_WireModel):
    original_name: str
    filename: str
    path: str
    url: str
    size: int
    mimetype: str

    @classmethod
    def from_stored(cls, image: StoredImage) -> "UploadedFile":
        return cls(
            original_name=image.original_name,
            filename=image.filename,
            path=image.path,
            url=image.url,
            size=image.size,
            mimetype=image.mimetype,
        )


class UploadResponse(BaseModel):
    message: str
    files: list[UploadedFile]
