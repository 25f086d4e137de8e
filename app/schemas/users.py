"""Request/response schemas for the user account endpoints (camelCase on the wire)."""

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")

# Column widths on users; every endpoint that accepts these fields uses the same caps.
USERNAME_MAX_LENGTH = 255
FULL_NAME_MAX_LENGTH = 255
EMAIL_MAX_LENGTH = 320
PASSWORD_MAX_LENGTH = 128


class CamelModel(BaseModel):
    """Base model: snake_case in Python, camelCase in JSON; accepts either on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserPublic(CamelModel):
    """User as returned to clients. Has no password or refresh token field."""

    id: int
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_user(cls, user: Any) -> "UserPublic":
        """Project an ORM User onto the public fields."""
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            avatar=user.avatar_url,
            cover_image=user.cover_image_url or "",
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class LoginRequest(CamelModel):
    """Credentials for login: username or email, plus password."""

    username: str | None = Field(default=None, max_length=USERNAME_MAX_LENGTH)
    email: str | None = Field(default=None, max_length=EMAIL_MAX_LENGTH)
    password: str | None = Field(default=None, max_length=PASSWORD_MAX_LENGTH)


class RefreshTokenRequest(CamelModel):
    """Refresh token sent in the body when the cookie is unavailable."""

    refresh_token: str | None = None


class ChangePasswordRequest(CamelModel):
    old_password: str | None = Field(default=None, max_length=PASSWORD_MAX_LENGTH)
    new_password: str | None = Field(default=None, max_length=PASSWORD_MAX_LENGTH)


class UpdateAccountRequest(CamelModel):
    full_name: str | None = Field(default=None, max_length=FULL_NAME_MAX_LENGTH)
    email: str | None = Field(default=None, max_length=EMAIL_MAX_LENGTH)


class TokenPair(CamelModel):
    """Access and refresh tokens issued together."""

    access_token: str
    refresh_token: str


class LoginResult(CamelModel):
    """Logged-in user plus the freshly issued token pair."""

    user: UserPublic
    access_token: str
    refresh_token: str


class ChannelProfile(CamelModel):
    """A user viewed as a channel, with subscription aggregates."""

    id: int
    full_name: str
    username: str
    email: str
    avatar: str
    cover_image: str = ""
    subscribers_count: int
    channels_subscribed_to_count: int
    is_subscribed: bool


class VideoOwner(CamelModel):
    """Reduced user projection embedded in video listings."""

    full_name: str
    username: str
    avatar: str


class WatchedVideo(CamelModel):
    """Video entry in a watch history, with its owner reduced to VideoOwner."""

    id: int
    video_file: str
    thumbnail: str
    title: str
    description: str
    duration: float
    views: int
    is_published: bool
    owner: VideoOwner | None
    created_at: datetime | None = None


class ApiResponse(CamelModel, Generic[DataT]):
    """Envelope for every successful response."""

    status_code: int
    data: DataT
    message: str = "Success"
    success: bool = True


class ErrorResponse(CamelModel):
    """Envelope for every failed response."""

    status_code: int
    data: None = None
    message: str
    success: bool = False
    errors: list[Any] = Field(default_factory=list)
