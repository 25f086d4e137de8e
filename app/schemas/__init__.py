"""Pydantic request/response schemas."""

from app.schemas.health import HealthResponse
from app.schemas.users import (
    ApiResponse,
    ChangePasswordRequest,
    ChannelProfile,
    ErrorResponse,
    LoginRequest,
    LoginResult,
    RefreshTokenRequest,
    TokenPair,
    UpdateAccountRequest,
    UserPublic,
    VideoOwner,
    WatchedVideo,
)

__all__ = [
    "ApiResponse",
    "ChangePasswordRequest",
    "ChannelProfile",
    "ErrorResponse",
    "HealthResponse",
    "LoginRequest",
    "LoginResult",
    "RefreshTokenRequest",
    "TokenPair",
    "UpdateAccountRequest",
    "UserPublic",
    "VideoOwner",
    "WatchedVideo",
]
