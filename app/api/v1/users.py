"""User account endpoints: registration, sessions, profile updates, channel and history views."""

import uuid
from pathlib import Path
from typing import Annotated, TypeVar

from fastapi import (
    APIRouter,
    Cookie,
    Depends,
    File,
    Form,
    HTTPException,
    Response,
    UploadFile,
    status,
)
from sqlalchemy.orm import Session

from app.api.v1.auth import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_current_user,
    get_password_hasher,
    get_token_issuer,
)
from app.core.config import get_settings
from app.core.database import get_db
from app.core.security import PasswordHasher, TokenIssuer
from app.models.user import User
from app.schemas.users import (
    EMAIL_MAX_LENGTH,
    FULL_NAME_MAX_LENGTH,
    PASSWORD_MAX_LENGTH,
    USERNAME_MAX_LENGTH,
    ApiResponse,
    ChangePasswordRequest,
    ChannelProfile,
    LoginRequest,
    LoginResult,
    RefreshTokenRequest,
    TokenPair,
    UpdateAccountRequest,
    UserPublic,
    WatchedVideo,
)
from app.services.accounts import AccountService
from app.services.media_upload import CloudinaryUploader, MediaUploader
from app.services.result import ServiceResult
from app.services.user_store import UserStore

router = APIRouter()

T = TypeVar("T")

UPLOAD_CHUNK_BYTES = 1024 * 1024


def get_media_uploader() -> MediaUploader:
    """Dependency: Cloudinary uploader configured from settings."""
    return CloudinaryUploader.from_settings(get_settings())


def get_account_service(
    db: Annotated[Session, Depends(get_db)],
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
    tokens: Annotated[TokenIssuer, Depends(get_token_issuer)],
    uploader: Annotated[MediaUploader, Depends(get_media_uploader)],
) -> AccountService:
    return AccountService(UserStore(db), hasher, tokens, uploader)


Accounts = Annotated[AccountService, Depends(get_account_service)]
CurrentUser = Annotated[User, Depends(get_current_user)]


def _unwrap(result: ServiceResult[T]) -> T:
    """Map a failed service result to an HTTP error; otherwise return its value."""
    if result.error is not None:
        raise HTTPException(
            status_code=result.error.status_code,
            detail=result.error.message,
        )
    return result.unwrap()


def _respond(result: ServiceResult[T]) -> ApiResponse[T]:
    data = _unwrap(result)
    return ApiResponse(status_code=result.status_code, data=data, message=result.message)


def _set_token_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    secure = get_settings().COOKIE_SECURE
    response.set_cookie(ACCESS_TOKEN_COOKIE, access_token, httponly=True, secure=secure)
    response.set_cookie(REFRESH_TOKEN_COOKIE, refresh_token, httponly=True, secure=secure)


def _clear_token_cookies(response: Response) -> None:
    secure = get_settings().COOKIE_SECURE
    response.delete_cookie(ACCESS_TOKEN_COOKIE, httponly=True, secure=secure)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, httponly=True, secure=secure)


def _has_file(upload: UploadFile | None) -> bool:
    return upload is not None and bool(upload.filename)


async def _spool_to_temp(upload: UploadFile, spooled: list[Path]) -> Path:
    """Write an uploaded file to UPLOAD_TEMP_DIR and return its path. 413 if it is too large."""
    settings = get_settings()
    temp_dir = Path(settings.UPLOAD_TEMP_DIR)
    temp_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(upload.filename or "").suffix[:16]
    path = temp_dir / f"{uuid.uuid4().hex}{suffix}"
    spooled.append(path)

    written = 0
    with path.open("wb") as out:
        while chunk := await upload.read(UPLOAD_CHUNK_BYTES):
            written += len(chunk)
            if written > settings.MAX_UPLOAD_FILE_BYTES:
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=(
                        "File size must not exceed "
                        f"{settings.MAX_UPLOAD_FILE_BYTES // (1024 * 1024)} MB."
                    ),
                )
            out.write(chunk)
    return path


def _discard(spooled: list[Path]) -> None:
    """Remove temp files the uploader did not consume (e.g. validation failed first)."""
    for path in spooled:
        path.unlink(missing_ok=True)


@router.post(
    "/register",
    response_model=ApiResponse[UserPublic],
    status_code=status.HTTP_201_CREATED,
)
async def register_user(
    accounts: Accounts,
    full_name: Annotated[
        str | None, Form(alias="fullName", max_length=FULL_NAME_MAX_LENGTH)
    ] = None,
    email: Annotated[str | None, Form(max_length=EMAIL_MAX_LENGTH)] = None,
    username: Annotated[str | None, Form(max_length=USERNAME_MAX_LENGTH)] = None,
    password: Annotated[str | None, Form(max_length=PASSWORD_MAX_LENGTH)] = None,
    avatar: Annotated[UploadFile | None, File()] = None,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
) -> ApiResponse[UserPublic]:
    """
    Register a new user (multipart form).

    Fields: fullName, email, username, password, plus an `avatar` image
    (required) and an optional `coverImage`. Returns the created user
    without password or refresh token.
    """
    spooled: list[Path] = []
    try:
        avatar_path = await _spool_to_temp(avatar, spooled) if _has_file(avatar) else None
        cover_path = (
            await _spool_to_temp(cover_image, spooled) if _has_file(cover_image) else None
        )
        result = await accounts.register(
            full_name=full_name,
            email=email,
            username=username,
            password=password,
            avatar_path=avatar_path,
            cover_image_path=cover_path,
        )
    finally:
        _discard(spooled)
    return _respond(result)


@router.post("/login", response_model=ApiResponse[LoginResult])
def login_user(
    body: LoginRequest,
    response: Response,
    accounts: Accounts,
) -> ApiResponse[LoginResult]:
    """
    Log in with username or email and password.
    Sets HTTP-only `accessToken` and `refreshToken` cookies and also returns both tokens.
    """
    result = accounts.login(username=body.username, email=body.email, password=body.password)
    login = _unwrap(result)
    _set_token_cookies(response, login.access_token, login.refresh_token)
    return _respond(result)


@router.post("/logout", response_model=ApiResponse[dict])
def logout_user(
    response: Response,
    user: CurrentUser,
    accounts: Accounts,
) -> ApiResponse[dict]:
    """Invalidate the stored refresh token and clear both token cookies."""
    result = accounts.logout(user.id)
    _unwrap(result)
    _clear_token_cookies(response)
    return _respond(result)


@router.post("/refresh-token", response_model=ApiResponse[TokenPair])
def refresh_access_token(
    response: Response,
    accounts: Accounts,
    body: RefreshTokenRequest | None = None,
    refresh_cookie: Annotated[str | None, Cookie(alias=REFRESH_TOKEN_COOKIE)] = None,
) -> ApiResponse[TokenPair]:
    """Exchange the refresh token (cookie, else JSON body) for a new token pair."""
    incoming = refresh_cookie or (body.refresh_token if body else None)
    result = accounts.refresh_access_token(incoming)
    pair = _unwrap(result)
    _set_token_cookies(response, pair.access_token, pair.refresh_token)
    return _respond(result)


@router.post("/change-password", response_model=ApiResponse[dict])
def change_current_password(
    body: ChangePasswordRequest,
    user: CurrentUser,
    accounts: Accounts,
) -> ApiResponse[dict]:
    return _respond(
        accounts.change_current_password(
            user.id,
            old_password=body.old_password,
            new_password=body.new_password,
        )
    )


@router.get("/current-user", response_model=ApiResponse[UserPublic])
def get_current_user_profile(user: CurrentUser, accounts: Accounts) -> ApiResponse[UserPublic]:
    return _respond(accounts.get_current_user(user))


@router.patch("/update-account", response_model=ApiResponse[UserPublic])
def update_account_details(
    body: UpdateAccountRequest,
    user: CurrentUser,
    accounts: Accounts,
) -> ApiResponse[UserPublic]:
    """Update full name and email (both required)."""
    return _respond(
        accounts.update_account_details(user.id, full_name=body.full_name, email=body.email)
    )


@router.patch("/avatar", response_model=ApiResponse[UserPublic])
async def update_user_avatar(
    user: CurrentUser,
    accounts: Accounts,
    avatar: Annotated[UploadFile | None, File()] = None,
) -> ApiResponse[UserPublic]:
    """Replace the avatar with the uploaded `avatar` file."""
    spooled: list[Path] = []
    try:
        path = await _spool_to_temp(avatar, spooled) if _has_file(avatar) else None
        result = await accounts.update_user_avatar(user.id, path)
    finally:
        _discard(spooled)
    return _respond(result)


@router.patch("/cover-image", response_model=ApiResponse[UserPublic])
async def update_user_cover_image(
    user: CurrentUser,
    accounts: Accounts,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
) -> ApiResponse[UserPublic]:
    """Replace the cover image with the uploaded `coverImage` file."""
    spooled: list[Path] = []
    try:
        path = await _spool_to_temp(cover_image, spooled) if _has_file(cover_image) else None
        result = await accounts.update_user_cover_image(user.id, path)
    finally:
        _discard(spooled)
    return _respond(result)


@router.get("/c/{username}", response_model=ApiResponse[ChannelProfile])
def get_user_channel_profile(
    username: str,
    user: CurrentUser,
    accounts: Accounts,
) -> ApiResponse[ChannelProfile]:
    """
    Channel profile for `username`: subscriber count, number of channels it
    subscribes to, and whether the caller is subscribed.
    """
    return _respond(accounts.get_user_channel_profile(username, viewer_id=user.id))


@router.get("/history", response_model=ApiResponse[list[WatchedVideo]])
def get_watch_history(user: CurrentUser, accounts: Accounts) -> ApiResponse[list[WatchedVideo]]:
    """Caller's watch history in watch order, each video with a reduced owner."""
    return _respond(accounts.get_watch_history(user.id))
