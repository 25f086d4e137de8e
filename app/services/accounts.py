"""
Account workflows: registration, login/logout, token refresh, profile and
password updates, channel profile and watch history.

Every operation returns a ServiceResult. Collaborator exceptions are caught
here and turned into a single failed result; nothing is retried.
"""

import logging
import secrets
from collections.abc import Callable
from pathlib import Path

import jwt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.security import PasswordHasher, TokenIssuer, subject_user_id
from app.models import User, Video
from app.schemas.users import (
    ChannelProfile,
    LoginResult,
    TokenPair,
    UserPublic,
    VideoOwner,
    WatchedVideo,
)
from app.services.media_upload import MediaUploader, MediaUploadError
from app.services.result import ErrorKind, ServiceResult, fail, ok
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)

TOKEN_GENERATION_FAILED = "Something went wrong while generating refresh and access token"


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _normalize(value: str | None) -> str | None:
    """Trim and lowercase an identifier (username/email); blank becomes None."""
    if _is_blank(value):
        return None
    return value.strip().lower()


def _watched_video(video: Video) -> WatchedVideo:
    owner = video.owner
    return WatchedVideo(
        id=video.id,
        video_file=video.video_file_url,
        thumbnail=video.thumbnail_url,
        title=video.title,
        description=video.description or "",
        duration=video.duration or 0.0,
        views=video.views or 0,
        is_published=bool(video.is_published),
        owner=(
            VideoOwner(
                full_name=owner.full_name,
                username=owner.username,
                avatar=owner.avatar_url,
            )
            if owner is not None
            else None
        ),
        created_at=video.created_at,
    )


class AccountService:
    """User account operations composed over the store, hasher, token issuer and uploader."""

    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        tokens: TokenIssuer,
        uploader: MediaUploader,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.uploader = uploader

    async def _upload(self, local_path: str | Path, what: str) -> str | None:
        """Upload one file and return its URL, or None if the upload failed."""
        try:
            media = await self.uploader.upload(local_path)
        except MediaUploadError as e:
            logger.warning("%s upload failed: %s", what, e.message)
            return None
        return media.url or None

    def _generate_tokens(self, user_id: int) -> ServiceResult[TokenPair]:
        """Sign a new access/refresh pair and persist the refresh token on the user."""
        try:
            user = self.store.get_by_id(user_id)
            if user is None:
                raise LookupError(f"user {user_id} vanished during token generation")
            access_token = self.tokens.create_access_token(user)
            refresh_token = self.tokens.create_refresh_token(user.id)
            self.store.set_refresh_token(user.id, refresh_token)
        except Exception:
            logger.exception("Token generation failed for user_id=%s", user_id)
            return fail(ErrorKind.INTERNAL, TOKEN_GENERATION_FAILED)
        return ok(
            TokenPair(access_token=access_token, refresh_token=refresh_token),
            "Tokens generated",
        )

    async def register(
        self,
        *,
        full_name: str | None,
        email: str | None,
        username: str | None,
        password: str | None,
        avatar_path: str | Path | None,
        cover_image_path: str | Path | None = None,
    ) -> ServiceResult[UserPublic]:
        """Create a user after validating fields, uniqueness and the avatar upload."""
        if any(_is_blank(field) for field in (full_name, email, username, password)):
            return fail(ErrorKind.VALIDATION, "All fields are required")

        username = _normalize(username)
        email = _normalize(email)
        try:
            existing = self.store.find_by_username_or_email(username, email)
        except SQLAlchemyError:
            logger.exception("User lookup failed during registration")
            return fail(ErrorKind.INTERNAL, "Something went wrong while registering the user")
        if existing is not None:
            return fail(ErrorKind.CONFLICT, "User with email or username already exists")

        if not avatar_path:
            return fail(ErrorKind.VALIDATION, "Avatar file is required")

        avatar_url = await self._upload(avatar_path, "Avatar")
        if not avatar_url:
            return fail(ErrorKind.VALIDATION, "Avatar upload failed")
        cover_image_url = ""
        if cover_image_path:
            cover_image_url = await self._upload(cover_image_path, "Cover image") or ""

        try:
            user = self.store.create(
                full_name=full_name.strip(),
                email=email,
                username=username,
                password_hash=self.hasher.hash(password),
                avatar_url=avatar_url,
                cover_image_url=cover_image_url,
            )
        except IntegrityError:
            return fail(ErrorKind.CONFLICT, "User with email or username already exists")
        except Exception:
            logger.exception("User creation failed for username=%s", username)
            return fail(ErrorKind.INTERNAL, "Something went wrong while registering the user")

        logger.info("Registered user id=%s username=%s", user.id, user.username)
        return ok(UserPublic.from_user(user), "User registered successfully", 201)

    def login(
        self,
        *,
        username: str | None,
        email: str | None,
        password: str | None,
    ) -> ServiceResult[LoginResult]:
        """Check credentials and issue a token pair; the new refresh token replaces the old one."""
        username = _normalize(username)
        email = _normalize(email)
        if not username and not email:
            return fail(ErrorKind.VALIDATION, "Username or email is required")
        if _is_blank(password):
            return fail(ErrorKind.VALIDATION, "Password is required")

        try:
            user = self.store.find_by_username_or_email(username, email)
        except SQLAlchemyError:
            logger.exception("User lookup failed during login")
            return fail(ErrorKind.INTERNAL, "Something went wrong while logging in")
        if user is None:
            return fail(ErrorKind.VALIDATION, "User does not exist")

        if not self.hasher.verify(password, user.password_hash):
            logger.warning("Rejected login for user id=%s: bad password", user.id)
            return fail(ErrorKind.UNAUTHORIZED, "Invalid user credentials")

        generated = self._generate_tokens(user.id)
        if not generated.ok:
            return generated
        pair = generated.unwrap()

        logger.info("User id=%s logged in", user.id)
        return ok(
            LoginResult(
                user=UserPublic.from_user(user),
                access_token=pair.access_token,
                refresh_token=pair.refresh_token,
            ),
            "User logged in successfully",
        )

    def logout(self, user_id: int) -> ServiceResult[dict]:
        """Forget the stored refresh token. Safe to call repeatedly."""
        try:
            self.store.clear_refresh_token(user_id)
        except SQLAlchemyError:
            logger.exception("Logout failed for user_id=%s", user_id)
            return fail(ErrorKind.INTERNAL, "Something went wrong while logging out")
        logger.info("User id=%s logged out", user_id)
        return ok({}, "User logged out successfully")

    def refresh_access_token(self, incoming_token: str | None) -> ServiceResult[TokenPair]:
        """Exchange the current refresh token for a new pair; any other token is rejected."""
        if _is_blank(incoming_token):
            return fail(ErrorKind.UNAUTHORIZED, "Unauthorized request")

        try:
            payload = self.tokens.decode_refresh_token(incoming_token)
            user_id = subject_user_id(payload)
        except jwt.PyJWTError:
            return fail(ErrorKind.UNAUTHORIZED, "Invalid refresh token")

        try:
            user = self.store.get_by_id(user_id)
        except SQLAlchemyError:
            logger.exception("User lookup failed during token refresh")
            return fail(ErrorKind.INTERNAL, "Something went wrong while refreshing the token")
        if user is None:
            return fail(ErrorKind.UNAUTHORIZED, "Invalid refresh token")

        if not user.refresh_token or not secrets.compare_digest(
            incoming_token.encode("utf-8"), user.refresh_token.encode("utf-8")
        ):
            logger.warning("Rejected stale refresh token for user id=%s", user.id)
            return fail(ErrorKind.UNAUTHORIZED, "Refresh token is expired or used")

        generated = self._generate_tokens(user.id)
        if not generated.ok:
            return generated
        logger.info("Refreshed tokens for user id=%s", user.id)
        return ok(generated.unwrap(), "Access token refreshed")

    def change_current_password(
        self,
        user_id: int,
        *,
        old_password: str | None,
        new_password: str | None,
    ) -> ServiceResult[dict]:
        if _is_blank(new_password):
            return fail(ErrorKind.VALIDATION, "New password is required")
        try:
            user = self.store.get_by_id(user_id)
        except SQLAlchemyError:
            logger.exception("User lookup failed during password change")
            return fail(ErrorKind.INTERNAL, "Something went wrong while changing the password")
        if user is None:
            return fail(ErrorKind.NOT_FOUND, "User not found")
        if not self.hasher.verify(old_password or "", user.password_hash):
            return fail(ErrorKind.VALIDATION, "Invalid old password")

        try:
            self.store.update_password(user_id, self.hasher.hash(new_password))
        except SQLAlchemyError:
            logger.exception("Password change failed for user_id=%s", user_id)
            return fail(ErrorKind.INTERNAL, "Something went wrong while changing the password")
        logger.info("User id=%s changed password", user_id)
        return ok({}, "Password changed successfully")

    def get_current_user(self, user: User) -> ServiceResult[UserPublic]:
        return ok(UserPublic.from_user(user), "Current user fetched successfully")

    def update_account_details(
        self,
        user_id: int,
        *,
        full_name: str | None,
        email: str | None,
    ) -> ServiceResult[UserPublic]:
        if _is_blank(full_name) or _is_blank(email):
            return fail(ErrorKind.VALIDATION, "All fields are required")
        email = _normalize(email)

        try:
            if self.store.email_taken_by_other(email, user_id):
                return fail(ErrorKind.CONFLICT, "Email is already in use")
            user = self.store.update_details(user_id, full_name.strip(), email)
        except IntegrityError:
            return fail(ErrorKind.CONFLICT, "Email is already in use")
        except SQLAlchemyError:
            logger.exception("Account update failed for user_id=%s", user_id)
            return fail(ErrorKind.INTERNAL, "Something went wrong while updating the account")
        if user is None:
            return fail(ErrorKind.NOT_FOUND, "User not found")
        return ok(UserPublic.from_user(user), "Account details updated successfully")

    async def update_user_avatar(
        self, user_id: int, avatar_path: str | Path | None
    ) -> ServiceResult[UserPublic]:
        if not avatar_path:
            return fail(ErrorKind.VALIDATION, "Avatar file is missing")
        avatar_url = await self._upload(avatar_path, "Avatar")
        if not avatar_url:
            return fail(ErrorKind.VALIDATION, "Error while uploading avatar")
        return self._apply_image_update(
            user_id,
            self.store.update_avatar,
            avatar_url,
            "Avatar image updated successfully",
        )

    async def update_user_cover_image(
        self, user_id: int, cover_image_path: str | Path | None
    ) -> ServiceResult[UserPublic]:
        if not cover_image_path:
            return fail(ErrorKind.VALIDATION, "Cover image file is missing")
        cover_image_url = await self._upload(cover_image_path, "Cover image")
        if not cover_image_url:
            return fail(ErrorKind.VALIDATION, "Error while uploading cover image")
        return self._apply_image_update(
            user_id,
            self.store.update_cover_image,
            cover_image_url,
            "Cover image updated successfully",
        )

    def _apply_image_update(
        self,
        user_id: int,
        update: Callable[[int, str], User | None],
        url: str,
        message: str,
    ) -> ServiceResult[UserPublic]:
        try:
            user = update(user_id, url)
        except SQLAlchemyError:
            logger.exception("Image update failed for user_id=%s", user_id)
            return fail(ErrorKind.INTERNAL, "Something went wrong while updating the image")
        if user is None:
            return fail(ErrorKind.NOT_FOUND, "User not found")
        return ok(UserPublic.from_user(user), message)

    def get_user_channel_profile(
        self, username: str | None, viewer_id: int | None
    ) -> ServiceResult[ChannelProfile]:
        """Channel view of a user with subscriber/subscribed-to counts and viewer membership."""
        if _is_blank(username):
            return fail(ErrorKind.VALIDATION, "Username is missing")

        try:
            row = self.store.channel_profile(_normalize(username), viewer_id)
        except SQLAlchemyError:
            logger.exception("Channel profile query failed for username=%s", username)
            return fail(ErrorKind.INTERNAL, "Something went wrong while fetching the channel")
        if row is None:
            return fail(ErrorKind.NOT_FOUND, "Channel does not exist")
        channel, subscribers_count, subscribed_to_count, is_subscribed = row

        return ok(
            ChannelProfile(
                id=channel.id,
                full_name=channel.full_name,
                username=channel.username,
                email=channel.email,
                avatar=channel.avatar_url,
                cover_image=channel.cover_image_url or "",
                subscribers_count=subscribers_count or 0,
                channels_subscribed_to_count=subscribed_to_count or 0,
                is_subscribed=bool(is_subscribed),
            ),
            "User channel fetched successfully",
        )

    def get_watch_history(self, user_id: int) -> ServiceResult[list[WatchedVideo]]:
        try:
            videos = self.store.watch_history(user_id)
        except SQLAlchemyError:
            logger.exception("Watch history query failed for user_id=%s", user_id)
            return fail(ErrorKind.INTERNAL, "Something went wrong while fetching watch history")
        return ok(
            [_watched_video(video) for video in videos],
            "Watch history fetched successfully",
        )
