"""Upload local media files to Cloudinary and return their durable URLs."""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import httpx

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


class MediaUploadError(Exception):
    """Raised when the file cannot be read or Cloudinary rejects the upload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class MediaNotConfiguredError(MediaUploadError):
    """Raised when an upload is attempted but Cloudinary credentials are missing."""


@dataclass(frozen=True)
class UploadedMedia:
    url: str
    public_id: str
    resource_type: str = "image"
    bytes: int = 0


class MediaUploader(Protocol):
    async def upload(self, local_path: str | Path) -> UploadedMedia: ...


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature: SHA-1 of sorted `k=v` pairs joined by & plus the secret."""
    to_sign = "&".join(
        f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


def _remove_local_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove temp upload %s: %s", path, e)


class CloudinaryUploader:
    """
    Signed uploads to the Cloudinary REST API with auto-detected resource type.

    The local file is always deleted after the attempt, whether the upload
    succeeded or not. No retries.
    """

    def __init__(
        self,
        cloud_name: str | None,
        api_key: str | None,
        api_secret: str | None,
        base_url: str = "https://api.cloudinary.com/v1_1",
        timeout: float = 60.0,
    ) -> None:
        self.cloud_name = (cloud_name or "").strip()
        self.api_key = (api_key or "").strip()
        self.api_secret = (api_secret or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = max(1.0, min(300.0, timeout))

    @classmethod
    def from_settings(cls, settings: Settings) -> CloudinaryUploader:
        secret = (
            settings.CLOUDINARY_API_SECRET.get_secret_value()
            if settings.CLOUDINARY_API_SECRET is not None
            else None
        )
        return cls(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=secret,
            base_url=settings.CLOUDINARY_UPLOAD_URL,
            timeout=settings.MEDIA_UPLOAD_TIMEOUT_SEC,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    @property
    def upload_url(self) -> str:
        return f"{self.base_url}/{self.cloud_name}/auto/upload"

    async def upload(self, local_path: str | Path) -> UploadedMedia:
        """Upload local_path; return the hosted URL. Raises MediaUploadError on any failure."""
        path = Path(local_path)
        try:
            if not self.is_configured:
                raise MediaNotConfiguredError(
                    "Cloudinary is not configured; set CLOUDINARY_CLOUD_NAME, "
                    "CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET."
                )
            try:
                content = path.read_bytes()
            except OSError as e:
                raise MediaUploadError(f"Cannot read upload file: {e!s}") from e
            return await self._post(path.name, content)
        finally:
            _remove_local_file(path)

    async def _post(self, filename: str, content: bytes) -> UploadedMedia:
        params: dict[str, Any] = {"timestamp": int(time.time())}
        data = {
            **params,
            "api_key": self.api_key,
            "signature": sign_params(params, self.api_secret),
        }
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self.upload_url,
                    data=data,
                    files={"file": (filename, content)},
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            raise MediaUploadError(f"Media host unreachable: {e!s}") from e

        if resp.status_code >= 400:
            try:
                detail = resp.json().get("error", {}).get("message") or resp.text[:500]
            except ValueError:
                detail = resp.text[:500] if resp.text else "Unknown error"
            raise MediaUploadError(
                f"Cloudinary returned {resp.status_code}: {detail}", resp.status_code
            )
        body = resp.json()
        url = body.get("secure_url") or body.get("url")
        if not url:
            raise MediaUploadError("Cloudinary response missing url.")
        logger.info("Uploaded %s to media host as %s", filename, body.get("public_id"))
        return UploadedMedia(
            url=url,
            public_id=body.get("public_id", ""),
            resource_type=body.get("resource_type", "image"),
            bytes=int(body.get("bytes") or 0),
        )
