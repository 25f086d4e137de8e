"""Shared builders for service tests: in-memory database, fake uploader, account service."""

import asyncio
from datetime import timedelta
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import PasswordHasher, TokenConfig, TokenIssuer
from app.models import Base, Subscription, User, Video, WatchHistoryEntry
from app.services.accounts import AccountService
from app.services.media_upload import MediaUploadError, UploadedMedia
from app.services.user_store import UserStore

TEST_TOKEN_CONFIG = TokenConfig(
    access_secret="test-access-secret",
    refresh_secret="test-refresh-secret",
    access_ttl=timedelta(minutes=15),
    refresh_ttl=timedelta(days=10),
)


class FakeUploader:
    """Records uploaded paths; returns a URL derived from the file name, or fails on demand."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[str] = []
        self.contents: list[bytes] = []

    async def upload(self, local_path: str | Path) -> UploadedMedia:
        path = Path(local_path)
        self.calls.append(str(local_path))
        if path.exists():
            self.contents.append(path.read_bytes())
        if self.fail:
            raise MediaUploadError("Cloudinary returned 500: boom", 500)
        return UploadedMedia(url=f"https://media.test/{path.name}", public_id=path.stem)


def make_session() -> Session:
    """Fresh in-memory database with all tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False)()


def make_service(session: Session, uploader: FakeUploader | None = None) -> AccountService:
    return AccountService(
        UserStore(session),
        PasswordHasher(rounds=4),
        TokenIssuer(TEST_TOKEN_CONFIG),
        uploader or FakeUploader(),
    )


def run(coro):
    return asyncio.run(coro)


def register(
    service: AccountService,
    username: str = "alice",
    email: str | None = None,
    password: str = "secret-pass-1",
    full_name: str = "Alice Example",
) -> User:
    """Register a user through the service and return the stored row."""
    result = run(
        service.register(
            full_name=full_name,
            email=email or f"{username}@example.com",
            username=username,
            password=password,
            avatar_path=f"{username}-avatar.png",
        )
    )
    assert result.ok, result.error
    return service.store.get_by_id(result.unwrap().id)


def subscribe(session: Session, subscriber: User, channel: User) -> None:
    session.add(Subscription(subscriber_id=subscriber.id, channel_id=channel.id))
    session.commit()


def add_video(session: Session, owner: User, title: str) -> Video:
    video = Video(
        video_file_url=f"https://media.test/{title}.mp4",
        thumbnail_url=f"https://media.test/{title}.jpg",
        title=title,
        description=f"About {title}",
        duration=42.0,
        owner_id=owner.id,
    )
    session.add(video)
    session.commit()
    return video


def set_watch_history(session: Session, user: User, videos: list[Video]) -> None:
    for position, video in enumerate(videos):
        session.add(WatchHistoryEntry(user_id=user.id, position=position, video_id=video.id))
    session.commit()
