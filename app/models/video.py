"""ORM models for videos and the per-user watch history."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from app.models.base import Base


class Video(Base):
    """Uploaded video owned by a user. Only read here (watch history)."""

    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    video_file_url = Column(String(2048), nullable=False)
    thumbnail_url = Column(String(2048), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    duration = Column(Float, nullable=False, default=0.0)
    views = Column(Integer, nullable=False, default=0)
    is_published = Column(Boolean, nullable=False, default=True)
    owner_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    owner = relationship("User")


class WatchHistoryEntry(Base):
    """One slot in a user's ordered watch history."""

    __tablename__ = "watch_history"

    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    position = Column(Integer, primary_key=True)
    video_id = Column(
        Integer, ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True
    )

    user = relationship("User", back_populates="watch_history_entries")
    video = relationship("Video")
