"""ORM model for platform users (accounts and channels)."""

from sqlalchemy import Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import relationship

from app.models.base import Base


class User(Base):
    """
    User account; also viewed as a channel others can subscribe to.

    username and email are stored lowercase. refresh_token holds the last
    refresh token issued to this user (one active session per user).
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False, index=True)
    avatar_url = Column(String(2048), nullable=False)
    cover_image_url = Column(String(2048), nullable=False, default="")
    password_hash = Column(String(255), nullable=False)
    refresh_token = Column(Text, nullable=True)
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

    watch_history_entries = relationship(
        "WatchHistoryEntry",
        order_by="WatchHistoryEntry.position",
        cascade="all, delete-orphan",
        back_populates="user",
    )
