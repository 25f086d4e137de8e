"""Persistence for User records and the channel/watch-history read views."""

from typing import Any

from sqlalchemy import exists, func, literal, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.models import Subscription, User, Video, WatchHistoryEntry


class UserStore:
    """
    Thin repository over a SQLAlchemy session.

    Every write commits immediately; on failure the session is rolled back and
    the SQLAlchemy error propagates to the caller.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def get_by_id(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def get_by_username(self, username: str) -> User | None:
        return self.session.query(User).filter(User.username == username).first()

    def find_by_username_or_email(
        self, username: str | None, email: str | None
    ) -> User | None:
        """Return the first user matching either identifier; None if neither is given."""
        conditions = []
        if username:
            conditions.append(User.username == username)
        if email:
            conditions.append(User.email == email)
        if not conditions:
            return None
        return self.session.query(User).filter(or_(*conditions)).order_by(User.id).first()

    def email_taken_by_other(self, email: str, user_id: int) -> bool:
        query = self.session.query(User.id).filter(User.email == email, User.id != user_id)
        return self.session.query(query.exists()).scalar()

    def create(
        self,
        *,
        full_name: str,
        email: str,
        username: str,
        password_hash: str,
        avatar_url: str,
        cover_image_url: str = "",
    ) -> User:
        user = User(
            full_name=full_name,
            email=email,
            username=username,
            password_hash=password_hash,
            avatar_url=avatar_url,
            cover_image_url=cover_image_url,
        )
        self.session.add(user)
        self._commit()
        self.session.refresh(user)
        return user

    def set_refresh_token(self, user_id: int, token: str | None) -> int:
        """Overwrite only the refresh_token column. Returns rows updated."""
        updated = (
            self.session.query(User)
            .filter(User.id == user_id)
            .update({User.refresh_token: token}, synchronize_session="fetch")
        )
        self._commit()
        return updated

    def clear_refresh_token(self, user_id: int) -> int:
        return self.set_refresh_token(user_id, None)

    def _update_fields(self, user_id: int, **fields: Any) -> User | None:
        user = self.get_by_id(user_id)
        if user is None:
            return None
        for name, value in fields.items():
            setattr(user, name, value)
        self._commit()
        self.session.refresh(user)
        return user

    def update_password(self, user_id: int, password_hash: str) -> User | None:
        return self._update_fields(user_id, password_hash=password_hash)

    def update_details(self, user_id: int, full_name: str, email: str) -> User | None:
        return self._update_fields(user_id, full_name=full_name, email=email)

    def update_avatar(self, user_id: int, avatar_url: str) -> User | None:
        return self._update_fields(user_id, avatar_url=avatar_url)

    def update_cover_image(self, user_id: int, cover_image_url: str) -> User | None:
        return self._update_fields(user_id, cover_image_url=cover_image_url)

    def channel_profile(self, username: str, viewer_id: int | None) -> Any | None:
        """
        Return (User, subscribers_count, channels_subscribed_to_count, is_subscribed)
        for the channel named username, or None when no such user exists.
        """
        subscribers_count = (
            select(func.count(Subscription.id))
            .where(Subscription.channel_id == User.id)
            .correlate(User)
            .scalar_subquery()
        )
        subscribed_to_count = (
            select(func.count(Subscription.id))
            .where(Subscription.subscriber_id == User.id)
            .correlate(User)
            .scalar_subquery()
        )
        if viewer_id is None:
            is_subscribed = literal(False)
        else:
            is_subscribed = (
                exists()
                .where(
                    Subscription.channel_id == User.id,
                    Subscription.subscriber_id == viewer_id,
                )
                .correlate(User)
            )
        return (
            self.session.query(
                User,
                subscribers_count.label("subscribers_count"),
                subscribed_to_count.label("channels_subscribed_to_count"),
                is_subscribed.label("is_subscribed"),
            )
            .filter(User.username == username)
            .first()
        )

    def watch_history(self, user_id: int) -> list[Video]:
        """Videos in the user's watch history, in stored order, owners eagerly loaded."""
        entries = (
            self.session.query(WatchHistoryEntry)
            .options(joinedload(WatchHistoryEntry.video).joinedload(Video.owner))
            .filter(WatchHistoryEntry.user_id == user_id)
            .order_by(WatchHistoryEntry.position)
            .all()
        )
        # A row can outlive its video where foreign keys are not enforced (SQLite).
        return [entry.video for entry in entries if entry.video is not None]
