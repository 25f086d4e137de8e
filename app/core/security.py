"""Password hashing and JWT access/refresh token issuing."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol

import bcrypt
import jwt

if TYPE_CHECKING:
    from app.core.config import Settings

# Bcrypt cost (rounds); 12 is a good default for security vs speed.
BCRYPT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes of a password.
BCRYPT_MAX_BYTES = 72

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class PasswordHasher:
    """One-way password hashing with bcrypt."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        self.rounds = rounds

    def hash(self, plain_password: str) -> str:
        """Hash a plain-text password for storage. Do not store plain passwords."""
        pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain_password: str, hashed: str) -> bool:
        """Verify a plain password against a stored hash."""
        pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        try:
            return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False


class TokenSubject(Protocol):
    """Anything carrying the identity claims of an access token (ORM User, schema)."""

    id: int
    username: str
    email: str
    full_name: str


@dataclass(frozen=True)
class TokenConfig:
    """Signing secrets and lifetimes for the two token kinds."""

    access_secret: str
    refresh_secret: str
    access_ttl: timedelta
    refresh_ttl: timedelta
    algorithm: str = "HS256"

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenConfig:
        return cls(
            access_secret=settings.ACCESS_TOKEN_SECRET.get_secret_value(),
            refresh_secret=settings.REFRESH_TOKEN_SECRET.get_secret_value(),
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            algorithm=settings.JWT_ALGORITHM,
        )


class TokenIssuer:
    """
    Signs and verifies short-lived access tokens and long-lived refresh tokens.

    Both tokens carry the user id in `sub` and a random `jti`, so two tokens
    issued in the same second are still distinct. Each kind is signed with its
    own secret and tagged with `type`, and a token of one kind never verifies
    as the other.
    """

    def __init__(self, config: TokenConfig) -> None:
        self.config = config

    def _encode(
        self, claims: dict[str, Any], secret: str, ttl: timedelta, token_type: str
    ) -> str:
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            **claims,
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, secret, algorithm=self.config.algorithm)

    def _decode(self, token: str, secret: str, token_type: str) -> dict[str, Any]:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[self.config.algorithm],
            options={"require": ["sub", "exp"]},
        )
        if payload.get("type") != token_type:
            raise jwt.InvalidTokenError(f"Expected a {token_type} token")
        return payload

    def create_access_token(self, user: TokenSubject) -> str:
        """Create an access token with sub, username, email, full_name, exp."""
        claims = {
            "sub": str(user.id),
            "username": user.username,
            "email": user.email,
            "full_name": user.full_name,
        }
        return self._encode(
            claims, self.config.access_secret, self.config.access_ttl, ACCESS_TOKEN_TYPE
        )

    def create_refresh_token(self, user_id: int) -> str:
        """Create a refresh token that only identifies the user."""
        return self._encode(
            {"sub": str(user_id)},
            self.config.refresh_secret,
            self.config.refresh_ttl,
            REFRESH_TOKEN_TYPE,
        )

    def decode_access_token(self, token: str) -> dict[str, Any]:
        """
        Decode and validate an access token; return its payload.
        Raises jwt.PyJWTError on invalid, expired or wrong-type tokens.
        """
        return self._decode(token, self.config.access_secret, ACCESS_TOKEN_TYPE)

    def decode_refresh_token(self, token: str) -> dict[str, Any]:
        """
        Decode and validate a refresh token; return its payload.
        Raises jwt.PyJWTError on invalid, expired or wrong-type tokens.
        """
        return self._decode(token, self.config.refresh_secret, REFRESH_TOKEN_TYPE)


def subject_user_id(payload: dict[str, Any]) -> int:
    """Return the integer user id from a decoded payload. Raises jwt.InvalidTokenError."""
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as e:
        raise jwt.InvalidTokenError("Invalid token subject") from e
