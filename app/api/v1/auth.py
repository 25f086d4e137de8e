"""Auth dependencies: token issuer, password hasher and get_current_user."""

from typing import Annotated

import jwt
from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.security import PasswordHasher, TokenConfig, TokenIssuer, subject_user_id
from app.models.user import User

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

security = HTTPBearer(auto_error=False)


def get_token_issuer() -> TokenIssuer:
    """Dependency: token issuer configured from settings."""
    return TokenIssuer(TokenConfig.from_settings(get_settings()))


def get_password_hasher() -> PasswordHasher:
    return PasswordHasher(rounds=get_settings().BCRYPT_ROUNDS)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    tokens: Annotated[TokenIssuer, Depends(get_token_issuer)],
    access_cookie: Annotated[str | None, Cookie(alias=ACCESS_TOKEN_COOKIE)] = None,
) -> User:
    """
    Dependency: resolve the caller from the accessToken cookie or a Bearer header.
    Raises 401 if the token is missing, invalid, expired, or its user no longer exists.
    """
    token = access_cookie or (credentials.credentials if credentials else None)
    if not token:
        raise _unauthorized("Unauthorized request")
    try:
        payload = tokens.decode_access_token(token)
        user_id = subject_user_id(payload)
    except jwt.PyJWTError:
        raise _unauthorized("Invalid access token")
    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized("Invalid access token")
    return user
