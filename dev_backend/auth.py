"""
Access tokens for the development backend: HS256 JWTs signed with JWT_SECRET.
Expired tokens get 401 TOKEN_EXPIRED (the client refreshes); anything else invalid gets
401 INVALID_TOKEN (the client does not).
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated

import jwt
from fastapi import Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dev_backend import store
from dev_backend.config import (
    ACCESS_TOKEN_EXPIRES,
    CODE_FORBIDDEN,
    CODE_INVALID_TOKEN,
    CODE_TOKEN_EXPIRED,
    JWT_ALGORITHM,
    JWT_SECRET,
)

logger = logging.getLogger(__name__)


class ApiException(Exception):
    """Rendered by the app as {success: false, code, message} with status_code."""

    def __init__(self, status_code: int, code: str, message: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(message)


def issue_access_token(user: store.User, expires_in: int = ACCESS_TOKEN_EXPIRES) -> str:
    """Sign an access token for user. A negative expires_in yields an already-expired token (tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
    }
    token = jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)
    if isinstance(token, bytes):
        token = token.decode("utf-8")
    return token


def verify_access_token(token: str) -> dict:
    """Decode and validate exp. Returns claims. Raises ApiException on invalid token."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM], options={"verify_exp": True})
    except jwt.ExpiredSignatureError:
        raise ApiException(status.HTTP_401_UNAUTHORIZED, CODE_TOKEN_EXPIRED, "Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug("JWT verification failed: %s", e)
        raise ApiException(status.HTTP_401_UNAUTHORIZED, CODE_INVALID_TOKEN, "Invalid token")


security = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """Extract Bearer token from Authorization header. Raises 401 if missing."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiException(status.HTTP_401_UNAUTHORIZED, CODE_INVALID_TOKEN, "Authorization header missing")
    return credentials.credentials


def get_current_user(token: Annotated[str, Depends(get_bearer_token)]) -> store.User:
    """Dependency: valid Bearer token -> active user."""
    claims = verify_access_token(token)
    user = store.get_user(str(claims.get("sub", "")))
    if user is None or not user.is_active:
        raise ApiException(status.HTTP_401_UNAUTHORIZED, CODE_INVALID_TOKEN, "User not found")
    return user


def require_self_or_admin(user: store.User, user_id: str) -> None:
    if user.id != user_id and user.role != "admin":
        raise ApiException(status.HTTP_403_FORBIDDEN, CODE_FORBIDDEN, "Insufficient permissions")


CurrentUser = Annotated[store.User, Depends(get_current_user)]
