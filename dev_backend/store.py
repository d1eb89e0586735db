"""
In-memory users, refresh tokens and projects for the development backend.
Lab use only; state lives for the life of the process behind one lock.
"""
import logging
import secrets
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import bcrypt

from dev_backend.config import SEED_PASSWORD, SEED_USER

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    # Bcrypt has a 72-byte limit
    raw = password.encode("utf-8")
    if len(raw) > 72:
        raw = raw[:72]
    return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    raw = plain.encode("utf-8")[:72]
    return bcrypt.checkpw(raw, hashed.encode("utf-8"))


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    id: str
    email: str
    name: str
    password_hash: str
    role: str = "user"
    is_active: bool = True
    email_verified: bool = False
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    last_login_at: datetime | None = None

    def to_public(self) -> dict:
        """User record as sent to clients; never includes the password hash."""
        return {
            "_id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "isActive": self.is_active,
            "emailVerified": self.email_verified,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "lastLoginAt": self.last_login_at.isoformat() if self.last_login_at else None,
        }


_users: dict[str, User] = {}
_refresh_tokens: dict[str, str] = {}  # token -> user id
_projects: list[dict] = []
_lock = threading.Lock()

# Number of /auth/refresh-token calls served (success or not); tests assert on it
refresh_calls = 0


def reset() -> None:
    """Drop all state (tests)."""
    global refresh_calls
    with _lock:
        _users.clear()
        _refresh_tokens.clear()
        _projects.clear()
        refresh_calls = 0


def create_user(email: str, password: str, name: str, role: str = "user") -> User:
    """Create a user. Raises ValueError if the email is taken."""
    email = email.strip().lower()
    with _lock:
        if any(u.email == email for u in _users.values()):
            raise ValueError("Email already registered")
        user = User(id=uuid.uuid4().hex, email=email, name=name, password_hash=hash_password(password), role=role)
        _users[user.id] = user
    return user


def authenticate(email: str, password: str) -> User | None:
    email = email.strip().lower()
    with _lock:
        user = next((u for u in _users.values() if u.email == email), None)
    if user is None or not user.is_active or not verify_password(password, user.password_hash):
        return None
    with _lock:
        user.last_login_at = _now()
    return user


def get_user(user_id: str) -> User | None:
    with _lock:
        return _users.get(user_id)


def update_user(user_id: str, updates: dict) -> User | None:
    """Apply profile updates (name only for non-admin fields)."""
    with _lock:
        user = _users.get(user_id)
        if user is None:
            return None
        if isinstance(updates.get("name"), str) and updates["name"].strip():
            user.name = updates["name"].strip()
        user.updated_at = _now()
        return user


def issue_refresh_token(user_id: str) -> str:
    token = secrets.token_urlsafe(48)
    with _lock:
        _refresh_tokens[token] = user_id
    return token


def user_for_refresh_token(token: str) -> User | None:
    """Resolve a refresh token and count the call."""
    global refresh_calls
    with _lock:
        refresh_calls += 1
        user_id = _refresh_tokens.get(token)
        return _users.get(user_id) if user_id else None


def revoke_refresh_tokens(user_id: str) -> int:
    with _lock:
        revoked = [t for t, uid in _refresh_tokens.items() if uid == user_id]
        for t in revoked:
            del _refresh_tokens[t]
    return len(revoked)


def list_projects(owner_id: str) -> list[dict]:
    with _lock:
        return [p for p in _projects if p["ownerId"] == owner_id]


def add_project(owner_id: str, title: str, description: str = "") -> dict:
    project = {
        "_id": uuid.uuid4().hex,
        "ownerId": owner_id,
        "title": title,
        "description": description,
        "createdAt": _now().isoformat(),
    }
    with _lock:
        _projects.append(project)
    return project


def seed_from_env() -> None:
    """Create the seed user from env if set and missing."""
    if not (SEED_USER and SEED_PASSWORD):
        return
    try:
        create_user(SEED_USER, SEED_PASSWORD, SEED_USER.split("@")[0], role="admin")
        logger.info("Seeded user: %s", SEED_USER)
    except ValueError:
        logger.debug("User already exists: %s", SEED_USER)
