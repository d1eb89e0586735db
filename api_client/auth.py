"""
Account operations on top of the gateway: register, login, logout, profile.
Login and registration store both tokens; logout always clears them.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from api_client.errors import ApiError, AuthError
from api_client.gateway import ApiGateway

logger = logging.getLogger(__name__)


def _parse_time(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class User:
    id: str
    email: str
    display_name: str | None = None
    photo_url: str | None = None
    role: str = "user"
    is_active: bool = True
    email_verified: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "User":
        """Build from the backend user record; backend `name` becomes display_name."""
        known = {
            "_id", "id", "email", "name", "displayName", "photoURL", "role",
            "isActive", "emailVerified", "createdAt", "updatedAt", "lastLoginAt",
        }
        return cls(
            id=str(data.get("_id") or data.get("id") or ""),
            email=data.get("email", ""),
            display_name=data.get("name") or data.get("displayName"),
            photo_url=data.get("photoURL"),
            role=data.get("role", "user"),
            is_active=bool(data.get("isActive", True)),
            email_verified=bool(data.get("emailVerified", False)),
            created_at=_parse_time(data.get("createdAt")),
            updated_at=_parse_time(data.get("updatedAt")),
            last_login_at=_parse_time(data.get("lastLoginAt")),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class AuthUser:
    user: User
    token: str


class AuthService:
    def __init__(self, gateway: ApiGateway):
        self.gateway = gateway

    def _session_from(self, data: Any, action: str) -> AuthUser:
        if not isinstance(data, dict) or not isinstance(data.get("user"), dict) or not data.get("accessToken"):
            raise AuthError(f"{action} failed")
        self.gateway.token_store.set_tokens(data["accessToken"], data.get("refreshToken"))
        return AuthUser(user=User.from_payload(data["user"]), token=data["accessToken"])

    async def register_user(self, email: str, password: str, display_name: str | None = None) -> AuthUser:
        body = {
            "email": email,
            "password": password,
            "name": display_name or email.split("@")[0],
        }
        try:
            result = await self.gateway.post("/auth/register", body)
        except ApiError as e:
            raise AuthError(e.message or "Failed to register user") from e
        if not result.success:
            raise AuthError(result.message or "Registration failed")
        return self._session_from(result.data, "Registration")

    async def login_user(self, email: str, password: str) -> AuthUser:
        try:
            result = await self.gateway.post("/auth/login", {"email": email, "password": password})
        except ApiError as e:
            raise AuthError(e.message or "Failed to login") from e
        if not result.success:
            raise AuthError(result.message or "Login failed")
        return self._session_from(result.data, "Login")

    async def logout_user(self) -> None:
        """Invalidate the refresh token server-side when logged in; tokens are cleared regardless."""
        try:
            if self.gateway.token_store.get_access_token():
                await self.gateway.post("/auth/logout", {})
        except ApiError as e:
            logger.warning("Logout request failed: %s", e.message)
        finally:
            self.gateway.token_store.clear()

    async def _fetch_user(self, endpoint: str) -> User | None:
        try:
            result = await self.gateway.get(endpoint)
        except ApiError as e:
            logger.info("Could not load user from %s: %s", endpoint, e.message)
            return None
        data = result.data if result.success else None
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            return User.from_payload(data["user"])
        return None

    async def get_current_user(self) -> User | None:
        return await self._fetch_user("/auth/profile")

    async def get_user_by_id(self, user_id: str) -> User | None:
        return await self._fetch_user(f"/users/{user_id}")

    async def update_user_profile(self, user_id: str, updates: dict[str, Any]) -> User:
        body = dict(updates)
        if "display_name" in body:
            body["name"] = body.pop("display_name")
        try:
            result = await self.gateway.put(f"/users/{user_id}", body)
        except ApiError as e:
            raise AuthError(e.message or "Failed to update user") from e
        data = result.data
        if not result.success or not isinstance(data, dict) or not isinstance(data.get("user"), dict):
            raise AuthError("Failed to update user profile")
        return User.from_payload(data["user"])

    async def is_admin(self, user_id: str) -> bool:
        user = await self.get_user_by_id(user_id)
        return user is not None and user.is_admin
