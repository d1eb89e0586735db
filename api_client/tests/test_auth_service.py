"""
End-to-end tests: AuthService and ApiGateway against the development backend (in-process ASGI).
"""
import asyncio
from contextlib import asynccontextmanager

import httpx
import pytest

from api_client.auth import AuthService
from api_client.errors import AuthError, SessionExpiredError
from api_client.gateway import ApiGateway
from api_client.token_store import MemoryTokenStore
from dev_backend.auth import issue_access_token
from dev_backend.main import app


@asynccontextmanager
async def _service():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport) as client:
        gw = ApiGateway("http://testserver", token_store=MemoryTokenStore(), client=client)
        yield AuthService(gw)


@pytest.mark.asyncio
async def test_register_stores_tokens_and_maps_user(fresh_dev_backend):
    async with _service() as auth:
        session = await auth.register_user("Ada@Example.com", "secret-pw")
        store = auth.gateway.token_store
        assert store.get_access_token() == session.token
        assert store.get_refresh_token()
    assert session.user.email == "ada@example.com"
    assert session.user.display_name == "Ada"
    assert session.user.role == "user"
    assert session.user.created_at is not None


@pytest.mark.asyncio
async def test_register_duplicate_email_fails(fresh_dev_backend):
    async with _service() as auth:
        await auth.register_user("dup@example.com", "secret-pw")
        with pytest.raises(AuthError) as exc_info:
            await auth.register_user("dup@example.com", "secret-pw")
    assert "already registered" in str(exc_info.value)


@pytest.mark.asyncio
async def test_login_and_profile(fresh_dev_backend):
    fresh_dev_backend.create_user("bob@example.com", "hunter22", "Bob")
    async with _service() as auth:
        session = await auth.login_user("bob@example.com", "hunter22")
        me = await auth.get_current_user()
    assert me is not None
    assert me.id == session.user.id
    assert me.display_name == "Bob"
    assert me.last_login_at is not None


@pytest.mark.asyncio
async def test_login_bad_password_does_not_refresh(fresh_dev_backend):
    fresh_dev_backend.create_user("bob@example.com", "hunter22", "Bob")
    async with _service() as auth:
        with pytest.raises(AuthError) as exc_info:
            await auth.login_user("bob@example.com", "wrong-pw")
    assert "Invalid credentials" in str(exc_info.value)
    assert fresh_dev_backend.refresh_calls == 0


@pytest.mark.asyncio
async def test_expired_access_token_recovered_once_for_burst(fresh_dev_backend, logout_events):
    async with _service() as auth:
        session = await auth.register_user("eve@example.com", "secret-pw")
        user = fresh_dev_backend.get_user(session.user.id)
        expired = issue_access_token(user, expires_in=-30)
        auth.gateway.token_store.set_access_token(expired)

        results = await asyncio.gather(*(auth.gateway.get("/projects") for _ in range(4)))
        assert auth.gateway.token_store.get_access_token() != expired

    assert all(r.success for r in results)
    assert fresh_dev_backend.refresh_calls == 1
    assert logout_events == []


@pytest.mark.asyncio
async def test_update_profile_and_is_admin(fresh_dev_backend):
    async with _service() as auth:
        session = await auth.register_user("carol@example.com", "secret-pw", display_name="Carol")
        updated = await auth.update_user_profile(session.user.id, {"display_name": "Caroline"})
        assert await auth.is_admin(session.user.id) is False
    assert updated.display_name == "Caroline"


@pytest.mark.asyncio
async def test_other_users_record_is_forbidden(fresh_dev_backend):
    other = fresh_dev_backend.create_user("other@example.com", "secret-pw", "Other")
    async with _service() as auth:
        await auth.register_user("me@example.com", "secret-pw")
        assert await auth.get_user_by_id(other.id) is None
        r = await auth.gateway.execute(f"/users/{other.id}")
    assert r.status_code == 403
    assert fresh_dev_backend.refresh_calls == 0


@pytest.mark.asyncio
async def test_logout_revokes_session(fresh_dev_backend, logout_events):
    async with _service() as auth:
        session = await auth.register_user("dan@example.com", "secret-pw")
        refresh_token = auth.gateway.token_store.get_refresh_token()
        await auth.logout_user()
        store = auth.gateway.token_store
        assert store.get_access_token() is None
        assert store.get_refresh_token() is None

        # an old refresh token no longer works server-side
        user = fresh_dev_backend.get_user(session.user.id)
        store.set_tokens(issue_access_token(user, expires_in=-30), refresh_token)
        with pytest.raises(SessionExpiredError):
            await auth.gateway.get("/auth/profile")
        assert store.get_refresh_token() is None

    assert len(logout_events) == 1


@pytest.mark.asyncio
async def test_logout_without_session_only_clears(fresh_dev_backend):
    async with _service() as auth:
        await auth.logout_user()
        assert auth.gateway.token_store.get_access_token() is None
