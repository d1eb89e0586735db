"""
Authenticated request gateway. Every backend call goes through ApiGateway.execute, which
attaches the current access token and, when the backend reports the token expired, refreshes
it once (single-flight) and replays the request. Callers never see a recoverable expiry.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from api_client import events
from api_client.config import (
    API_BASE_URL,
    EXPIRY_MESSAGE_FALLBACK,
    REFRESH_PATH,
    REFRESH_TIMEOUT,
    REQUEST_TIMEOUT,
    TOKEN_EXPIRED_CODES,
    TOKEN_STORE_PATH,
)
from api_client.errors import (
    ApiError,
    MalformedResponseError,
    SessionExpiredError,
    TokenRejectedError,
)
from api_client.expiry import is_token_expired
from api_client.refresh import RefreshCoordinator
from api_client.token_store import JsonFileTokenStore, MemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)


@dataclass
class ApiResponse:
    """Backend response: status plus the JSON envelope {success, message?, data?, errors?, pagination?}."""

    status_code: int
    payload: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def _get(self, key: str) -> Any:
        return self.payload.get(key) if isinstance(self.payload, dict) else None

    @property
    def success(self) -> bool:
        return bool(self._get("success"))

    @property
    def message(self) -> str | None:
        return self._get("message")

    @property
    def data(self) -> Any:
        return self._get("data")

    @property
    def errors(self) -> list[str] | None:
        return self._get("errors")

    @property
    def pagination(self) -> dict | None:
        return self._get("pagination")

    def raise_for_error(self) -> "ApiResponse":
        """Raise ApiError unless 2xx; returns self for chaining."""
        if not self.ok:
            raise ApiError(
                self.message or "API request failed",
                status_code=self.status_code,
                payload=self.payload,
            )
        return self


class ApiGateway:
    def __init__(
        self,
        base_url: str = API_BASE_URL,
        *,
        token_store: TokenStore | None = None,
        client: httpx.AsyncClient | None = None,
        request_timeout: float = REQUEST_TIMEOUT,
        refresh_timeout: float | None = REFRESH_TIMEOUT,
        refresh_path: str = REFRESH_PATH,
        expired_codes: frozenset[str] = TOKEN_EXPIRED_CODES,
        expiry_message_fallback: bool = EXPIRY_MESSAGE_FALLBACK,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_store: TokenStore = token_store if token_store is not None else MemoryTokenStore()
        self._client = client if client is not None else httpx.AsyncClient(timeout=request_timeout)
        self._owns_client = client is None
        self.refresh_timeout = refresh_timeout
        self.refresh_path = refresh_path
        self.expired_codes = expired_codes
        self.expiry_message_fallback = expiry_message_fallback
        self.refresher = RefreshCoordinator(self._refresh_access_token, on_failure=self._end_session)

    async def __aenter__(self) -> "ApiGateway":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this gateway created it."""
        if self._owns_client:
            await self._client.aclose()

    def url_for(self, endpoint: str) -> str:
        return f"{self.base_url}/api{endpoint}"

    async def execute(
        self,
        endpoint: str,
        method: str = "GET",
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
        content: str | bytes | None = None,
        params: dict[str, Any] | None = None,
    ) -> ApiResponse:
        """
        Send one logical request with the current access token. Returns the response as-is for
        any status except a token-expiry 401, which is refreshed (once, shared with concurrent
        callers) and replayed. Transport errors propagate; they are not retried.
        Raises SessionExpiredError if the session cannot be recovered, and TokenRejectedError
        if the replayed request is reported expired again.
        """
        request = dict(method=method.upper(), headers=headers, json=json, content=content, params=params)
        sent_token = self.token_store.get_access_token()
        response = await self._send(endpoint, token=sent_token, **request)
        if not self._is_expired(response):
            return response

        token = await self._recover(sent_token)
        response = await self._send(endpoint, token=token, **request)
        if self._is_expired(response):
            logger.warning("Replayed %s %s still reported an expired token", method.upper(), endpoint)
            raise TokenRejectedError(
                response.message or "Access token rejected after refresh",
                status_code=response.status_code,
                payload=response.payload,
            )
        return response

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> ApiResponse:
        return (await self.execute(endpoint, "GET", params=params)).raise_for_error()

    async def post(self, endpoint: str, body: Any = None) -> ApiResponse:
        return (await self.execute(endpoint, "POST", json=body)).raise_for_error()

    async def put(self, endpoint: str, body: Any = None) -> ApiResponse:
        return (await self.execute(endpoint, "PUT", json=body)).raise_for_error()

    async def patch(self, endpoint: str, body: Any = None) -> ApiResponse:
        return (await self.execute(endpoint, "PATCH", json=body)).raise_for_error()

    async def delete(self, endpoint: str) -> ApiResponse:
        return (await self.execute(endpoint, "DELETE")).raise_for_error()

    def _is_expired(self, response: ApiResponse) -> bool:
        return is_token_expired(
            response.status_code,
            response.payload,
            codes=self.expired_codes,
            message_fallback=self.expiry_message_fallback,
        )

    async def _recover(self, sent_token: str | None) -> str:
        current = self.token_store.get_access_token()
        if current != sent_token and not self.refresher.is_refreshing:
            if current:
                # A refresh finished after this request went out; the stored token is already new.
                logger.debug("Request used a superseded token; replaying with the current one")
                return current
            if sent_token:
                # Tokens were cleared after this request went out (failed refresh or logout).
                logger.debug("Session ended while the request was in flight")
                raise SessionExpiredError()
        return await self.refresher.acquire_token()

    async def _send(
        self,
        endpoint: str,
        *,
        token: str | None,
        method: str,
        headers: dict[str, str] | None,
        json: Any,
        content: str | bytes | None,
        params: dict[str, Any] | None,
    ) -> ApiResponse:
        url = self.url_for(endpoint)
        merged = {"Content-Type": "application/json"}
        if token:
            merged["Authorization"] = f"Bearer {token}"
        if headers:
            merged.update(headers)
        logger.debug("API request: %s %s", method, url)
        r = await self._client.request(method, url, headers=merged, json=json, content=content, params=params)
        response = ApiResponse(r.status_code, _parse_body(r, endpoint), dict(r.headers))
        logger.debug("API response [%s]: %s", endpoint, r.status_code)
        return response

    async def _refresh_access_token(self) -> str:
        """Mint a new access token from the refresh token. Clears both tokens on any failure."""
        try:
            if self.refresh_timeout is None:
                return await self._request_new_access_token()
            return await asyncio.wait_for(self._request_new_access_token(), self.refresh_timeout)
        except Exception as e:
            self.token_store.clear()
            if isinstance(e, asyncio.TimeoutError):
                logger.warning("Token refresh timed out after %.1fs", self.refresh_timeout)
            if isinstance(e, SessionExpiredError):
                raise
            raise SessionExpiredError() from e

    async def _request_new_access_token(self) -> str:
        refresh_token = self.token_store.get_refresh_token()
        if not refresh_token:
            logger.info("No refresh token stored; session cannot be renewed")
            raise SessionExpiredError()
        r = await self._client.post(
            self.url_for(self.refresh_path),
            json={"refreshToken": refresh_token},
            headers={"Content-Type": "application/json"},
        )
        try:
            data = r.json()
        except ValueError:
            data = None
        access_token = None
        if r.is_success and isinstance(data, dict) and data.get("success"):
            access_token = (data.get("data") or {}).get("accessToken")
        if not access_token:
            logger.info("Refresh endpoint rejected the refresh token (status %s)", r.status_code)
            raise SessionExpiredError(status_code=r.status_code, payload=data)
        self.token_store.set_access_token(access_token)
        return access_token

    def _end_session(self, error: SessionExpiredError) -> None:
        logger.warning("Session expired; emitting %s", events.AUTH_LOGOUT)
        events.emit(events.AUTH_LOGOUT, reason=error.message)


def _parse_body(r: httpx.Response, endpoint: str) -> Any:
    if not r.content:
        return None
    try:
        return r.json()
    except ValueError as e:
        raise MalformedResponseError(
            f"Malformed JSON from {endpoint}",
            status_code=r.status_code,
            payload=r.text[:500],
        ) from e


_gateway: ApiGateway | None = None


def get_gateway() -> ApiGateway:
    """Process-wide gateway built from configuration (created on first use)."""
    global _gateway
    if _gateway is None:
        store = JsonFileTokenStore(TOKEN_STORE_PATH) if TOKEN_STORE_PATH else MemoryTokenStore()
        _gateway = ApiGateway(token_store=store)
    return _gateway


async def close_gateway() -> None:
    global _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None
