"""
Decide whether a backend response means "access token expired" (refreshable) as opposed to
any other 401 such as bad credentials or a forged token.
"""
from collections.abc import Collection
from typing import Any

from api_client.config import EXPIRY_MESSAGE_FALLBACK, TOKEN_EXPIRED_CODES


def is_token_expired(
    status_code: int,
    payload: Any,
    *,
    codes: Collection[str] = TOKEN_EXPIRED_CODES,
    message_fallback: bool = EXPIRY_MESSAGE_FALLBACK,
) -> bool:
    """
    True only for a 401 whose JSON body carries an expiry code (`code` or `error` field),
    or, with message_fallback, whose `message` mentions "expired".
    """
    if status_code != 401 or not isinstance(payload, dict):
        return False
    for field in ("code", "error"):
        value = payload.get(field)
        if isinstance(value, str) and value in codes:
            return True
    if message_fallback:
        message = payload.get("message")
        return isinstance(message, str) and "expired" in message.lower()
    return False
