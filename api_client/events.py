"""
Process-wide session events. The session/UI layer subscribes to AUTH_LOGOUT to send the
user back to login when the API client gives up on refreshing.
"""
import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

AUTH_LOGOUT = "auth:logout"

_listeners: dict[str, list[Callable[..., Any]]] = {}
_lock = threading.Lock()


def subscribe(event: str, handler: Callable[..., Any]) -> None:
    with _lock:
        _listeners.setdefault(event, []).append(handler)


def unsubscribe(event: str, handler: Callable[..., Any]) -> None:
    """Remove handler; unknown handlers are ignored."""
    with _lock:
        handlers = _listeners.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)


def emit(event: str, **payload: Any) -> int:
    """
    Call every handler for event in subscription order. Returns the number of handlers called.
    A failing handler is logged and does not stop the rest.
    """
    with _lock:
        handlers = list(_listeners.get(event, ()))
    for handler in handlers:
        try:
            handler(**payload)
        except Exception:
            logger.exception("Handler %r for %s failed", handler, event)
    return len(handlers)
