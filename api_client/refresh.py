"""
Single-flight access token refresh.

The first caller that needs a new token becomes the refresher: it starts the refresh as a
task owned by the coordinator and awaits it through asyncio.shield, so a refresher that is
cancelled (for example by its own timeout) leaves the refresh running for everyone else.
Callers who ask while it runs wait on a future in FIFO order. When the refresh ends, the flag
is cleared and the queue is swapped out in one step, then every waiter is settled with the
new token or with its own SessionExpiredError, before the refresher itself resumes. A later
expiry starts a new, independent cycle.

Flag and queue are guarded by a threading.Lock that is never held across an await, so the
check-then-elect step stays atomic even when the host runs other threads. Futures belong to
the event loop of the coroutine that created them and are settled thread-safely.
"""
import asyncio
import logging
import threading
from collections import deque
from collections.abc import Awaitable, Callable

from api_client.errors import SESSION_EXPIRED_MESSAGE, SessionExpiredError

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    def __init__(
        self,
        refresh: Callable[[], Awaitable[str]],
        *,
        on_failure: Callable[[SessionExpiredError], None] | None = None,
    ):
        self._refresh = refresh
        self._on_failure = on_failure
        self._lock = threading.Lock()
        self._refreshing = False
        self._waiters: deque[asyncio.Future[str]] = deque()
        self._task: asyncio.Task[str] | None = None

    @property
    def is_refreshing(self) -> bool:
        with self._lock:
            return self._refreshing

    @property
    def pending(self) -> int:
        """Number of callers waiting on the refresh in flight."""
        with self._lock:
            return len(self._waiters)

    async def acquire_token(self) -> str:
        """
        Return a new access token. Exactly one refresh runs per cycle no matter how many
        callers arrive while it is in flight. Raises SessionExpiredError if it fails.
        """
        waiter: asyncio.Future[str] | None = None
        with self._lock:
            if self._refreshing:
                waiter = asyncio.get_running_loop().create_future()
                self._waiters.append(waiter)
            else:
                self._refreshing = True
        if waiter is not None:
            logger.debug("Token refresh in progress; request queued")
            return await waiter

        task = asyncio.get_running_loop().create_task(self._run_refresh())
        self._task = task
        task.add_done_callback(self._refresh_done)
        return await asyncio.shield(task)

    def _refresh_done(self, task: "asyncio.Task[str]") -> None:
        # the refresher may have been cancelled; nobody else reads the task's outcome
        if not task.cancelled():
            task.exception()
        if self._task is task:
            self._task = None

    async def _run_refresh(self) -> str:
        logger.info("Access token expired; refreshing")
        try:
            token = await self._refresh()
        except asyncio.CancelledError:
            # loop shutting down; nobody may stay queued
            self._settle(error=SessionExpiredError("Token refresh was cancelled"))
            raise
        except Exception as exc:
            error = exc if isinstance(exc, SessionExpiredError) else SessionExpiredError()
            released = self._settle(error=error)
            logger.warning("Token refresh failed; %d queued request(s) rejected", released)
            if self._on_failure is not None:
                self._on_failure(error)
            if error is exc:
                raise
            raise error from exc

        released = self._settle(token=token)
        logger.info("Access token refreshed; replaying %d queued request(s)", released)
        return token

    def _settle(self, *, token: str | None = None, error: SessionExpiredError | None = None) -> int:
        with self._lock:
            waiters = self._waiters
            self._waiters = deque()
            self._refreshing = False
        released = 0
        for waiter in waiters:
            if waiter.done():
                # caller was cancelled while queued
                continue
            if error is not None:
                _resolve(waiter, exception=SessionExpiredError(error.message or SESSION_EXPIRED_MESSAGE))
            else:
                _resolve(waiter, result=token)
            released += 1
        return released


def _resolve(
    waiter: asyncio.Future[str],
    *,
    result: str | None = None,
    exception: BaseException | None = None,
) -> None:
    """Settle waiter from whichever thread the refresher runs on."""

    def _set() -> None:
        if waiter.done():
            return
        if exception is not None:
            waiter.set_exception(exception)
        else:
            waiter.set_result(result)

    loop = waiter.get_loop()
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        _set()
    else:
        loop.call_soon_threadsafe(_set)
