"""
Token storage for the API client: the access/refresh token pair.
MemoryTokenStore keeps them for the life of the process; JsonFileTokenStore persists them
to a JSON file (authToken, refreshToken) so a restarted process keeps its session.
"""
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "authToken"
REFRESH_TOKEN_KEY = "refreshToken"


class TokenStore(Protocol):
    def get_access_token(self) -> str | None: ...

    def get_refresh_token(self) -> str | None: ...

    def set_access_token(self, access_token: str) -> None: ...

    def set_tokens(self, access_token: str, refresh_token: str | None) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStore:
    def __init__(self, access_token: str | None = None, refresh_token: str | None = None):
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._lock = threading.Lock()

    def get_access_token(self) -> str | None:
        with self._lock:
            return self._access_token

    def get_refresh_token(self) -> str | None:
        with self._lock:
            return self._refresh_token

    def set_access_token(self, access_token: str) -> None:
        with self._lock:
            self._access_token = access_token

    def set_tokens(self, access_token: str, refresh_token: str | None) -> None:
        """Store both tokens (login/registration). A None refresh token keeps the current one."""
        with self._lock:
            self._access_token = access_token
            if refresh_token is not None:
                self._refresh_token = refresh_token

    def clear(self) -> None:
        with self._lock:
            self._access_token = None
            self._refresh_token = None


class JsonFileTokenStore:
    """
    Tokens in a small JSON file. Writes go to a temp file in the same directory and are
    renamed into place, so readers never see a half-written file.
    """

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable token file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str) and v}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".tokens-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def get_access_token(self) -> str | None:
        with self._lock:
            return self._read().get(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> str | None:
        with self._lock:
            return self._read().get(REFRESH_TOKEN_KEY)

    def set_access_token(self, access_token: str) -> None:
        with self._lock:
            data = self._read()
            data[ACCESS_TOKEN_KEY] = access_token
            self._write(data)

    def set_tokens(self, access_token: str, refresh_token: str | None) -> None:
        with self._lock:
            data = self._read()
            data[ACCESS_TOKEN_KEY] = access_token
            if refresh_token is not None:
                data[REFRESH_TOKEN_KEY] = refresh_token
            self._write(data)

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
