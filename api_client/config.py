"""
API client configuration. Values from the environment, with local-development defaults.
No tokens or credentials in this file.
"""
import os

# Backend base URL; requests go to <base>/api<endpoint>
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:5000").rstrip("/")

# Per-request timeout (seconds) for ordinary backend calls
REQUEST_TIMEOUT = float(os.environ.get("API_REQUEST_TIMEOUT", "10"))

# Upper bound on one refresh call; a hanging refresh would otherwise block every queued request
REFRESH_TIMEOUT = float(os.environ.get("API_REFRESH_TIMEOUT", "10"))

# Refresh endpoint, relative to <base>/api
REFRESH_PATH = os.environ.get("API_REFRESH_PATH", "/auth/refresh-token")

# Structured error codes the backend uses for "access token expired" (401 body `code` or `error`)
TOKEN_EXPIRED_CODES = frozenset(
    c.strip() for c in os.environ.get("API_TOKEN_EXPIRED_CODES", "TOKEN_EXPIRED,token_expired").split(",") if c.strip()
)

# Also accept a 401 whose message mentions "expired" (older backends send no code)
EXPIRY_MESSAGE_FALLBACK = os.environ.get("API_EXPIRY_MESSAGE_FALLBACK", "1").lower() not in ("0", "false", "no")

# Optional JSON file for persisted tokens; unset means in-memory only
TOKEN_STORE_PATH = os.environ.get("API_TOKEN_STORE_PATH", "").strip() or None
