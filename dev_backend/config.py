"""
Development backend configuration. Implements the REST contract the API client consumes.
No secrets in this file; a signing secret is generated per process unless provided.
"""
import os
import secrets

# HS256 secret for access tokens; random per process when unset (tokens die with the process)
JWT_SECRET = os.environ.get("DEV_BACKEND_JWT_SECRET") or secrets.token_urlsafe(32)

JWT_ALGORITHM = "HS256"

# Access token lifetime (seconds). Short on purpose so the client's refresh path gets exercised.
ACCESS_TOKEN_EXPIRES = int(os.environ.get("DEV_BACKEND_ACCESS_TOKEN_EXPIRES", "60"))

# Optional seed account (no default credentials)
SEED_USER = os.environ.get("DEV_BACKEND_SEED_USER")
SEED_PASSWORD = os.environ.get("DEV_BACKEND_SEED_PASSWORD")

# Error codes in the {success: false, code, message} envelope
CODE_TOKEN_EXPIRED = "TOKEN_EXPIRED"
CODE_INVALID_TOKEN = "INVALID_TOKEN"
CODE_INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
CODE_INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
CODE_FORBIDDEN = "FORBIDDEN"
