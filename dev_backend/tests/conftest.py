"""
Pytest configuration for dev_backend. Fixed signing secret and no seed account during tests.
"""
import os

os.environ.setdefault("DEV_BACKEND_JWT_SECRET", "test-secret-not-for-production")
os.environ.pop("DEV_BACKEND_SEED_USER", None)
os.environ.pop("DEV_BACKEND_SEED_PASSWORD", None)
