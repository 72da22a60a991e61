# backend/autoshop/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/autoshop.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///autoshop.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # External identity provider that verifies bearer tokens
    IDENTITY_PROVIDER_URL = os.environ.get("IDENTITY_PROVIDER_URL", "http://127.0.0.1:9999/auth/v1/user")
    IDENTITY_PROVIDER_API_KEY = os.environ.get("IDENTITY_PROVIDER_API_KEY")
    IDENTITY_PROVIDER_TIMEOUT = float(os.environ.get("IDENTITY_PROVIDER_TIMEOUT", "5"))

    # Audit trail is best-effort; disabling it never changes API results
    AUDIT_ENABLED = os.environ.get("AUDIT_ENABLED", "true").lower() == "true"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Listing endpoints
    DEFAULT_PAGE_LIMIT = 50
    MAX_PAGE_LIMIT = 200
