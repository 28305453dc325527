# backend/storeflow/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storeflow.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Unit-of-work retry on lock timeouts / stale versions
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "3"))
    TX_RETRY_BACKOFF = float(os.environ.get("TX_RETRY_BACKOFF", "0.1"))

    # Observational (non-critical) audit events
    AUDIT_ASYNC_ENABLED = os.environ.get("AUDIT_ASYNC_ENABLED", "true").lower() == "true"
    AUDIT_QUEUE_MAXSIZE = int(os.environ.get("AUDIT_QUEUE_MAXSIZE", "1000"))
    AUDIT_RETRY_ATTEMPTS = int(os.environ.get("AUDIT_RETRY_ATTEMPTS", "3"))
    AUDIT_RETRY_BACKOFF = float(os.environ.get("AUDIT_RETRY_BACKOFF", "0.2"))
