# backend/pharmasync/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the process by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pharmasync.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Replay window for client idempotency keys
    SYNC_IDEMPOTENCY_TTL_HOURS = int(os.environ.get("SYNC_IDEMPOTENCY_TTL_HOURS", "24"))

    # EMPLOYEE pulls only see this many days of sales/movement history
    SYNC_EMPLOYEE_HISTORY_DAYS = int(os.environ.get("SYNC_EMPLOYEE_HISTORY_DAYS", "30"))

    # Pulls re-read this far behind the watermark so rows stamped before
    # serverTime but committed after it are still delivered. Must exceed the
    # longest push transaction.
    SYNC_PULL_OVERLAP_SECONDS = int(os.environ.get("SYNC_PULL_OVERLAP_SECONDS", "60"))

    # Upper bound on any single entity array in a push body
    SYNC_MAX_BATCH_ITEMS = int(os.environ.get("SYNC_MAX_BATCH_ITEMS", "5000"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", str(24 * 7)))

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:3000").split(",")
        if o.strip()
    )
