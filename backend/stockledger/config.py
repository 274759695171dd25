# backend/stockledger/config.py
from __future__ import annotations
import os

from flask import current_app, has_app_context


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Unit-of-work retry on lock contention / stale versions
    STOCKLEDGER_RETRY_ATTEMPTS = int(os.environ.get("STOCKLEDGER_RETRY_ATTEMPTS", "3"))
    STOCKLEDGER_RETRY_BACKOFF = float(os.environ.get("STOCKLEDGER_RETRY_BACKOFF", "0.1"))

    # Listing
    STOCKLEDGER_PAGE_SIZE = int(os.environ.get("STOCKLEDGER_PAGE_SIZE", "50"))
    STOCKLEDGER_MAX_PAGE_SIZE = int(os.environ.get("STOCKLEDGER_MAX_PAGE_SIZE", "200"))
    STOCKLEDGER_CUSTOMER_SEARCH_LIMIT = int(os.environ.get("STOCKLEDGER_CUSTOMER_SEARCH_LIMIT", "50"))

    STOCKLEDGER_MAX_UNITS_PER_BATCH = int(os.environ.get("STOCKLEDGER_MAX_UNITS_PER_BATCH", "1000"))


def setting(name: str):
    """Read a tunable from the active app config, falling back to Config."""
    if has_app_context() and name in current_app.config:
        return current_app.config[name]
    return getattr(Config, name)
