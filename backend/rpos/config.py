# backend/rpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/rpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///rpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Receipt numbers render as SERIES-00000001
    RECEIPT_NUMBER_PAD = int(os.environ.get("RECEIPT_NUMBER_PAD", "8"))

    # Lock contention on counters and balances
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_SECONDS = float(os.environ.get("RETRY_BACKOFF_SECONDS", "0.1"))

    AUTH_TOKEN_MAX_AGE_SECONDS = int(os.environ.get("AUTH_TOKEN_MAX_AGE_SECONDS", str(12 * 60 * 60)))

    KITCHEN_POLL_INTERVAL_SECONDS = float(os.environ.get("KITCHEN_POLL_INTERVAL_SECONDS", "3"))

    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "S/")
