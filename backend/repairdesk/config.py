# backend/repairdesk/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/repairdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///repairdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Ensure every organization has currencies and tax rates when the app boots.
    # Failures are logged per organization and never abort startup.
    BACKFILL_ON_STARTUP = _env_flag("BACKFILL_ON_STARTUP", True)

    # Currency / tax rate lists are cached per organization for this long.
    # Mutations invalidate immediately; 0 disables caching.
    REFERENCE_CACHE_TTL_SECONDS = float(os.environ.get("REFERENCE_CACHE_TTL_SECONDS", "60"))

    # Bounded retry for generated ticket / quote / invoice number collisions
    DOCUMENT_NUMBER_MAX_ATTEMPTS = int(os.environ.get("DOCUMENT_NUMBER_MAX_ATTEMPTS", "5"))

    QUOTE_VALIDITY_DAYS = int(os.environ.get("QUOTE_VALIDITY_DAYS", "30"))
