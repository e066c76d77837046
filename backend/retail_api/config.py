# backend/retail_api/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///retail.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Sessions
    SESSION_ABSOLUTE_TIMEOUT_HOURS = _int_env("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _int_env("SESSION_IDLE_TIMEOUT_HOURS", 2)

    # Passwords and lockout
    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)
    MAX_LOGIN_ATTEMPTS = _int_env("MAX_LOGIN_ATTEMPTS", 5)
    LOCK_TIME_MINUTES = _int_env("LOCK_TIME_MINUTES", 15)

    # Unit-of-work retry on write conflicts
    RETRY_ATTEMPTS = _int_env("RETRY_ATTEMPTS", 3)
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.1"))

    # Report cache (seconds)
    CACHE_DEFAULT_TTL = _int_env("CACHE_DEFAULT_TTL", 60)
    CACHE_DASHBOARD_TTL = _int_env("CACHE_DASHBOARD_TTL", 120)
    CACHE_STORE_STATS_TTL = _int_env("CACHE_STORE_STATS_TTL", 300)

    CORS_ORIGINS = os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    )
