# backend/posbridge/config.py
from __future__ import annotations
import os

from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(RuntimeError):
    """Required configuration is missing; the service refuses to start."""


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _engine_options(database_url: str) -> dict:
    # SQLite uses a single-connection pool; only size real pools
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": _env_int("DATABASE_POOL_SIZE", 5),
        "pool_pre_ping": True,
    }


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Mirror store; Postgres in production, SQLite file for local runs
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///posbridge.sqlite3",
    )
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upstream POS REST API
    UPSTREAM_BASE_URL = os.environ.get("UPSTREAM_BASE_URL")
    UPSTREAM_TOKEN_URL = os.environ.get("UPSTREAM_TOKEN_URL")
    UPSTREAM_RETAILER = os.environ.get("UPSTREAM_RETAILER")
    UPSTREAM_CLIENT_ID = os.environ.get("UPSTREAM_CLIENT_ID")
    UPSTREAM_CLIENT_SECRET = os.environ.get("UPSTREAM_CLIENT_SECRET")
    UPSTREAM_SCOPES = os.environ.get("UPSTREAM_SCOPES", "PublicApi.Access")
    UPSTREAM_TIMEOUT_SECONDS = _env_float("UPSTREAM_TIMEOUT_SECONDS", 30.0)
    UPSTREAM_PAGE_SIZE = _env_int("UPSTREAM_PAGE_SIZE", 100)
    UPSTREAM_RETRY_DELAY_SECONDS = _env_float("UPSTREAM_RETRY_DELAY_SECONDS", 2.0)
    UPSTREAM_INVOICE_PAGE_DELAY_SECONDS = _env_float("UPSTREAM_INVOICE_PAGE_DELAY_SECONDS", 1.0)
    UPSTREAM_DEFAULT_BRANCH_ID = _env_int("UPSTREAM_DEFAULT_BRANCH_ID", None)

    # Webhooks
    WEBHOOK_SECRET = os.environ.get("UPSTREAM_WEBHOOK_SECRET")
    WEBHOOK_SOFT_DEADLINE_SECONDS = _env_float("WEBHOOK_SOFT_DEADLINE_SECONDS", 10.0)

    # Operator routes are disabled when no key is configured
    SYNC_API_KEY = os.environ.get("SYNC_API_KEY")

    # Scheduler
    SCHEDULER_TIMEZONE = os.environ.get("TIMEZONE", "Asia/Ho_Chi_Minh")
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "false").lower() in {"1", "true", "yes"}
    PRICE_TABLE_TRIGGER_URL = os.environ.get("PRICE_TABLE_TRIGGER_URL")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


REQUIRED_KEYS = (
    "SQLALCHEMY_DATABASE_URI",
    "UPSTREAM_BASE_URL",
    "UPSTREAM_RETAILER",
    "UPSTREAM_CLIENT_ID",
    "UPSTREAM_CLIENT_SECRET",
    "WEBHOOK_SECRET",
)


def validate_required(config, keys=REQUIRED_KEYS) -> None:
    """Raise ConfigurationError naming every missing key."""
    missing = [key for key in keys if not config.get(key)]
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")


def token_url(config) -> str:
    """Explicit token endpoint, else `<base>/connect/token` on the API host."""
    explicit = config.get("UPSTREAM_TOKEN_URL")
    if explicit:
        return explicit
    base = (config.get("UPSTREAM_BASE_URL") or "").rstrip("/")
    if not base:
        raise ConfigurationError("Missing required configuration: UPSTREAM_BASE_URL")
    return f"{base}/connect/token"
