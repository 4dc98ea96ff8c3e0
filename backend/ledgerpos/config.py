# backend/ledgerpos/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Device-local ledger store (SQLite file next to the instance)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///ledgerpos_local.sqlite3",
    )
    # Shared company store that the sync engine replays sales into
    SQLALCHEMY_BINDS = {
        "remote": os.environ.get(
            "REMOTE_DATABASE_URL",
            "sqlite:///ledgerpos_remote.sqlite3",
        ),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    COMPANY_ID = os.environ.get("LEDGERPOS_COMPANY_ID", "default-company")
    BRANCH_ID = os.environ.get("LEDGERPOS_BRANCH_ID", "branch-1")
    USER_ID = os.environ.get("LEDGERPOS_USER_ID") or None
    DEVICE_ID = os.environ.get("LEDGERPOS_DEVICE_ID", "web")

    SYNC_ENABLED = _env_flag("LEDGERPOS_SYNC_ENABLED", False)
    SYNC_INTERVAL_MS = int(os.environ.get("LEDGERPOS_SYNC_INTERVAL_MS", "15000"))
    SYNC_MAX_BATCH = int(os.environ.get("LEDGERPOS_SYNC_MAX_BATCH", "10"))
    # "oldest" drains FIFO; "newest" keeps the legacy newest-first selection
    SYNC_DRAIN_ORDER = os.environ.get("LEDGERPOS_SYNC_DRAIN_ORDER", "oldest")
    SYNC_RECONNECT_PROBE_MS = int(os.environ.get("LEDGERPOS_SYNC_RECONNECT_PROBE_MS", "2000"))

    DEFAULT_BAG_SIZE_KG = float(os.environ.get("LEDGERPOS_DEFAULT_BAG_SIZE_KG", "50"))
    ENGINE_LAZY_LOAD = True

    LOG_LEVEL = os.environ.get("LEDGERPOS_LOG_LEVEL", "INFO")
