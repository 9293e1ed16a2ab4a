"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./libledger.db"
    log_level: str = "INFO"
    borrow_period_days: int = 14
    fine_per_day: float = 5.0
    # seconds to wait on a locked store or an exhausted pool
    store_timeout: float = 5.0
    recent_entries_limit: int = 100
    admin_token: str = "change-me"
    # fail approve/return instead of silently skipping the stock move
    strict_inventory: bool = False
    block_borrowing_with_fines: bool = False


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("LIBLEDGER_DB", Settings.database_url),
        log_level=os.getenv("LIBLEDGER_LOG", Settings.log_level).upper(),
        borrow_period_days=int(os.getenv("LIBLEDGER_BORROW_PERIOD_DAYS", Settings.borrow_period_days)),
        fine_per_day=float(os.getenv("LIBLEDGER_FINE_PER_DAY", Settings.fine_per_day)),
        store_timeout=float(os.getenv("LIBLEDGER_STORE_TIMEOUT", Settings.store_timeout)),
        recent_entries_limit=int(os.getenv("LIBLEDGER_RECENT_LIMIT", Settings.recent_entries_limit)),
        admin_token=os.getenv("LIBLEDGER_ADMIN_TOKEN", Settings.admin_token),
        strict_inventory=_env_bool("LIBLEDGER_STRICT_INVENTORY", Settings.strict_inventory),
        block_borrowing_with_fines=_env_bool("LIBLEDGER_BLOCK_ON_FINES", Settings.block_borrowing_with_fines),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
