"""
Application settings.

Values are read from the environment (a `.env` file in the project root is
loaded first, as the Supabase client has always done).

Environment variables:
- POOL_STORE: "supabase" or "memory" (defaults to supabase when SUPABASE_URL is set)
- SUPABASE_URL / SUPABASE_KEY: required for the supabase store
- SUPABASE_POOLS_TABLE: pool document table (default "pools")
- STRIPE_SECRET_KEY: payment gateway key
- GATEWAY_TIMEOUT_SECONDS: gateway HTTP timeout (default 30)
- PAYOUT_CURRENCY: transfer currency (default "usd")
- POOL_UPDATE_MAX_ATTEMPTS: optimistic-concurrency retry budget (default 5)
- LOG_LEVEL: logging level name (default "INFO")
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


@dataclass(frozen=True, slots=True)
class Settings:
    pool_store: str
    supabase_url: str | None
    supabase_key: str | None
    supabase_pools_table: str
    stripe_secret_key: str | None
    gateway_timeout_seconds: float
    payout_currency: str
    pool_update_max_attempts: int
    log_level: str


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise RuntimeError(f"Environment variable {name} must be >= 1")
    return value


def load_settings() -> Settings:
    """Build Settings from the current environment."""

    supabase_url = os.getenv("SUPABASE_URL") or None
    default_store = "supabase" if supabase_url else "memory"
    pool_store = (os.getenv("POOL_STORE") or default_store).strip().lower()
    if pool_store not in ("supabase", "memory"):
        raise RuntimeError(f"Unsupported POOL_STORE {pool_store!r}. Use 'supabase' or 'memory'.")

    return Settings(
        pool_store=pool_store,
        supabase_url=supabase_url,
        supabase_key=os.getenv("SUPABASE_KEY") or None,
        supabase_pools_table=os.getenv("SUPABASE_POOLS_TABLE", "pools"),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY") or None,
        gateway_timeout_seconds=float(_int_env("GATEWAY_TIMEOUT_SECONDS", 30)),
        payout_currency=os.getenv("PAYOUT_CURRENCY", "usd").lower(),
        pool_update_max_attempts=_int_env("POOL_UPDATE_MAX_ATTEMPTS", 5),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


__all__ = ["Settings", "load_settings", "get_settings"]
