"""
FastAPI dependency wiring.

Repository, gateway and notifier are process-wide singletons built from
settings. Tests replace them through `app.dependency_overrides`.
"""

from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from config import get_settings
from repositories.memory_pool_repository import InMemoryPoolRepository
from repositories.pool_repository import PoolRepository, SupabasePoolRepository
from services.collaborators import Actor, Notifier, PaymentGateway
from services.contribution_service import ContributionTracker
from services.notification_service import LoggingNotifier
from services.payout_service import PayoutEngine
from services.pool_service import PoolService
from services.stripe_gateway import StripeGateway


@lru_cache(maxsize=1)
def get_repository() -> PoolRepository:
    settings = get_settings()
    if settings.pool_store == "memory":
        return InMemoryPoolRepository()
    return SupabasePoolRepository(table=settings.supabase_pools_table)


@lru_cache(maxsize=1)
def get_gateway() -> Optional[PaymentGateway]:
    settings = get_settings()
    return StripeGateway(settings.stripe_secret_key, timeout_seconds=settings.gateway_timeout_seconds)


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    return LoggingNotifier()


def get_now() -> datetime:
    """Request clock (UTC)."""
    return datetime.now(timezone.utc)


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> Actor:
    """
    Identity established by the upstream session layer.

    The authenticating proxy forwards the user as X-User-Id / X-User-Email.
    """
    if not x_user_id or not x_user_email:
        raise HTTPException(status_code=401, detail={"error": "Unauthorized", "type": "Unauthorized", "missing_members": []})
    return Actor(user_id=x_user_id, email=x_user_email.strip().lower())


def get_pool_service(repository: PoolRepository = Depends(get_repository)) -> PoolService:
    return PoolService(repository, max_attempts=get_settings().pool_update_max_attempts)


def get_contribution_tracker(
    repository: PoolRepository = Depends(get_repository),
    notifier: Notifier = Depends(get_notifier),
) -> ContributionTracker:
    return ContributionTracker(repository, notifier, max_attempts=get_settings().pool_update_max_attempts)


def get_payout_engine(
    repository: PoolRepository = Depends(get_repository),
    gateway: Optional[PaymentGateway] = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> PayoutEngine:
    settings = get_settings()
    return PayoutEngine(
        repository,
        gateway,
        notifier,
        currency=settings.payout_currency,
        max_attempts=settings.pool_update_max_attempts,
    )
