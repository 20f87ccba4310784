"""
Pool lifecycle service.

Creates pools, adds members and records where each member wants to receive
their payout. Round and payout transitions live in the contribution and
payout services.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import uuid4

from domain.errors import ValidationError
from domain.member import Member, MemberRole, MemberStatus
from domain.payment_links import PayoutMethod, PayoutMethodType, sanitize_handle
from domain.pool import Pool
from domain.schedule import parse_frequency
from domain.time import require_utc_timestamp
from repositories.pool_repository import PoolRepository
from services.atomic import DEFAULT_MAX_ATTEMPTS, load_pool, update_pool_atomically
from services.collaborators import Actor

logger = logging.getLogger(__name__)

MIN_ROUNDS = 2


def _require_name(value: str, *, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


class PoolService:
    def __init__(self, repository: PoolRepository, *, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        self.repository = repository
        self.max_attempts = max_attempts

    def create_pool(
        self,
        actor: Actor,
        *,
        name: str,
        creator_name: str,
        contribution_amount: int,
        frequency: str,
        total_rounds: int,
        first_payout_date: datetime,
        now: datetime,
        description: str = "",
    ) -> Pool:
        """
        Create a pool with the caller as its administrator at position 1.

        Raises:
            ValidationError: for a non-positive amount, unknown frequency,
                fewer than two rounds or a payout date that is not in the future
        """

        require_utc_timestamp("now", now)
        name = _require_name(name, field="Pool name")
        creator_name = _require_name(creator_name, field="Member name")
        resolved_frequency = parse_frequency(frequency)

        if isinstance(contribution_amount, bool) or not isinstance(contribution_amount, int) or contribution_amount <= 0:
            raise ValidationError("Contribution amount must be a positive whole number")
        if isinstance(total_rounds, bool) or not isinstance(total_rounds, int) or total_rounds < MIN_ROUNDS:
            raise ValidationError(f"A pool needs at least {MIN_ROUNDS} rounds")
        if first_payout_date.tzinfo is None:
            raise ValidationError("First payout date must include a timezone")
        first_payout_date = first_payout_date.astimezone(timezone.utc)
        if first_payout_date <= now:
            raise ValidationError("First payout date must be in the future")

        creator = Member(
            member_id=1,
            name=creator_name,
            email=actor.email.strip().lower(),
            position=1,
            role=MemberRole.ADMIN,
            status=MemberStatus.CURRENT,
        )
        pool = Pool(
            pool_id=str(uuid4()),
            name=name,
            description=description or "",
            contribution_amount=contribution_amount,
            frequency=resolved_frequency,
            total_rounds=total_rounds,
            next_payout_date=first_payout_date,
            first_payout_date=first_payout_date,
            created_at=now,
            members=(creator,),
            next_member_id=2,
        )

        created = self.repository.create(pool)
        logger.info(
            f"Pool {created.pool_id} created by {creator.email}",
            extra={"pool_id": created.pool_id, "frequency": resolved_frequency.value, "total_rounds": total_rounds},
        )
        return created

    def get_pool(self, pool_id: str, actor: Actor) -> Pool:
        pool = load_pool(self.repository, pool_id)
        pool.require_member(actor.email)
        return pool

    def add_member(self, pool_id: str, actor: Actor, *, name: str, email: str) -> Tuple[Pool, Member]:
        """Add a member at the next free rotation position. Admin only."""

        name = _require_name(name, field="Member name")
        email = _require_name(email, field="Email")
        if "@" not in email:
            raise ValidationError("A valid email address is required")

        def mutation(pool: Pool) -> Tuple[Pool, Member]:
            pool.require_admin(actor.email, action="add members")
            return pool.add_member(name=name, email=email)

        pool, member = update_pool_atomically(self.repository, pool_id, mutation, max_attempts=self.max_attempts)
        logger.info(
            f"Member {member.member_id} added to pool {pool_id} at position {member.position}",
            extra={"pool_id": pool_id, "member_id": member.member_id, "position": member.position},
        )
        return pool, member

    def set_payout_method(
        self,
        pool_id: str,
        actor: Actor,
        *,
        method_type: Optional[str] = None,
        handle: Optional[str] = None,
        display_name: Optional[str] = None,
        payout_account_id: Optional[str] = None,
    ) -> Member:
        """Record the caller's own payout destination (app handle and/or gateway account)."""

        payout_method: Optional[PayoutMethod] = None
        if method_type is not None:
            try:
                resolved = PayoutMethodType(str(method_type).strip().lower())
            except ValueError:
                supported = ", ".join(t.value for t in PayoutMethodType)
                raise ValidationError(f"Unsupported payout method '{method_type}'. Use one of: {supported}") from None
            payout_method = PayoutMethod(
                type=resolved,
                handle=sanitize_handle(resolved, handle or ""),
                display_name=display_name,
            )

        account = (payout_account_id or "").strip() or None
        if payout_method is None and account is None:
            raise ValidationError("Provide a payout method or a payout account")

        def mutation(pool: Pool) -> Tuple[Pool, Member]:
            member = pool.require_member(actor.email)
            updated = member
            if payout_method is not None:
                updated = replace(updated, payout_method=payout_method)
            if account is not None:
                updated = replace(updated, payout_account_id=account)
            return pool.with_member(updated), updated

        _, member = update_pool_atomically(self.repository, pool_id, mutation, max_attempts=self.max_attempts)
        return member


__all__ = ["PoolService", "MIN_ROUNDS"]
