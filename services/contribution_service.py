"""
Contribution tracking service.

Handles:
- Per-member collection status for the current round
- Manual (off-platform) contributions recorded as admin-verified
- Round payment tracking actions (confirm, verify, dispute, late, excuse, remind)
- Contributions captured by the payment processor (pending -> completed/failed)

Every mutation runs inside `update_pool_atomically` and re-derives the round's
payout status (pending_collection <-> ready_to_pay). Notifications are sent
after the commit and never undo it.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple

from domain.errors import AlreadyContributed, Forbidden, InvalidState, NotFound, ValidationError
from domain.member import Member
from domain.pool import PayoutStatus, Pool
from domain.round_payment import RoundPayment, RoundPaymentStatus
from domain.rounds import RoundStatus, recompute_payout_status, round_status
from domain.time import require_utc_timestamp
from domain.transaction import ContributionTransaction, TransactionStatus
from repositories.pool_repository import PoolRepository
from services.atomic import DEFAULT_MAX_ATTEMPTS, load_pool, update_pool_atomically
from services.collaborators import Actor, Notifier
from services.notification_service import (
    PAYMENT_RECORDED,
    PAYMENT_REMINDER,
    PAYMENT_VERIFIED,
    send_notification,
)

logger = logging.getLogger(__name__)

REMINDER_COOLDOWN = timedelta(hours=24)

MANUAL_METHODS = frozenset({"venmo", "cashapp", "paypal", "zelle", "cash", "other"})


class RoundPaymentAction(str, Enum):
    MEMBER_CONFIRM = "member_confirm"
    ADMIN_VERIFY = "admin_verify"
    DISPUTE = "dispute"
    MARK_LATE = "mark_late"
    EXCUSE = "excuse"
    SEND_REMINDER = "send_reminder"


def _require_open_round(pool: Pool) -> None:
    if pool.is_completed:
        raise InvalidState("Pool has completed all rounds")
    if pool.payout_status is PayoutStatus.PAID:
        raise InvalidState("Payout for this round has already been completed")


def _has_completed_contribution(pool: Pool, member_id: int) -> bool:
    return any(
        t.member_id == member_id and t.status is TransactionStatus.COMPLETED
        for t in pool.contributions_for_round(pool.current_round)
    )


def _credit(pool: Pool, member: Member, amount: int, now: datetime) -> Pool:
    """Add a confirmed contribution to the tracked balance and the member's stats."""

    on_time = now <= pool.next_payout_date
    pool = pool.with_member(member.with_contribution(amount, on_time=on_time))
    return pool.with_balance_change(amount)


def _new_round_payment(pool: Pool, member: Member, now: datetime) -> RoundPayment:
    return RoundPayment(
        member_id=member.member_id,
        member_name=member.name,
        amount=pool.contribution_amount,
        status=RoundPaymentStatus.PENDING,
        updated_at=now,
    )


class ContributionTracker:
    """Contribution use cases for one pool repository."""

    def __init__(
        self,
        repository: PoolRepository,
        notifier: Optional[Notifier] = None,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.repository = repository
        self.notifier = notifier
        self.max_attempts = max_attempts

    def _update(self, pool_id: str, mutation):
        return update_pool_atomically(self.repository, pool_id, mutation, max_attempts=self.max_attempts)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_round_status(self, pool_id: str, actor: Actor) -> Tuple[Pool, RoundStatus]:
        """Collection status of the current round (any member may view)."""

        pool = load_pool(self.repository, pool_id)
        pool.require_member(actor.email)
        return pool, round_status(pool)

    def list_round_payments(self, pool_id: str, actor: Actor) -> Tuple[Pool, List[RoundPayment]]:
        pool = load_pool(self.repository, pool_id)
        pool.require_member(actor.email)
        return pool, sorted(pool.round_payments, key=lambda p: p.member_id)

    # ------------------------------------------------------------------
    # Manual contributions
    # ------------------------------------------------------------------

    def record_manual_contribution(
        self,
        pool_id: str,
        actor: Actor,
        *,
        method: str,
        now: datetime,
        member_id: Optional[int] = None,
        amount: Optional[int] = None,
    ) -> RoundPayment:
        """
        Record a contribution paid outside the platform (Venmo, cash, ...).

        Members record their own contribution; administrators may record one
        on behalf of any member. The amount must equal the pool's contribution
        amount.

        Raises:
            AlreadyContributed: if the member already paid this round
            ValidationError: for an unknown method or a wrong amount
        """

        require_utc_timestamp("now", now)
        method = (method or "").strip().lower()
        if method not in MANUAL_METHODS:
            raise ValidationError(f"Unsupported payment method '{method}'. Use one of: {', '.join(sorted(MANUAL_METHODS))}")

        def mutation(pool: Pool) -> Tuple[Pool, Tuple[Member, RoundPayment]]:
            _require_open_round(pool)
            caller = pool.require_member(actor.email)

            if member_id is None or member_id == caller.member_id:
                member = caller
            else:
                if not caller.is_admin:
                    raise Forbidden("Only pool administrators can record contributions for other members")
                member = pool.member_by_id(member_id)
                if member is None:
                    raise NotFound(f"Member {member_id} not found")

            if amount is not None and amount != pool.contribution_amount:
                raise ValidationError(f"Contribution amount must be {pool.contribution_amount}")

            existing = pool.round_payment_for(member.member_id)
            if _has_completed_contribution(pool, member.member_id) or (
                existing is not None
                and existing.status in (RoundPaymentStatus.MEMBER_CONFIRMED, RoundPaymentStatus.ADMIN_VERIFIED)
            ):
                raise AlreadyContributed("You have already contributed to this round")

            base = existing or _new_round_payment(pool, member, now)
            payment = replace(
                base,
                amount=pool.contribution_amount,
                status=RoundPaymentStatus.ADMIN_VERIFIED,
                method=method,
                member_confirmed_at=now,
                admin_verified_at=now,
                updated_at=now,
            )

            updated = _credit(pool.with_round_payment(payment), member, pool.contribution_amount, now)
            return recompute_payout_status(updated), (member, payment)

        pool, (member, payment) = self._update(pool_id, mutation)

        logger.info(
            f"Manual contribution recorded for member {member.member_id} in pool {pool_id}",
            extra={"pool_id": pool_id, "member_id": member.member_id, "round": pool.current_round, "method": method},
        )
        send_notification(
            self.notifier,
            member.email,
            PAYMENT_RECORDED,
            {"pool_id": pool_id, "pool_name": pool.name, "amount": payment.amount, "round": pool.current_round},
        )
        return payment

    # ------------------------------------------------------------------
    # Round payment tracking
    # ------------------------------------------------------------------

    def initialize_round_payments(self, pool_id: str, actor: Actor, *, now: datetime) -> List[RoundPayment]:
        """Create a pending RoundPayment for every member that has none this round."""

        require_utc_timestamp("now", now)

        def mutation(pool: Pool) -> Tuple[Pool, List[RoundPayment]]:
            _require_open_round(pool)
            pool.require_admin(actor.email, action="initialize round payments")

            missing = [m for m in pool.members if pool.round_payment_for(m.member_id) is None]
            if not missing:
                return pool, list(pool.round_payments)

            payments = list(pool.round_payments) + [_new_round_payment(pool, m, now) for m in missing]
            updated = recompute_payout_status(pool.with_round_payments(payments))
            return updated, payments

        _, payments = self._update(pool_id, mutation)
        return sorted(payments, key=lambda p: p.member_id)

    def update_round_payment(
        self,
        pool_id: str,
        actor: Actor,
        member_id: int,
        action: RoundPaymentAction,
        *,
        now: datetime,
        method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> RoundPayment:
        """
        Apply one tracking action to a member's RoundPayment.

        member_confirm may be performed by the member themselves or an admin;
        every other action is admin-only.
        """

        require_utc_timestamp("now", now)
        action = RoundPaymentAction(action)

        def mutation(pool: Pool) -> Tuple[Pool, Tuple[Member, RoundPayment]]:
            _require_open_round(pool)
            caller = pool.require_member(actor.email)

            payment = pool.round_payment_for(member_id)
            member = pool.member_by_id(member_id)
            if payment is None or member is None:
                raise NotFound("Payment not found")

            if action is RoundPaymentAction.MEMBER_CONFIRM:
                if caller.member_id != member_id and not caller.is_admin:
                    raise Forbidden("Can only confirm your own payment")
                if payment.status not in (RoundPaymentStatus.PENDING, RoundPaymentStatus.LATE):
                    raise InvalidState("Payment cannot be confirmed in current state")
                updated_payment = replace(
                    payment,
                    status=RoundPaymentStatus.MEMBER_CONFIRMED,
                    member_confirmed_at=now,
                    method=method or "other",
                    updated_at=now,
                )
                return recompute_payout_status(pool.with_round_payment(updated_payment)), (member, updated_payment)

            pool.require_admin(actor.email, action=f"{action.value.replace('_', ' ')} payments")

            if action is RoundPaymentAction.ADMIN_VERIFY:
                if payment.status is RoundPaymentStatus.ADMIN_VERIFIED:
                    raise AlreadyContributed("Payment has already been verified")
                updated_payment = replace(
                    payment,
                    status=RoundPaymentStatus.ADMIN_VERIFIED,
                    admin_verified_at=now,
                    admin_notes=notes or payment.admin_notes,
                    updated_at=now,
                )
                updated = pool.with_round_payment(updated_payment)
                if not _has_completed_contribution(pool, member_id):
                    updated = _credit(updated, member, payment.amount, now)
                return recompute_payout_status(updated), (member, updated_payment)

            if payment.status is RoundPaymentStatus.ADMIN_VERIFIED:
                raise InvalidState("Verified payments cannot be changed")

            if action is RoundPaymentAction.DISPUTE:
                updated_payment = replace(
                    payment,
                    status=RoundPaymentStatus.PENDING,
                    member_confirmed_at=None,
                    method=None,
                    admin_notes=notes or "Payment disputed",
                    updated_at=now,
                )
            elif action is RoundPaymentAction.MARK_LATE:
                if payment.status is not RoundPaymentStatus.PENDING:
                    raise InvalidState("Only pending payments can be marked late")
                updated_payment = replace(
                    payment,
                    status=RoundPaymentStatus.LATE,
                    admin_notes=notes or payment.admin_notes,
                    updated_at=now,
                )
            elif action is RoundPaymentAction.EXCUSE:
                updated_payment = replace(
                    payment,
                    status=RoundPaymentStatus.EXCUSED,
                    admin_notes=notes or "Payment excused",
                    updated_at=now,
                )
            else:
                if payment.reminder_sent_at is not None and now - payment.reminder_sent_at < REMINDER_COOLDOWN:
                    remaining = REMINDER_COOLDOWN - (now - payment.reminder_sent_at)
                    hours = -(-int(remaining.total_seconds()) // 3600)
                    raise InvalidState(f"Please wait {hours} hours before sending another reminder")
                updated_payment = replace(
                    payment,
                    reminder_sent_at=now,
                    reminder_count=payment.reminder_count + 1,
                    updated_at=now,
                )

            return recompute_payout_status(pool.with_round_payment(updated_payment)), (member, updated_payment)

        pool, (member, payment) = self._update(pool_id, mutation)

        if action is RoundPaymentAction.SEND_REMINDER:
            send_notification(
                self.notifier,
                member.email,
                PAYMENT_REMINDER,
                {
                    "pool_id": pool_id,
                    "pool_name": pool.name,
                    "amount": payment.amount,
                    "due_date": pool.next_payout_date.isoformat(),
                },
            )
        elif action is RoundPaymentAction.ADMIN_VERIFY:
            send_notification(
                self.notifier,
                member.email,
                PAYMENT_VERIFIED,
                {"pool_id": pool_id, "pool_name": pool.name, "amount": payment.amount, "round": pool.current_round},
            )
        return payment

    # ------------------------------------------------------------------
    # Processor-captured contributions
    # ------------------------------------------------------------------

    def record_gateway_contribution(
        self,
        pool_id: str,
        member_id: int,
        *,
        external_reference: str,
        completed: bool,
        now: datetime,
    ) -> ContributionTransaction:
        """
        Record a contribution captured by the payment processor.

        `completed=False` records it as pending (still processing). A repeat
        call with the same external_reference returns the stored transaction.
        """

        require_utc_timestamp("now", now)

        def mutation(pool: Pool) -> Tuple[Pool, ContributionTransaction]:
            for tx in pool.contributions_for_round(pool.current_round):
                if tx.external_reference == external_reference:
                    return pool, tx

            _require_open_round(pool)
            member = pool.member_by_id(member_id)
            if member is None:
                raise NotFound(f"Member {member_id} not found")

            payment = pool.round_payment_for(member_id)
            if _has_completed_contribution(pool, member_id) or (
                payment is not None and payment.status is RoundPaymentStatus.ADMIN_VERIFIED
            ):
                raise AlreadyContributed("You have already contributed to this round")

            tx = ContributionTransaction(
                transaction_id=pool.next_transaction_id,
                amount=pool.contribution_amount,
                round=pool.current_round,
                member_id=member.member_id,
                member_name=member.name,
                status=TransactionStatus.COMPLETED if completed else TransactionStatus.PENDING,
                date=now,
                external_reference=external_reference,
            )
            updated = pool.add_transaction(tx)
            if completed:
                updated = _credit(updated, member, tx.amount, now)
            return recompute_payout_status(updated), tx

        _, tx = self._update(pool_id, mutation)
        logger.info(
            f"Processor contribution {tx.transaction_id} recorded as {tx.status.value}",
            extra={"pool_id": pool_id, "member_id": member_id, "external_reference": external_reference},
        )
        return tx

    def settle_contribution(
        self, pool_id: str, transaction_id: int, *, succeeded: bool, now: datetime
    ) -> ContributionTransaction:
        """Move a pending processor contribution to completed or failed."""

        require_utc_timestamp("now", now)

        def mutation(pool: Pool) -> Tuple[Pool, ContributionTransaction]:
            tx = pool.transaction_by_id(transaction_id)
            if not isinstance(tx, ContributionTransaction):
                raise NotFound(f"Contribution {transaction_id} not found")
            if tx.status is not TransactionStatus.PENDING:
                raise InvalidState(f"Contribution is already {tx.status.value}")

            settled = tx.settled(succeeded)
            updated = pool.with_transaction(settled)
            if succeeded and tx.round == pool.current_round:
                member = pool.member_by_id(tx.member_id)
                if member is not None:
                    updated = _credit(updated, member, tx.amount, now)
            return recompute_payout_status(updated), settled

        _, settled = self._update(pool_id, mutation)
        return settled


__all__ = [
    "ContributionTracker",
    "RoundPaymentAction",
    "MANUAL_METHODS",
    "REMINDER_COOLDOWN",
]
