"""
Domain: round collection status and early-payout eligibility (pure).

Rules implemented here:
- Contributions are universal: the recipient contributes like everyone else,
  so the pot is contribution_amount x member count.
- A member has contributed for the round iff a completed contribution
  transaction exists for (member, round) or their RoundPayment is admin_verified.
  An excused member satisfies collection without contributing.
- A round is fully collected iff every member has contributed or is excused.
- Early payout is denied, with a specific reason, when the scheduled date has
  passed, no recipient exists, the recipient was already paid, a payout is
  already pending/completed, nothing has been contributed yet, contributions
  are still processing, or some members have no contribution at all.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from .member import Member
from .payment_links import PayoutMethod, payment_link
from .pool import PayoutStatus, Pool
from .round_payment import RoundPaymentStatus
from .time import require_utc_timestamp
from .transaction import TransactionStatus


class ContributionState(str, Enum):
    CONTRIBUTED = "contributed"
    EXCUSED = "excused"
    PROCESSING = "processing"
    MISSING = "missing"


@dataclass(frozen=True, slots=True)
class MemberContributionStatus:
    member_id: int
    name: str
    email: str
    position: int
    is_recipient: bool
    state: ContributionState
    amount: int  # Amount actually collected from this member for the round
    round_payment_status: Optional[RoundPaymentStatus] = None
    contribution_date: Optional[datetime] = None

    @property
    def contributed(self) -> bool:
        return self.state is ContributionState.CONTRIBUTED


@dataclass(frozen=True, slots=True)
class RoundStatus:
    """
    Collection status of the pool's current round.

    collected_amount counts completed contribution transactions plus
    admin-verified round payments; pot_amount is what a fully funded round holds.
    """

    round: int
    per_member: List[MemberContributionStatus]
    all_collected: bool
    collected_amount: int
    pot_amount: int

    def names_in(self, state: ContributionState) -> List[str]:
        return [m.name for m in self.per_member if m.state is state]

    @property
    def missing_members(self) -> List[str]:
        return self.names_in(ContributionState.MISSING)

    @property
    def processing_members(self) -> List[str]:
        return self.names_in(ContributionState.PROCESSING)


def _member_status(pool: Pool, member: Member, round_number: int) -> MemberContributionStatus:
    transactions = [t for t in pool.contributions_for_round(round_number) if t.member_id == member.member_id]
    completed = [t for t in transactions if t.status is TransactionStatus.COMPLETED]
    pending = [t for t in transactions if t.status is TransactionStatus.PENDING]

    payment = pool.round_payment_for(member.member_id) if round_number == pool.current_round else None
    payment_status = payment.status if payment is not None else None

    if completed:
        state = ContributionState.CONTRIBUTED
        amount = sum(t.amount for t in completed)
        contributed_at: Optional[datetime] = completed[0].date
    elif payment_status is RoundPaymentStatus.ADMIN_VERIFIED:
        state = ContributionState.CONTRIBUTED
        amount = payment.amount
        contributed_at = payment.admin_verified_at or payment.updated_at
    elif payment_status is RoundPaymentStatus.EXCUSED:
        state = ContributionState.EXCUSED
        amount = 0
        contributed_at = None
    elif pending or payment_status is RoundPaymentStatus.MEMBER_CONFIRMED:
        state = ContributionState.PROCESSING
        amount = 0
        contributed_at = pending[0].date if pending else payment.member_confirmed_at
    else:
        state = ContributionState.MISSING
        amount = 0
        contributed_at = None

    return MemberContributionStatus(
        member_id=member.member_id,
        name=member.name,
        email=member.email,
        position=member.position,
        is_recipient=member.position == round_number,
        state=state,
        amount=amount,
        round_payment_status=payment_status,
        contribution_date=contributed_at,
    )


def round_status(pool: Pool, round_number: Optional[int] = None) -> RoundStatus:
    """Per-member contribution status and whether the round is fully collected."""

    round_number = pool.current_round if round_number is None else round_number
    per_member = [_member_status(pool, m, round_number) for m in sorted(pool.members, key=lambda m: m.position)]

    all_collected = bool(per_member) and all(
        m.state in (ContributionState.CONTRIBUTED, ContributionState.EXCUSED) for m in per_member
    )
    return RoundStatus(
        round=round_number,
        per_member=per_member,
        all_collected=all_collected,
        collected_amount=sum(m.amount for m in per_member),
        pot_amount=pool.pot_amount,
    )


def has_any_contribution(pool: Pool, round_number: int) -> bool:
    """True once the round's collection cycle has started."""

    if pool.contributions_for_round(round_number):
        return True
    if round_number != pool.current_round:
        return False
    return any(
        p.status in (RoundPaymentStatus.MEMBER_CONFIRMED, RoundPaymentStatus.ADMIN_VERIFIED)
        for p in pool.round_payments
    )


def recompute_payout_status(pool: Pool) -> Pool:
    """
    Re-derive pending_collection / ready_to_pay from the current collection state.

    A paid round stays paid.
    """

    if pool.is_completed or pool.payout_status is PayoutStatus.PAID:
        return pool
    status = round_status(pool)
    target = PayoutStatus.READY_TO_PAY if status.all_collected else PayoutStatus.PENDING_COLLECTION
    if target is pool.payout_status:
        return pool
    return pool.with_payout_status(target)


class EarlyPayoutDenial(str, Enum):
    POOL_COMPLETED = "pool_completed"
    ROUND_ALREADY_CLOSED = "round_already_closed"
    ROUND_NOT_STARTED = "round_not_started"
    SCHEDULED_DATE_PASSED = "scheduled_date_passed"
    NO_RECIPIENT = "no_recipient"
    ALREADY_PAID = "already_paid"
    PAYOUT_EXISTS = "payout_exists"
    CYCLE_NOT_STARTED = "cycle_not_started"
    CONTRIBUTIONS_PROCESSING = "contributions_processing"
    CONTRIBUTIONS_MISSING = "contributions_missing"
    NO_PAYOUT_METHOD = "no_payout_method"


@dataclass(frozen=True, slots=True)
class EarlyPayoutVerification:
    allowed: bool
    current_round: int
    reason: Optional[str] = None
    denial: Optional[EarlyPayoutDenial] = None
    missing_contributions: List[str] = field(default_factory=list)
    scheduled_date: Optional[datetime] = None
    recipient: Optional[Member] = None
    payout_amount: Optional[int] = None
    payout_method: Optional[PayoutMethod] = None
    payment_link: Optional[str] = None


def _deny(
    round_number: int,
    denial: EarlyPayoutDenial,
    reason: str,
    *,
    pool: Pool,
    recipient: Optional[Member] = None,
    missing: Optional[List[str]] = None,
) -> EarlyPayoutVerification:
    return EarlyPayoutVerification(
        allowed=False,
        current_round=round_number,
        reason=reason,
        denial=denial,
        missing_contributions=list(missing or []),
        scheduled_date=pool.next_payout_date,
        recipient=recipient,
    )


def check_early_payout_eligibility(pool: Pool, round_number: int, now: datetime) -> EarlyPayoutVerification:
    """
    Decide whether the round's pot may be paid out before its scheduled date.

    Pure: callers re-run it inside the atomic update, since eligibility can
    change between a check and the commit.
    """

    require_utc_timestamp("now", now)

    if pool.is_completed:
        return _deny(round_number, EarlyPayoutDenial.POOL_COMPLETED, "Pool has completed all rounds", pool=pool)
    if round_number < pool.current_round:
        return _deny(
            round_number,
            EarlyPayoutDenial.ROUND_ALREADY_CLOSED,
            "Payout has already been processed for this round",
            pool=pool,
        )
    if round_number > pool.current_round:
        return _deny(
            round_number,
            EarlyPayoutDenial.ROUND_NOT_STARTED,
            f"Round {round_number} has not started yet (current round is {pool.current_round})",
            pool=pool,
        )

    if now >= pool.next_payout_date:
        return _deny(
            round_number,
            EarlyPayoutDenial.SCHEDULED_DATE_PASSED,
            "Scheduled payout date has already passed. Use regular payout instead.",
            pool=pool,
        )

    recipient = pool.recipient_for_round(round_number)
    if recipient is None:
        return _deny(
            round_number,
            EarlyPayoutDenial.NO_RECIPIENT,
            "No eligible recipient found for the current round",
            pool=pool,
        )

    if recipient.payout_received:
        return _deny(
            round_number,
            EarlyPayoutDenial.ALREADY_PAID,
            "Payout has already been processed for this round",
            pool=pool,
            recipient=recipient,
        )

    if pool.open_payout_for_round(round_number) is not None:
        return _deny(
            round_number,
            EarlyPayoutDenial.PAYOUT_EXISTS,
            "A payout transaction already exists for this round",
            pool=pool,
            recipient=recipient,
        )

    if not has_any_contribution(pool, round_number):
        return _deny(
            round_number,
            EarlyPayoutDenial.CYCLE_NOT_STARTED,
            "No contributions have been made for this round yet. "
            "The cycle must start before early payout can be initiated.",
            pool=pool,
            recipient=recipient,
        )

    status = round_status(pool, round_number)
    if status.processing_members:
        return _deny(
            round_number,
            EarlyPayoutDenial.CONTRIBUTIONS_PROCESSING,
            "Some contributions are still being processed. Please wait for collection to complete.",
            pool=pool,
            recipient=recipient,
            missing=status.processing_members,
        )
    if status.missing_members:
        return _deny(
            round_number,
            EarlyPayoutDenial.CONTRIBUTIONS_MISSING,
            "Not all contributions have been collected for this round",
            pool=pool,
            recipient=recipient,
            missing=status.missing_members,
        )

    if recipient.payout_method is None and recipient.payout_account_id is None:
        return _deny(
            round_number,
            EarlyPayoutDenial.NO_PAYOUT_METHOD,
            "Recipient has not set up their payout method (Venmo, PayPal, Zelle, or Cash App)",
            pool=pool,
            recipient=recipient,
        )

    payout_amount = pool.pot_amount
    link = payment_link(recipient.payout_method, payout_amount) if recipient.payout_method else None

    return EarlyPayoutVerification(
        allowed=True,
        current_round=round_number,
        scheduled_date=pool.next_payout_date,
        recipient=recipient,
        payout_amount=payout_amount,
        payout_method=recipient.payout_method,
        payment_link=link,
    )


__all__ = [
    "ContributionState",
    "MemberContributionStatus",
    "RoundStatus",
    "round_status",
    "has_any_contribution",
    "recompute_payout_status",
    "EarlyPayoutDenial",
    "EarlyPayoutVerification",
    "check_early_payout_eligibility",
]
