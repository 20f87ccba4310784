"""
Domain: Pool aggregate.

The Pool exclusively owns its members, transactions and round payments. All
changes go through the transition methods below, which return new instances;
the previous Pool is never mutated.

Rules implemented here:
- 1 <= current_round <= total_rounds + 1; past the last round the pool is completed.
- Member emails are unique (case-insensitive) and positions are unique within
  1..total_rounds; at most total_rounds members.
- Transaction ids come from an explicit monotonic counter stored on the pool.
- Per round: pending_collection -> ready_to_pay -> paid -> (advance) ->
  pending_collection of the next round, or completed after the last.
- Round dates are offsets from `first_payout_date` (round 1), never from the
  moment a payout happened nor from the previous, possibly clamped, date.

This module contains only pure domain entities: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .errors import Forbidden, InvalidState, NotFound
from .member import Member, MemberRole, MemberStatus
from .round_payment import RoundPayment
from .schedule import Frequency, payout_date_for_round
from .time import require_utc_timestamp
from .transaction import (
    ContributionTransaction,
    PayoutTransaction,
    Transaction,
    TransactionStatus,
)


class PoolStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class PayoutStatus(str, Enum):
    PENDING_COLLECTION = "pending_collection"
    READY_TO_PAY = "ready_to_pay"
    PAID = "paid"


_OPEN_PAYOUT_STATUSES = (TransactionStatus.PENDING, TransactionStatus.COMPLETED)


@dataclass(frozen=True, slots=True)
class Pool:
    """
    Immutable snapshot of one rotating savings pool.

    `version` is the optimistic-concurrency token owned by the repository; it
    is carried through transitions unchanged and bumped only on save.
    """

    pool_id: str
    name: str
    contribution_amount: int
    frequency: Frequency
    total_rounds: int
    next_payout_date: datetime
    created_at: datetime
    status: PoolStatus = PoolStatus.ACTIVE
    current_round: int = 1
    members: Tuple[Member, ...] = ()
    transactions: Tuple[Transaction, ...] = ()
    round_payments: Tuple[RoundPayment, ...] = ()
    payout_status: PayoutStatus = PayoutStatus.PENDING_COLLECTION
    total_amount: int = 0
    next_transaction_id: int = 1
    next_member_id: int = 1
    payout_completed_at: Optional[datetime] = None
    payout_method: Optional[str] = None
    payout_notes: Optional[str] = None
    payout_confirmed_by: Optional[str] = None
    description: str = ""
    first_payout_date: Optional[datetime] = None
    version: int = field(default=0, compare=False)

    def __post_init__(self) -> None:
        require_utc_timestamp("next_payout_date", self.next_payout_date)
        if self.first_payout_date is None:
            if self.current_round != 1:
                raise ValueError("first_payout_date is required once the pool has advanced")
            object.__setattr__(self, "first_payout_date", self.next_payout_date)
        require_utc_timestamp("first_payout_date", self.first_payout_date)
        require_utc_timestamp("created_at", self.created_at)
        if self.payout_completed_at is not None:
            require_utc_timestamp("payout_completed_at", self.payout_completed_at)

        if self.contribution_amount <= 0:
            raise ValueError("contribution_amount must be a positive integer")
        if self.total_rounds < 1:
            raise ValueError("total_rounds must be >= 1")
        if not 1 <= self.current_round <= self.total_rounds + 1:
            raise ValueError("current_round must be within 1..total_rounds + 1")
        if self.current_round > self.total_rounds and self.status is not PoolStatus.COMPLETED:
            raise ValueError("A pool past its last round must be completed")
        if len(self.members) > self.total_rounds:
            raise ValueError("A pool cannot have more members than rounds")

        emails = [m.email.strip().lower() for m in self.members]
        if len(set(emails)) != len(emails):
            raise ValueError("Member emails must be unique within a pool")
        positions = [m.position for m in self.members]
        if len(set(positions)) != len(positions):
            raise ValueError("Member positions must be unique within a pool")
        if any(p > self.total_rounds for p in positions):
            raise ValueError("Member positions must be within 1..total_rounds")

        if self.transactions and max(t.transaction_id for t in self.transactions) >= self.next_transaction_id:
            raise ValueError("next_transaction_id must exceed every stored transaction id")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_completed(self) -> bool:
        return self.status is PoolStatus.COMPLETED

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.total_rounds

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def pot_amount(self) -> int:
        """Every member contributes every round, the recipient included."""

        return self.contribution_amount * len(self.members)

    def member_by_id(self, member_id: int) -> Optional[Member]:
        return next((m for m in self.members if m.member_id == member_id), None)

    def member_by_email(self, email: str) -> Optional[Member]:
        return next((m for m in self.members if m.matches_email(email)), None)

    def recipient_for_round(self, round_number: int) -> Optional[Member]:
        return next((m for m in self.members if m.position == round_number), None)

    @property
    def current_recipient(self) -> Optional[Member]:
        if self.is_completed:
            return None
        return self.recipient_for_round(self.current_round)

    def transaction_by_id(self, transaction_id: int) -> Optional[Transaction]:
        return next((t for t in self.transactions if t.transaction_id == transaction_id), None)

    def contributions_for_round(self, round_number: int) -> List[ContributionTransaction]:
        return [
            t for t in self.transactions
            if isinstance(t, ContributionTransaction) and t.round == round_number
        ]

    def payouts_for_round(self, round_number: int) -> List[PayoutTransaction]:
        return [
            t for t in self.transactions
            if isinstance(t, PayoutTransaction) and t.round == round_number
        ]

    def open_payout_for_round(self, round_number: int) -> Optional[PayoutTransaction]:
        """The pending or completed payout for a round, if any (at most one exists)."""

        return next(
            (t for t in self.payouts_for_round(round_number) if t.status in _OPEN_PAYOUT_STATUSES),
            None,
        )

    def round_payment_for(self, member_id: int) -> Optional[RoundPayment]:
        return next((p for p in self.round_payments if p.member_id == member_id), None)

    def require_member(self, email: str) -> Member:
        member = self.member_by_email(email)
        if member is None:
            raise Forbidden("Not a member of this pool")
        return member

    def require_admin(self, email: str, *, action: str = "perform this action") -> Member:
        member = self.member_by_email(email)
        if member is None or not member.is_admin:
            raise Forbidden(f"Only pool administrators can {action}")
        return member

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def with_member(self, member: Member) -> "Pool":
        """Replace the member with the same member_id."""

        if self.member_by_id(member.member_id) is None:
            raise NotFound(f"Member {member.member_id} not found")
        members = tuple(member if m.member_id == member.member_id else m for m in self.members)
        return replace(self, members=members)

    def add_member(self, *, name: str, email: str, role: MemberRole = MemberRole.MEMBER) -> Tuple["Pool", Member]:
        """Append a member at the lowest free rotation slot."""

        if self.is_completed:
            raise InvalidState("Pool has completed all rounds")
        if self.is_full:
            raise InvalidState("This pool is full")
        if self.member_by_email(email) is not None:
            raise InvalidState(f"{email} is already a member of this pool")

        taken = {m.position for m in self.members}
        position = next(p for p in range(1, self.total_rounds + 1) if p not in taken)
        status = MemberStatus.CURRENT if position == self.current_round else MemberStatus.WAITING

        member = Member(
            member_id=self.next_member_id,
            name=name,
            email=email.strip().lower(),
            position=position,
            role=role,
            status=status,
        )
        pool = replace(self, members=self.members + (member,), next_member_id=self.next_member_id + 1)
        return pool, member

    def add_transaction(self, transaction: Transaction) -> "Pool":
        """Append a transaction built with `next_transaction_id`."""

        if transaction.transaction_id != self.next_transaction_id:
            raise ValueError("Transaction id must be allocated from next_transaction_id")
        if isinstance(transaction, PayoutTransaction) and transaction.status in _OPEN_PAYOUT_STATUSES:
            if self.open_payout_for_round(transaction.round) is not None:
                raise ValueError(f"A payout already exists for round {transaction.round}")
        return replace(
            self,
            transactions=self.transactions + (transaction,),
            next_transaction_id=self.next_transaction_id + 1,
        )

    def with_transaction(self, transaction: Transaction) -> "Pool":
        """Replace the stored transaction with the same id."""

        if self.transaction_by_id(transaction.transaction_id) is None:
            raise NotFound(f"Transaction {transaction.transaction_id} not found")
        transactions = tuple(
            transaction if t.transaction_id == transaction.transaction_id else t for t in self.transactions
        )
        return replace(self, transactions=transactions)

    def with_round_payment(self, payment: RoundPayment) -> "Pool":
        """Insert or replace the member's RoundPayment for the current round."""

        others = tuple(p for p in self.round_payments if p.member_id != payment.member_id)
        return replace(self, round_payments=others + (payment,))

    def with_round_payments(self, payments: Iterable[RoundPayment]) -> "Pool":
        return replace(self, round_payments=tuple(payments))

    def with_balance_change(self, delta: int) -> "Pool":
        return replace(self, total_amount=max(0, self.total_amount + delta))

    def with_payout_status(self, status: PayoutStatus) -> "Pool":
        return replace(self, payout_status=status)

    def mark_paid(
        self,
        *,
        recipient: Member,
        paid_at: datetime,
        method: str,
        notes: Optional[str] = None,
        confirmed_by: Optional[str] = None,
    ) -> "Pool":
        """Record that the current round's recipient has been paid."""

        pool = self.with_member(recipient.paid_out(paid_at))
        return replace(
            pool,
            payout_status=PayoutStatus.PAID,
            payout_completed_at=paid_at,
            payout_method=method,
            payout_notes=notes,
            payout_confirmed_by=confirmed_by,
        )

    def advanced(self) -> "Pool":
        """
        Move to the next round, or complete the pool after the last one.

        The next payout date is the scheduled date of the next round counted
        from `first_payout_date`, regardless of when the payout was actually
        made.
        """

        if self.is_completed:
            raise InvalidState("Pool has completed all rounds")
        if self.payout_status is not PayoutStatus.PAID:
            raise InvalidState("Payout must be completed before advancing")

        next_round = self.current_round + 1
        if next_round > self.total_rounds:
            return replace(self, current_round=next_round, status=PoolStatus.COMPLETED)

        members = tuple(
            replace(m, status=MemberStatus.CURRENT)
            if m.position == next_round and not m.payout_received
            else m
            for m in self.members
        )
        return replace(
            self,
            current_round=next_round,
            members=members,
            round_payments=(),
            payout_status=PayoutStatus.PENDING_COLLECTION,
            payout_completed_at=None,
            payout_method=None,
            payout_notes=None,
            payout_confirmed_by=None,
            next_payout_date=payout_date_for_round(self.first_payout_date, self.frequency, next_round),
        )


__all__ = ["Pool", "PoolStatus", "PayoutStatus"]
