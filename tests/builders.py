"""
Test builders: fixed clock, pool factory and collaborator fakes.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from domain.member import Member, MemberRole, MemberStatus
from domain.payment_links import PayoutMethod, PayoutMethodType
from domain.pool import Pool
from domain.round_payment import RoundPayment, RoundPaymentStatus
from domain.schedule import Frequency
from domain.transaction import ContributionTransaction, TransactionStatus
from services.collaborators import Actor, GatewayError, TransferResult

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
DUE = NOW + timedelta(days=7)

NAMES = ("Alice", "Bob", "Carol", "Dave", "Erin", "Frank")

ALICE = Actor(user_id="u-alice", email="alice@example.com")
BOB = Actor(user_id="u-bob", email="bob@example.com")
CAROL = Actor(user_id="u-carol", email="carol@example.com")
OUTSIDER = Actor(user_id="u-mallory", email="mallory@example.com")


def make_pool(
    *,
    members: int = 3,
    amount: int = 10,
    total_rounds: Optional[int] = None,
    frequency: Frequency = Frequency.WEEKLY,
    next_payout_date: datetime = DUE,
    pool_id: str = "pool-1",
) -> Pool:
    """Pool with `members` members; Alice (position 1) is the administrator."""

    roster = tuple(
        Member(
            member_id=i,
            name=NAMES[i - 1],
            email=f"{NAMES[i - 1].lower()}@example.com",
            position=i,
            role=MemberRole.ADMIN if i == 1 else MemberRole.MEMBER,
            status=MemberStatus.CURRENT if i == 1 else MemberStatus.WAITING,
            payout_method=PayoutMethod(PayoutMethodType.VENMO, NAMES[i - 1].lower()),
            payout_account_id=f"acct_{NAMES[i - 1].lower()}",
        )
        for i in range(1, members + 1)
    )
    return Pool(
        pool_id=pool_id,
        name="Test Pool",
        contribution_amount=amount,
        frequency=frequency,
        total_rounds=total_rounds or members,
        next_payout_date=next_payout_date,
        created_at=NOW - timedelta(days=1),
        members=roster,
        next_member_id=members + 1,
    )


def with_verified(pool: Pool, *member_ids: int, credit: bool = True) -> Pool:
    """Mark members' round payments admin_verified (crediting the balance by default)."""

    for member_id in member_ids:
        member = pool.member_by_id(member_id)
        pool = pool.with_round_payment(
            RoundPayment(
                member_id=member_id,
                member_name=member.name,
                amount=pool.contribution_amount,
                status=RoundPaymentStatus.ADMIN_VERIFIED,
                updated_at=NOW,
                method="venmo",
                admin_verified_at=NOW,
            )
        )
        if credit:
            pool = pool.with_balance_change(pool.contribution_amount)
    return pool


def with_round_payment_status(pool: Pool, member_id: int, status: RoundPaymentStatus) -> Pool:
    member = pool.member_by_id(member_id)
    return pool.with_round_payment(
        RoundPayment(
            member_id=member_id,
            member_name=member.name,
            amount=pool.contribution_amount,
            status=status,
            updated_at=NOW,
        )
    )


def with_contribution_tx(pool: Pool, member_id: int, status: TransactionStatus) -> Pool:
    member = pool.member_by_id(member_id)
    tx = ContributionTransaction(
        transaction_id=pool.next_transaction_id,
        amount=pool.contribution_amount,
        round=pool.current_round,
        member_id=member_id,
        member_name=member.name,
        status=status,
        date=NOW,
        external_reference=f"pi_{member_id}_{pool.current_round}",
    )
    pool = pool.add_transaction(tx)
    if status is TransactionStatus.COMPLETED:
        pool = pool.with_balance_change(tx.amount)
    return pool


def fully_collected(pool: Pool) -> Pool:
    return with_verified(pool, *(m.member_id for m in pool.members))


def without_payout_destination(pool: Pool, member_id: int) -> Pool:
    member = pool.member_by_id(member_id)
    return pool.with_member(replace(member, payout_method=None, payout_account_id=None))


class FakeGateway:
    """
    In-process PaymentGateway.

    Repeating a transfer with the same idempotency key returns the original
    result, as a real gateway does.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.calls: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None
        self._results: Dict[str, TransferResult] = {}

    def transfer(
        self,
        *,
        destination_account: str,
        amount_minor_units: int,
        currency: str,
        idempotency_key: str,
        metadata: Mapping[str, str],
    ) -> TransferResult:
        with self._lock:
            self.calls.append(
                {
                    "destination_account": destination_account,
                    "amount_minor_units": amount_minor_units,
                    "currency": currency,
                    "idempotency_key": idempotency_key,
                    "metadata": dict(metadata),
                }
            )
            if self.fail_with is not None:
                raise self.fail_with
            if idempotency_key not in self._results:
                self._results[idempotency_key] = TransferResult(
                    transfer_id=f"tr_{len(self._results) + 1}",
                    amount_minor_units=amount_minor_units,
                    currency=currency,
                    metadata=dict(metadata),
                )
            return self._results[idempotency_key]

    @property
    def distinct_transfers(self) -> int:
        return len(self._results)


def declined() -> GatewayError:
    return GatewayError("Your card was declined", code="card_declined")


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []

    def notify(self, recipient: str, template: str, data: Mapping[str, Any]) -> bool:
        if self.fail:
            raise ConnectionError("mail server unavailable")
        self.sent.append((recipient, template, dict(data)))
        return True

    def templates_for(self, recipient: str) -> List[str]:
        return [template for to, template, _ in self.sent if to == recipient]
