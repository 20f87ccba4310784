"""
Domain: pool transactions.

A transaction is one of two closed variants: a contribution into the pot or a
payout out of it. Both are immutable; status changes return new instances.

Rules implemented here:
- transaction_id is monotonic per pool (assigned from the pool's counter).
- A payout transaction records the round's scheduled date next to the actual
  date, so early payouts stay auditable.
- Only pending transactions change status; completed and failed are final.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from .time import require_utc_timestamp


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DisbursementMethod(str, Enum):
    VENMO = "venmo"
    CASHAPP = "cashapp"
    PAYPAL = "paypal"
    ZELLE = "zelle"
    CASH = "cash"
    OTHER = "other"
    GATEWAY = "gateway"  # Executed through the payment gateway collaborator


def _require_pending(status: TransactionStatus) -> None:
    if status is not TransactionStatus.PENDING:
        raise ValueError(f"Only pending transactions can change status (current: {status.value})")


@dataclass(frozen=True, slots=True)
class ContributionTransaction:
    transaction_id: int
    amount: int
    round: int
    member_id: int
    member_name: str
    status: TransactionStatus
    date: datetime
    external_reference: Optional[str] = None  # Processor capture/charge id

    def __post_init__(self) -> None:
        require_utc_timestamp("date", self.date)

    def settled(self, succeeded: bool) -> "ContributionTransaction":
        _require_pending(self.status)
        return replace(self, status=TransactionStatus.COMPLETED if succeeded else TransactionStatus.FAILED)


@dataclass(frozen=True, slots=True)
class PayoutTransaction:
    """
    Payout of a round's pot to its recipient.

    idempotency_key is derived from (pool_id, round) and is sent with every
    gateway call for this payout, so retries cannot pay twice.
    """

    transaction_id: int
    amount: int
    round: int
    member_id: int
    member_name: str
    status: TransactionStatus
    date: datetime
    scheduled_payout_date: datetime
    idempotency_key: str
    disbursement_method: DisbursementMethod = DisbursementMethod.GATEWAY
    actual_payout_date: Optional[datetime] = None
    was_early_payout: bool = False
    early_payout_reason: Optional[str] = None
    initiated_by: Optional[str] = None
    external_reference: Optional[str] = None  # Gateway transfer id
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("date", self.date)
        require_utc_timestamp("scheduled_payout_date", self.scheduled_payout_date)
        if self.actual_payout_date is not None:
            require_utc_timestamp("actual_payout_date", self.actual_payout_date)

    def completed(self, *, external_reference: Optional[str], completed_at: datetime) -> "PayoutTransaction":
        _require_pending(self.status)
        require_utc_timestamp("completed_at", completed_at)
        return replace(
            self,
            status=TransactionStatus.COMPLETED,
            external_reference=external_reference,
            actual_payout_date=completed_at,
        )

    def failed(self) -> "PayoutTransaction":
        _require_pending(self.status)
        return replace(self, status=TransactionStatus.FAILED, external_reference=None)


Transaction = Union[ContributionTransaction, PayoutTransaction]


def payout_idempotency_key(pool_id: str, round_number: int) -> str:
    """Stable gateway idempotency key for the payout of (pool, round)."""

    return f"pool-payout-{pool_id}-round-{round_number}"


__all__ = [
    "TransactionStatus",
    "DisbursementMethod",
    "ContributionTransaction",
    "PayoutTransaction",
    "Transaction",
    "payout_idempotency_key",
]
