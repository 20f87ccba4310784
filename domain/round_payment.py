"""
Domain: per-member contribution tracking for the active round.

Rules implemented here:
- At most one RoundPayment per (pool, current round, member).
- admin_verified means the money is confirmed received; excused means the
  admin waived the member's contribution for this round.
- member_confirmed is the member's claim to have paid, awaiting verification.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .time import require_utc_timestamp


class RoundPaymentStatus(str, Enum):
    PENDING = "pending"
    MEMBER_CONFIRMED = "member_confirmed"
    ADMIN_VERIFIED = "admin_verified"
    LATE = "late"
    EXCUSED = "excused"


SETTLED_STATUSES = frozenset({RoundPaymentStatus.ADMIN_VERIFIED, RoundPaymentStatus.EXCUSED})


@dataclass(frozen=True, slots=True)
class RoundPayment:
    member_id: int
    member_name: str
    amount: int
    status: RoundPaymentStatus
    updated_at: datetime
    method: Optional[str] = None
    member_confirmed_at: Optional[datetime] = None
    admin_verified_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    reminder_sent_at: Optional[datetime] = None
    reminder_count: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("updated_at", self.updated_at)
        for name in ("member_confirmed_at", "admin_verified_at", "reminder_sent_at"):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES
