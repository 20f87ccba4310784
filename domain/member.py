"""
Domain: pool members.

Rules implemented here:
- A member is identified by member_id within its pool; email is unique per
  pool (case-insensitive).
- position is the member's fixed rotation slot: the member whose position
  equals the current round receives that round's payout.
- admin and creator roles may run payouts; plain members may not.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from .payment_links import PayoutMethod
from .time import require_utc_timestamp


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"
    CREATOR = "creator"


class MemberStatus(str, Enum):
    CURRENT = "current"
    WAITING = "waiting"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class Member:
    """
    Immutable member record embedded in a Pool.

    Counters (total_contributed, payments_on_time, payments_missed) are
    cumulative across rounds.
    """

    member_id: int
    name: str
    email: str
    position: int
    role: MemberRole = MemberRole.MEMBER
    status: MemberStatus = MemberStatus.WAITING
    payout_received: bool = False
    payout_date: Optional[datetime] = None
    total_contributed: int = 0
    payments_on_time: int = 0
    payments_missed: int = 0
    payout_method: Optional[PayoutMethod] = None
    payout_account_id: Optional[str] = None  # Gateway destination (e.g. Stripe Connect account)

    def __post_init__(self) -> None:
        if self.position < 1:
            raise ValueError("position must be >= 1")
        if self.payout_date is not None:
            require_utc_timestamp("payout_date", self.payout_date)

    @property
    def is_admin(self) -> bool:
        return self.role in (MemberRole.ADMIN, MemberRole.CREATOR)

    def matches_email(self, email: str) -> bool:
        return self.email.strip().lower() == (email or "").strip().lower()

    def with_contribution(self, amount: int, *, on_time: bool) -> "Member":
        """Return a copy with one more contribution counted."""

        return replace(
            self,
            total_contributed=self.total_contributed + amount,
            payments_on_time=self.payments_on_time + (1 if on_time else 0),
            payments_missed=self.payments_missed + (0 if on_time else 1),
        )

    def paid_out(self, paid_at: datetime) -> "Member":
        """Return a copy marked as having received the payout."""

        require_utc_timestamp("paid_at", paid_at)
        if self.payout_received:
            raise ValueError("Member has already received a payout")
        return replace(self, payout_received=True, payout_date=paid_at, status=MemberStatus.COMPLETED)
