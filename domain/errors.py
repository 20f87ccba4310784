"""
Domain: error taxonomy for the round/payout engine.

Every rejection carries a human-readable `reason` that names the precondition
which failed, so callers can show it verbatim.
"""

from __future__ import annotations

from typing import List, Optional


class PoolError(Exception):
    """Base class for all round-engine errors."""

    def __init__(self, reason: str, *, missing_members: Optional[List[str]] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.missing_members = list(missing_members or [])


class NotFound(PoolError):
    """Pool, member, recipient or payment record does not exist."""


class Unauthorized(PoolError):
    """No authenticated identity was supplied."""


class Forbidden(PoolError):
    """Caller is authenticated but not a member, or not an admin."""


class InvalidState(PoolError):
    """Action attempted outside the lifecycle state it requires."""


class ConcurrentModification(InvalidState):
    """The pool kept changing underneath the update; retry budget exhausted."""


class AlreadyDone(PoolError):
    """Duplicate payout or contribution attempt."""


class AlreadyPaidOrInProgress(AlreadyDone):
    """A pending or completed payout already exists for the round."""


class AlreadyContributed(AlreadyDone):
    """The member already has a confirmed contribution for the round."""


class InsufficientFunds(PoolError):
    """Tracked pool balance is lower than the payout amount."""


InsufficientBalance = InsufficientFunds


class GatewayFailure(PoolError):
    """The external transfer was rejected or timed out."""


class ValidationError(PoolError):
    """Malformed amount, method, date or frequency input."""


__all__ = [
    "PoolError",
    "NotFound",
    "Unauthorized",
    "Forbidden",
    "InvalidState",
    "ConcurrentModification",
    "AlreadyDone",
    "AlreadyPaidOrInProgress",
    "AlreadyContributed",
    "InsufficientFunds",
    "InsufficientBalance",
    "GatewayFailure",
    "ValidationError",
]
