"""
External collaborators of the round engine.

- Actor: the authenticated caller (identity is established upstream).
- PaymentGateway: moves money to a recipient's gateway account.
- Notifier: best-effort messages to members.

Gateway implementations must honor `idempotency_key`: repeating a transfer
with the same key must not move money twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol


@dataclass(frozen=True, slots=True)
class Actor:
    user_id: str
    email: str


@dataclass(frozen=True, slots=True)
class TransferResult:
    transfer_id: str
    amount_minor_units: int
    currency: str
    metadata: Dict[str, str] = field(default_factory=dict)


class GatewayError(Exception):
    """Transfer was rejected by the gateway or did not complete in time."""

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class PaymentGateway(Protocol):
    def transfer(
        self,
        *,
        destination_account: str,
        amount_minor_units: int,
        currency: str,
        idempotency_key: str,
        metadata: Mapping[str, str],
    ) -> TransferResult:
        ...


class Notifier(Protocol):
    def notify(self, recipient: str, template: str, data: Mapping[str, Any]) -> bool:
        ...


__all__ = [
    "Actor",
    "TransferResult",
    "GatewayError",
    "PaymentGateway",
    "Notifier",
]
