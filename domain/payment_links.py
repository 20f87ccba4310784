"""
Domain: recipient payout methods and payment deep links (pure).

Venmo, PayPal and Cash App expose URL schemes that open the app with the
recipient (and, where supported, the amount) pre-filled. Zelle and bank
transfers have no deep link; the admin pays them by hand.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ValidationError


class PayoutMethodType(str, Enum):
    VENMO = "venmo"
    PAYPAL = "paypal"
    CASHAPP = "cashapp"
    ZELLE = "zelle"
    BANK = "bank"


_LABELS = {
    PayoutMethodType.VENMO: "Venmo",
    PayoutMethodType.PAYPAL: "PayPal",
    PayoutMethodType.CASHAPP: "Cash App",
    PayoutMethodType.ZELLE: "Zelle",
    PayoutMethodType.BANK: "Bank Transfer",
}

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^[\d\s\-()]+$")
_VENMO_USER_RE = re.compile(r"^[a-zA-Z0-9_-]{3,30}$")
_CASHTAG_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]{0,19}$")
_PAYPAL_URL_RE = re.compile(r"paypal\.me/([a-zA-Z0-9]+)", re.IGNORECASE)
_PAYPAL_USER_RE = re.compile(r"^[a-zA-Z0-9]{1,20}$")


@dataclass(frozen=True, slots=True)
class PayoutMethod:
    """Where a member wants to receive their payout."""

    type: PayoutMethodType
    handle: str
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        return _LABELS[self.type]


def sanitize_handle(method_type: PayoutMethodType, handle: str) -> str:
    """
    Validate and normalize a handle for the given payout method.

    Raises:
        ValidationError: if the handle is empty or malformed for its type
    """

    text = (handle or "").strip()
    if not text:
        raise ValidationError(f"{_LABELS[method_type]} handle is required")

    if method_type is PayoutMethodType.VENMO:
        text = text.lstrip("@")
        if _EMAIL_RE.match(text):
            return text
        digits = re.sub(r"\D", "", text)
        if _PHONE_RE.match(text) and len(digits) >= 10:
            return digits
        if _VENMO_USER_RE.match(text):
            return text
        raise ValidationError("Invalid Venmo handle. Use a username, email, or phone number.")

    if method_type is PayoutMethodType.CASHAPP:
        text = text.lstrip("$")
        if not _CASHTAG_RE.match(text):
            raise ValidationError(
                "Invalid $cashtag. Use letters and numbers only (1-20 characters, must start with a letter)."
            )
        return text

    if method_type is PayoutMethodType.PAYPAL:
        match = _PAYPAL_URL_RE.search(text)
        if match:
            text = match.group(1)
        if not _PAYPAL_USER_RE.match(text):
            raise ValidationError("Invalid PayPal.me username")
        return text

    # Zelle takes an email or phone; bank handles are free-form account labels.
    if method_type is PayoutMethodType.ZELLE:
        digits = re.sub(r"\D", "", text)
        if not (_EMAIL_RE.match(text) or (_PHONE_RE.match(text) and len(digits) >= 10)):
            raise ValidationError("Zelle requires an email address or a US phone number")
    return text


def payment_link(method: PayoutMethod, amount: Optional[int] = None) -> Optional[str]:
    """
    Deep link that opens the recipient's payment app, or None where unsupported.

    Example:
        payment_link(PayoutMethod(PayoutMethodType.VENMO, "@alice"), 30)
        # "https://venmo.com/alice?txn=pay&amount=30"
    """

    handle = re.sub(r"^[@$]", "", method.handle)

    if method.type is PayoutMethodType.VENMO:
        if amount:
            return f"https://venmo.com/{handle}?txn=pay&amount={amount}"
        return f"https://venmo.com/{handle}"
    if method.type is PayoutMethodType.PAYPAL:
        if amount:
            return f"https://paypal.me/{handle}/{amount}"
        return f"https://paypal.me/{handle}"
    if method.type is PayoutMethodType.CASHAPP:
        return f"https://cash.app/${handle}"
    return None


__all__ = [
    "PayoutMethodType",
    "PayoutMethod",
    "sanitize_handle",
    "payment_link",
]
