"""
Member notifications.

Notifications are fire-and-forget: a failed delivery is logged and never
rolls back the state change that triggered it.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from services.collaborators import Notifier

logger = logging.getLogger(__name__)

PAYMENT_RECORDED = "payment_recorded"
PAYMENT_VERIFIED = "payment_verified"
PAYMENT_REMINDER = "payment_reminder"
PAYOUT_SENT = "payout_sent"
EARLY_PAYOUT_SENT = "early_payout_sent"
ROUND_ADVANCED = "round_advanced"


class LoggingNotifier:
    """Default notifier: records the message in the application log."""

    def notify(self, recipient: str, template: str, data: Mapping[str, Any]) -> bool:
        logger.info(
            f"Notification '{template}' for {recipient}",
            extra={"recipient": recipient, "template": template, "data": dict(data)},
        )
        return True


def send_notification(
    notifier: Optional[Notifier], recipient: str, template: str, data: Mapping[str, Any]
) -> bool:
    """Deliver a notification, logging (never raising) on failure."""

    if notifier is None:
        return False
    try:
        delivered = notifier.notify(recipient, template, data)
    except Exception as e:
        logger.warning(
            f"Notification '{template}' to {recipient} failed: {str(e)}",
            extra={"recipient": recipient, "template": template},
        )
        return False
    if not delivered:
        logger.warning(
            f"Notification '{template}' to {recipient} was not delivered",
            extra={"recipient": recipient, "template": template},
        )
    return bool(delivered)


__all__ = [
    "LoggingNotifier",
    "send_notification",
    "PAYMENT_RECORDED",
    "PAYMENT_VERIFIED",
    "PAYMENT_REMINDER",
    "PAYOUT_SENT",
    "EARLY_PAYOUT_SENT",
    "ROUND_ADVANCED",
]
