"""
Stripe payment gateway.

Payouts are Stripe Connect transfers from the platform balance to the
recipient's connected account:

1. Transfer.create with amount (minor units), currency and destination
2. The idempotency key makes retries of the same payout safe
3. Any StripeError is surfaced as GatewayError
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

import stripe

from services.collaborators import GatewayError, TransferResult

logger = logging.getLogger(__name__)


class StripeGateway:
    """PaymentGateway backed by Stripe Connect transfers."""

    def __init__(self, api_key: Optional[str], *, timeout_seconds: float = 30.0) -> None:
        self.api_key = api_key
        if api_key:
            stripe.api_key = api_key
            stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)
            logger.info("Stripe: Initialized gateway")
        else:
            logger.warning("Stripe: STRIPE_SECRET_KEY is not set; gateway payouts will fail")

    def transfer(
        self,
        *,
        destination_account: str,
        amount_minor_units: int,
        currency: str,
        idempotency_key: str,
        metadata: Mapping[str, str],
    ) -> TransferResult:
        if not self.api_key:
            raise GatewayError("Payment gateway is not configured", code="not_configured")
        if amount_minor_units <= 0:
            raise GatewayError("Transfer amount must be positive", code="invalid_amount")

        try:
            transfer = stripe.Transfer.create(
                amount=amount_minor_units,
                currency=currency.lower(),
                destination=destination_account,
                metadata=dict(metadata),
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error(
                f"Stripe: Transfer failed: {str(e)}",
                extra={"idempotency_key": idempotency_key, "destination": destination_account},
            )
            raise GatewayError(f"Transfer failed: {e.user_message or str(e)}", code=e.code) from e

        logger.info(f"Stripe: Transfer created - {transfer.id}", extra={"idempotency_key": idempotency_key})

        return TransferResult(
            transfer_id=transfer.id,
            amount_minor_units=transfer.amount,
            currency=transfer.currency,
            metadata=dict(metadata),
        )


__all__ = ["StripeGateway"]
