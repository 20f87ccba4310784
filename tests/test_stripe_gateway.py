"""
Tests for `services/stripe_gateway.py`.

Stripe calls are replaced with monkeypatch; no network access.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
import stripe

from services.collaborators import GatewayError
from services.stripe_gateway import StripeGateway


def _transfer(gateway: StripeGateway):
    return gateway.transfer(
        destination_account="acct_alice",
        amount_minor_units=3000,
        currency="USD",
        idempotency_key="pool-payout-pool-1-round-1",
        metadata={"pool_id": "pool-1", "round": "1"},
    )


def test_transfer_passes_idempotency_key_and_minor_units(monkeypatch) -> None:
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="tr_123", amount=kwargs["amount"], currency=kwargs["currency"])

    monkeypatch.setattr(stripe.Transfer, "create", fake_create)

    result = _transfer(StripeGateway("sk_test_123"))

    assert result.transfer_id == "tr_123"
    assert result.amount_minor_units == 3000
    assert captured["currency"] == "usd"
    assert captured["destination"] == "acct_alice"
    assert captured["idempotency_key"] == "pool-payout-pool-1-round-1"
    assert captured["metadata"] == {"pool_id": "pool-1", "round": "1"}


def test_stripe_errors_become_gateway_errors(monkeypatch) -> None:
    def fake_create(**kwargs):
        raise stripe.CardError("Your card was declined", None, "card_declined")

    monkeypatch.setattr(stripe.Transfer, "create", fake_create)

    with pytest.raises(GatewayError) as exc:
        _transfer(StripeGateway("sk_test_123"))

    assert exc.value.code == "card_declined"
    assert "declined" in str(exc.value)


def test_missing_key_fails_without_calling_stripe(monkeypatch) -> None:
    def fake_create(**kwargs):
        raise AssertionError("Stripe must not be called")

    monkeypatch.setattr(stripe.Transfer, "create", fake_create)

    with pytest.raises(GatewayError) as exc:
        _transfer(StripeGateway(None))

    assert exc.value.code == "not_configured"
