"""
Tests for the HTTP layer (`api/`).

Covers contract rules:
- Identity comes from X-User-Id / X-User-Email; missing identity is 401.
- Round-engine errors map to status codes with a reason and missing member names.
- Early payout, contribution and round payment endpoints drive the services.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_gateway, get_notifier, get_now, get_repository
from api.main import app
from builders import DUE, declined, fully_collected, make_pool, with_verified

EARLY = DUE - timedelta(days=3)

ALICE_HEADERS = {"X-User-Id": "u-alice", "X-User-Email": "alice@example.com"}
BOB_HEADERS = {"X-User-Id": "u-bob", "X-User-Email": "bob@example.com"}
OUTSIDER_HEADERS = {"X-User-Id": "u-mallory", "X-User-Email": "mallory@example.com"}


@pytest.fixture
def client(repository, gateway, notifier):
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_now] = lambda: EARLY
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_check(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_identity_is_unauthorized(client, repository) -> None:
    repository.create(make_pool())

    response = client.get("/api/v1/pools/pool-1")

    assert response.status_code == 401
    assert response.json()["detail"]["type"] == "Unauthorized"


def test_create_pool_returns_pool_with_schedule(client) -> None:
    response = client.post(
        "/api/v1/pools",
        headers=ALICE_HEADERS,
        json={
            "name": "Family Savings",
            "creator_name": "Alice",
            "contribution_amount": 10,
            "frequency": "weekly",
            "total_rounds": 3,
            "first_payout_date": "2025-02-01T12:00:00Z",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["current_round"] == 1
    assert body["members"][0]["role"] == "admin"
    assert len(body["payout_schedule"]) == 3


def test_create_pool_request_validation(client) -> None:
    response = client.post(
        "/api/v1/pools",
        headers=ALICE_HEADERS,
        json={
            "name": "Too Short",
            "creator_name": "Alice",
            "contribution_amount": 10,
            "frequency": "weekly",
            "total_rounds": 1,
            "first_payout_date": "2025-02-01T12:00:00Z",
        },
    )

    assert response.status_code == 422


def test_non_member_is_forbidden(client, repository) -> None:
    repository.create(make_pool())

    response = client.get("/api/v1/pools/pool-1", headers=OUTSIDER_HEADERS)

    assert response.status_code == 403
    assert response.json()["detail"]["type"] == "Forbidden"


def test_unknown_pool_is_not_found(client) -> None:
    response = client.get("/api/v1/pools/nope", headers=ALICE_HEADERS)

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "Pool not found"


def test_early_payout_status_reports_missing_members(client, repository) -> None:
    repository.create(with_verified(make_pool(), 1, 2))

    response = client.get("/api/v1/pools/pool-1/early-payout", headers=ALICE_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["allowed"] is False
    assert body["reason"] == "Not all contributions have been collected for this round"
    assert body["missing_contributions"] == ["Carol"]


def test_execute_early_payout_then_replay_is_conflict(client, repository, gateway) -> None:
    repository.create(fully_collected(make_pool()))

    response = client.post("/api/v1/pools/pool-1/early-payout", headers=ALICE_HEADERS, json={"reason": "Rent"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["was_early_payout"] is True
    assert body["amount"] == 30
    assert repository.get("pool-1").current_round == 2

    replay = client.post("/api/v1/pools/pool-1/early-payout", headers=ALICE_HEADERS, json={"round": 1})

    assert replay.status_code == 409
    assert replay.json()["detail"]["type"] == "AlreadyPaidOrInProgress"
    assert gateway.distinct_transfers == 1


def test_early_payout_without_body_and_by_non_admin(client, repository) -> None:
    repository.create(with_verified(make_pool(), 1, 2))

    forbidden = client.post("/api/v1/pools/pool-1/early-payout", headers=BOB_HEADERS)
    assert forbidden.status_code == 403

    denied = client.post("/api/v1/pools/pool-1/early-payout", headers=ALICE_HEADERS)
    assert denied.status_code == 409
    assert denied.json()["detail"]["missing_members"] == ["Carol"]


def test_gateway_failure_is_bad_gateway(client, repository, gateway) -> None:
    repository.create(fully_collected(make_pool()))
    gateway.fail_with = declined()

    response = client.post("/api/v1/pools/pool-1/early-payout", headers=ALICE_HEADERS)

    assert response.status_code == 502
    assert response.json()["detail"]["type"] == "GatewayFailure"
    assert repository.get("pool-1").current_round == 1


def test_confirm_payout_before_collection_is_conflict(client, repository) -> None:
    repository.create(with_verified(make_pool(), 1, 2))

    response = client.post("/api/v1/pools/pool-1/round-payout", headers=ALICE_HEADERS, json={"method": "cash"})

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "All payments must be verified before payout"


def test_contributions_then_payout_then_advance(client, repository) -> None:
    repository.create(make_pool())

    for headers in (ALICE_HEADERS, BOB_HEADERS):
        assert client.post("/api/v1/pools/pool-1/contributions", headers=headers, json={"method": "venmo"}).status_code == 201
    duplicate = client.post("/api/v1/pools/pool-1/contributions", headers=BOB_HEADERS, json={"method": "venmo"})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["type"] == "AlreadyContributed"

    on_behalf = client.post(
        "/api/v1/pools/pool-1/contributions", headers=ALICE_HEADERS, json={"method": "cash", "member_id": 3}
    )
    assert on_behalf.status_code == 201

    status = client.get("/api/v1/pools/pool-1/round-payout", headers=BOB_HEADERS).json()
    assert status["all_collected"] is True
    assert status["verified_amount"] == 30
    assert status["payout_status"] == "ready_to_pay"

    paid = client.post("/api/v1/pools/pool-1/round-payout", headers=ALICE_HEADERS, json={"method": "zelle"})
    assert paid.status_code == 200
    assert paid.json()["disbursement_method"] == "zelle"

    advanced = client.put("/api/v1/pools/pool-1/round-payout", headers=ALICE_HEADERS)
    assert advanced.status_code == 200
    assert advanced.json()["current_round"] == 2
    assert advanced.json()["payout_schedule"][0] == advanced.json()["next_payout_date"]
    assert len(advanced.json()["payout_schedule"]) == 2


def test_round_payment_update_rejects_unknown_action(client, repository) -> None:
    repository.create(make_pool())
    assert client.post("/api/v1/pools/pool-1/round-payments", headers=ALICE_HEADERS).status_code == 200

    response = client.patch(
        "/api/v1/pools/pool-1/round-payments/2", headers=ALICE_HEADERS, json={"action": "forgive"}
    )
    assert response.status_code == 422
    assert response.json()["detail"]["type"] == "ValidationError"

    confirmed = client.patch(
        "/api/v1/pools/pool-1/round-payments/2", headers=BOB_HEADERS, json={"action": "member_confirm", "method": "zelle"}
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "member_confirmed"
