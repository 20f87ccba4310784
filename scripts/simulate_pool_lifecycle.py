#!/usr/bin/env python3
"""
Simulate a full pool lifecycle against the in-memory store.

Demonstrates:
1. Pool creation and member onboarding
2. Manual contributions and the collection status
3. An early payout three days before the scheduled date
4. Regular payouts and round advancement until the pool completes

No Supabase or Stripe credentials are needed; transfers go to a local
stand-in gateway that prints what it would send.
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Mapping
from uuid import uuid4

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.memory_pool_repository import InMemoryPoolRepository
from services.collaborators import Actor, TransferResult
from services.contribution_service import ContributionTracker
from services.notification_service import LoggingNotifier
from services.payout_service import PayoutEngine
from services.pool_service import PoolService


class PrintingGateway:
    """Gateway stand-in that records transfers instead of moving money."""

    def transfer(
        self,
        *,
        destination_account: str,
        amount_minor_units: int,
        currency: str,
        idempotency_key: str,
        metadata: Mapping[str, str],
    ) -> TransferResult:
        print(f"   -> transfer {amount_minor_units} {currency} to {destination_account} (key {idempotency_key})")
        return TransferResult(
            transfer_id=f"tr_sim_{uuid4().hex[:12]}",
            amount_minor_units=amount_minor_units,
            currency=currency,
            metadata=dict(metadata),
        )


def print_section(title: str) -> None:
    """Print a section header."""
    print()
    print("=" * 80)
    print(title)
    print("=" * 80)


def main() -> None:
    repository = InMemoryPoolRepository()
    notifier = LoggingNotifier()
    pools = PoolService(repository)
    tracker = ContributionTracker(repository, notifier)
    engine = PayoutEngine(repository, PrintingGateway(), notifier)

    now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
    alice = Actor(user_id="u-alice", email="alice@example.com")
    bob = Actor(user_id="u-bob", email="bob@example.com")
    carol = Actor(user_id="u-carol", email="carol@example.com")

    print_section("1. Create pool")
    pool = pools.create_pool(
        alice,
        name="Family Savings",
        creator_name="Alice",
        contribution_amount=10,
        frequency="weekly",
        total_rounds=3,
        first_payout_date=now + timedelta(days=7),
        now=now,
    )
    pools.add_member(pool.pool_id, alice, name="Bob", email=bob.email)
    pools.add_member(pool.pool_id, alice, name="Carol", email=carol.email)
    for index, actor in enumerate((alice, bob, carol), start=1):
        pools.set_payout_method(
            pool.pool_id, actor, method_type="venmo", handle=f"@{actor.user_id}", payout_account_id=f"acct_{index}"
        )
    pool = pools.get_pool(pool.pool_id, alice)
    print(f"   Pool {pool.pool_id}: {pool.member_count} members, first payout {pool.next_payout_date.isoformat()}")

    print_section("2. Round 1: early payout")
    for actor in (alice, bob, carol):
        tracker.record_manual_contribution(pool.pool_id, actor, method="venmo", now=now)
    _, status = tracker.get_round_status(pool.pool_id, alice)
    print(f"   All collected: {status.all_collected}, collected {status.collected_amount} of {status.pot_amount}")

    early_at = pool.next_payout_date - timedelta(days=3)
    verification = engine.early_payout_status(pool.pool_id, alice, now=early_at)
    print(f"   Early payout allowed: {verification.allowed} ({verification.payout_amount})")
    tx = engine.execute_early_payout(pool.pool_id, alice, now=early_at, reason="Car repair")
    pool = pools.get_pool(pool.pool_id, alice)
    print(f"   Paid {tx.amount} to {tx.member_name}; next payout {pool.next_payout_date.isoformat()}")

    for round_number in (2, 3):
        print_section(f"{round_number + 1}. Round {round_number}: regular payout")
        due = pool.next_payout_date
        for actor in (alice, bob, carol):
            tracker.record_manual_contribution(pool.pool_id, actor, method="cash", now=due - timedelta(days=1))
        tx = engine.confirm_payout(pool.pool_id, alice, method="gateway", notes=None, now=due)
        print(f"   Paid {tx.amount} to {tx.member_name}")
        pool = engine.advance_round(pool.pool_id, alice, now=due)
        print(f"   Status: {pool.status.value}, round {pool.current_round}")

    print_section("Summary")
    for member in sorted(pool.members, key=lambda m: m.position):
        print(
            f"   {member.position}. {member.name}: contributed {member.total_contributed}, "
            f"paid out {member.payout_date.isoformat() if member.payout_date else '-'}"
        )
    print(f"   Remaining balance: {pool.total_amount}")


if __name__ == "__main__":
    main()
