"""
Tests for `services/contribution_service.py`.

Covers:
- Manual contributions (own / on behalf, duplicates, amount and method validation)
- Balance and member stats updates; payout status re-evaluation
- Round payment tracking actions and the reminder cooldown
- Processor-captured contributions (pending -> settled)
- Notifications never roll back a committed contribution
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from builders import ALICE, BOB, CAROL, DUE, NOW, OUTSIDER, RecordingNotifier, make_pool
from domain.errors import AlreadyContributed, Forbidden, InvalidState, NotFound, ValidationError
from domain.pool import PayoutStatus
from domain.round_payment import RoundPaymentStatus
from domain.rounds import ContributionState
from domain.transaction import TransactionStatus
from services.contribution_service import ContributionTracker, RoundPaymentAction
from services.notification_service import PAYMENT_RECORDED, PAYMENT_REMINDER


@pytest.fixture
def pool(repository):
    return repository.create(make_pool())


class TestManualContributions:
    def test_member_records_own_contribution_as_admin_verified(self, tracker, repository, notifier, pool) -> None:
        """Verify manual methods are accepted immediately, with no separate admin step."""

        payment = tracker.record_manual_contribution(pool.pool_id, BOB, method="Venmo", now=NOW)

        assert payment.status is RoundPaymentStatus.ADMIN_VERIFIED
        assert payment.method == "venmo"
        assert payment.amount == 10

        stored = repository.get(pool.pool_id)
        assert stored.total_amount == 10
        bob = stored.member_by_id(2)
        assert bob.total_contributed == 10
        assert bob.payments_on_time == 1
        assert bob.payments_missed == 0
        assert notifier.templates_for("bob@example.com") == [PAYMENT_RECORDED]

    def test_second_contribution_for_same_round_is_rejected(self, tracker, repository, pool) -> None:
        tracker.record_manual_contribution(pool.pool_id, BOB, method="cash", now=NOW)

        with pytest.raises(AlreadyContributed):
            tracker.record_manual_contribution(pool.pool_id, BOB, method="cash", now=NOW)

        assert repository.get(pool.pool_id).total_amount == 10

    def test_member_confirmed_payment_blocks_manual_contribution(self, tracker, pool) -> None:
        tracker.initialize_round_payments(pool.pool_id, ALICE, now=NOW)
        tracker.update_round_payment(pool.pool_id, BOB, 2, RoundPaymentAction.MEMBER_CONFIRM, now=NOW)

        with pytest.raises(AlreadyContributed):
            tracker.record_manual_contribution(pool.pool_id, BOB, method="zelle", now=NOW)

    def test_admin_may_record_on_behalf_of_member_but_members_may_not(self, tracker, repository, pool) -> None:
        with pytest.raises(Forbidden):
            tracker.record_manual_contribution(pool.pool_id, BOB, method="cash", member_id=3, now=NOW)

        payment = tracker.record_manual_contribution(pool.pool_id, ALICE, method="cash", member_id=3, now=NOW)

        assert payment.member_id == 3
        assert repository.get(pool.pool_id).member_by_id(3).total_contributed == 10

    def test_rejects_wrong_amount_unknown_method_unknown_member_and_outsiders(self, tracker, pool) -> None:
        with pytest.raises(ValidationError):
            tracker.record_manual_contribution(pool.pool_id, BOB, method="cash", amount=5, now=NOW)
        with pytest.raises(ValidationError):
            tracker.record_manual_contribution(pool.pool_id, BOB, method="bitcoin", now=NOW)
        with pytest.raises(NotFound):
            tracker.record_manual_contribution(pool.pool_id, ALICE, method="cash", member_id=42, now=NOW)
        with pytest.raises(Forbidden):
            tracker.record_manual_contribution(pool.pool_id, OUTSIDER, method="cash", now=NOW)
        with pytest.raises(NotFound):
            tracker.record_manual_contribution("missing-pool", BOB, method="cash", now=NOW)

    def test_all_contributions_make_round_ready_to_pay(self, tracker, repository, pool) -> None:
        for actor in (ALICE, BOB):
            tracker.record_manual_contribution(pool.pool_id, actor, method="cash", now=NOW)
        assert repository.get(pool.pool_id).payout_status is PayoutStatus.PENDING_COLLECTION

        tracker.record_manual_contribution(pool.pool_id, CAROL, method="cash", now=NOW)

        stored = repository.get(pool.pool_id)
        assert stored.payout_status is PayoutStatus.READY_TO_PAY
        _, status = tracker.get_round_status(pool.pool_id, BOB)
        assert status.all_collected
        assert status.collected_amount == 30

    def test_contribution_after_due_date_counts_as_missed(self, tracker, repository, pool) -> None:
        tracker.record_manual_contribution(pool.pool_id, BOB, method="cash", now=DUE + timedelta(hours=1))

        bob = repository.get(pool.pool_id).member_by_id(2)
        assert bob.payments_on_time == 0
        assert bob.payments_missed == 1

    def test_notification_failure_does_not_roll_back_contribution(self, repository, pool) -> None:
        tracker = ContributionTracker(repository, RecordingNotifier(fail=True))

        payment = tracker.record_manual_contribution(pool.pool_id, BOB, method="cash", now=NOW)

        assert payment.status is RoundPaymentStatus.ADMIN_VERIFIED
        assert repository.get(pool.pool_id).round_payment_for(2) is not None


class TestRoundPaymentTracking:
    def test_initialize_creates_pending_payment_per_member_and_is_idempotent(self, tracker, pool) -> None:
        payments = tracker.initialize_round_payments(pool.pool_id, ALICE, now=NOW)

        assert [p.member_id for p in payments] == [1, 2, 3]
        assert all(p.status is RoundPaymentStatus.PENDING for p in payments)
        assert len(tracker.initialize_round_payments(pool.pool_id, ALICE, now=NOW)) == 3

        with pytest.raises(Forbidden):
            tracker.initialize_round_payments(pool.pool_id, BOB, now=NOW)

    def test_member_confirms_own_payment_only(self, tracker, pool) -> None:
        tracker.initialize_round_payments(pool.pool_id, ALICE, now=NOW)

        payment = tracker.update_round_payment(
            pool.pool_id, BOB, 2, RoundPaymentAction.MEMBER_CONFIRM, method="zelle", now=NOW
        )
        assert payment.status is RoundPaymentStatus.MEMBER_CONFIRMED
        assert payment.member_confirmed_at == NOW

        with pytest.raises(Forbidden):
            tracker.update_round_payment(pool.pool_id, BOB, 3, RoundPaymentAction.MEMBER_CONFIRM, now=NOW)
        with pytest.raises(InvalidState):
            tracker.update_round_payment(pool.pool_id, BOB, 2, RoundPaymentAction.MEMBER_CONFIRM, now=NOW)

    def test_admin_verify_credits_balance_and_member_confirmed_stays_processing(self, tracker, repository, pool) -> None:
        tracker.initialize_round_payments(pool.pool_id, ALICE, now=NOW)
        tracker.update_round_payment(pool.pool_id, BOB, 2, RoundPaymentAction.MEMBER_CONFIRM, now=NOW)

        _, status = tracker.get_round_status(pool.pool_id, ALICE)
        assert status.per_member[1].state is ContributionState.PROCESSING

        tracker.update_round_payment(pool.pool_id, ALICE, 2, RoundPaymentAction.ADMIN_VERIFY, notes="seen", now=NOW)

        stored = repository.get(pool.pool_id)
        assert stored.round_payment_for(2).status is RoundPaymentStatus.ADMIN_VERIFIED
        assert stored.round_payment_for(2).admin_notes == "seen"
        assert stored.total_amount == 10
        assert stored.member_by_id(2).total_contributed == 10

        with pytest.raises(AlreadyContributed):
            tracker.update_round_payment(pool.pool_id, ALICE, 2, RoundPaymentAction.ADMIN_VERIFY, now=NOW)

    def test_admin_only_actions_reject_plain_members(self, tracker, pool) -> None:
        tracker.initialize_round_payments(pool.pool_id, ALICE, now=NOW)

        for action in (
            RoundPaymentAction.ADMIN_VERIFY,
            RoundPaymentAction.DISPUTE,
            RoundPaymentAction.MARK_LATE,
            RoundPaymentAction.EXCUSE,
            RoundPaymentAction.SEND_REMINDER,
        ):
            with pytest.raises(Forbidden):
                tracker.update_round_payment(pool.pool_id, BOB, 3, action, now=NOW)

    def test_dispute_resets_confirmation_and_verified_payments_cannot_change(self, tracker, pool) -> None:
        tracker.initialize_round_payments(pool.pool_id, ALICE, now=NOW)
        tracker.update_round_payment(pool.pool_id, BOB, 2, RoundPaymentAction.MEMBER_CONFIRM, now=NOW)

        disputed = tracker.update_round_payment(pool.pool_id, ALICE, 2, RoundPaymentAction.DISPUTE, now=NOW)

        assert disputed.status is RoundPaymentStatus.PENDING
        assert disputed.member_confirmed_at is None
        assert disputed.admin_notes == "Payment disputed"

        tracker.update_round_payment(pool.pool_id, ALICE, 2, RoundPaymentAction.ADMIN_VERIFY, now=NOW)
        with pytest.raises(InvalidState):
            tracker.update_round_payment(pool.pool_id, ALICE, 2, RoundPaymentAction.DISPUTE, now=NOW)

    def test_mark_late_only_from_pending_and_late_payment_can_be_confirmed(self, tracker, pool) -> None:
        tracker.initialize_round_payments(pool.pool_id, ALICE, now=NOW)

        late = tracker.update_round_payment(pool.pool_id, ALICE, 3, RoundPaymentAction.MARK_LATE, now=NOW)
        assert late.status is RoundPaymentStatus.LATE

        with pytest.raises(InvalidState):
            tracker.update_round_payment(pool.pool_id, ALICE, 3, RoundPaymentAction.MARK_LATE, now=NOW)

        confirmed = tracker.update_round_payment(pool.pool_id, CAROL, 3, RoundPaymentAction.MEMBER_CONFIRM, now=NOW)
        assert confirmed.status is RoundPaymentStatus.MEMBER_CONFIRMED

    def test_excused_members_let_the_round_become_ready(self, tracker, repository, pool) -> None:
        tracker.initialize_round_payments(pool.pool_id, ALICE, now=NOW)
        tracker.record_manual_contribution(pool.pool_id, ALICE, method="cash", now=NOW)
        tracker.record_manual_contribution(pool.pool_id, BOB, method="cash", now=NOW)

        excused = tracker.update_round_payment(pool.pool_id, ALICE, 3, RoundPaymentAction.EXCUSE, now=NOW)

        assert excused.status is RoundPaymentStatus.EXCUSED
        assert repository.get(pool.pool_id).payout_status is PayoutStatus.READY_TO_PAY

    def test_reminder_is_sent_and_rate_limited_for_24_hours(self, tracker, notifier, pool) -> None:
        tracker.initialize_round_payments(pool.pool_id, ALICE, now=NOW)

        first = tracker.update_round_payment(pool.pool_id, ALICE, 3, RoundPaymentAction.SEND_REMINDER, now=NOW)
        assert first.reminder_count == 1
        assert first.reminder_sent_at == NOW
        assert notifier.templates_for("carol@example.com") == [PAYMENT_REMINDER]

        with pytest.raises(InvalidState) as exc:
            tracker.update_round_payment(
                pool.pool_id, ALICE, 3, RoundPaymentAction.SEND_REMINDER, now=NOW + timedelta(hours=20)
            )
        assert exc.value.reason == "Please wait 4 hours before sending another reminder"

        second = tracker.update_round_payment(
            pool.pool_id, ALICE, 3, RoundPaymentAction.SEND_REMINDER, now=NOW + timedelta(hours=24)
        )
        assert second.reminder_count == 2

    def test_unknown_payment_is_not_found(self, tracker, pool) -> None:
        with pytest.raises(NotFound):
            tracker.update_round_payment(pool.pool_id, ALICE, 2, RoundPaymentAction.ADMIN_VERIFY, now=NOW)


class TestProcessorContributions:
    def test_pending_contribution_is_processing_until_settled(self, tracker, repository, pool) -> None:
        tx = tracker.record_gateway_contribution(
            pool.pool_id, 2, external_reference="pi_123", completed=False, now=NOW
        )

        assert tx.status is TransactionStatus.PENDING
        assert repository.get(pool.pool_id).total_amount == 0
        _, status = tracker.get_round_status(pool.pool_id, ALICE)
        assert status.per_member[1].state is ContributionState.PROCESSING

        settled = tracker.settle_contribution(pool.pool_id, tx.transaction_id, succeeded=True, now=NOW)

        assert settled.status is TransactionStatus.COMPLETED
        stored = repository.get(pool.pool_id)
        assert stored.total_amount == 10
        assert stored.member_by_id(2).payments_on_time == 1

        with pytest.raises(InvalidState):
            tracker.settle_contribution(pool.pool_id, tx.transaction_id, succeeded=True, now=NOW)

    def test_repeated_processor_event_returns_stored_transaction(self, tracker, repository, pool) -> None:
        first = tracker.record_gateway_contribution(pool.pool_id, 2, external_reference="pi_1", completed=True, now=NOW)
        again = tracker.record_gateway_contribution(pool.pool_id, 2, external_reference="pi_1", completed=True, now=NOW)

        assert again == first
        assert repository.get(pool.pool_id).total_amount == 10

        with pytest.raises(AlreadyContributed):
            tracker.record_gateway_contribution(pool.pool_id, 2, external_reference="pi_2", completed=True, now=NOW)

    def test_failed_settlement_leaves_member_missing(self, tracker, repository, pool) -> None:
        tx = tracker.record_gateway_contribution(pool.pool_id, 3, external_reference="pi_9", completed=False, now=NOW)

        tracker.settle_contribution(pool.pool_id, tx.transaction_id, succeeded=False, now=NOW)

        _, status = tracker.get_round_status(pool.pool_id, ALICE)
        assert status.per_member[2].state is ContributionState.MISSING
        assert repository.get(pool.pool_id).total_amount == 0
