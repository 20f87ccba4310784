"""
Payout engine.

Handles:
- Early payout eligibility and execution (before the scheduled date)
- Regular payout confirmation once every contribution is collected
- Round advancement and pool completion
- Reconciliation of payouts left pending by an interrupted gateway call

Money movement follows the same three steps on every gateway path:
1. Atomic section: re-validate, append a *pending* payout transaction
2. Gateway transfer outside the atomic section, idempotency key derived from (pool, round)
3. Atomic section: mark the transaction completed (and the round paid) or failed

A crash between steps leaves a pending transaction; `reconcile_pending_payout`
re-runs the transfer with the same key, so it converges without paying twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from domain.errors import (
    AlreadyDone,
    AlreadyPaidOrInProgress,
    GatewayFailure,
    InsufficientFunds,
    InvalidState,
    NotFound,
    PoolError,
    ValidationError,
)
from domain.member import Member
from domain.pool import PayoutStatus, Pool
from domain.rounds import (
    EarlyPayoutDenial,
    EarlyPayoutVerification,
    RoundStatus,
    check_early_payout_eligibility,
    round_status,
)
from domain.time import require_utc_timestamp
from domain.transaction import (
    DisbursementMethod,
    PayoutTransaction,
    TransactionStatus,
    payout_idempotency_key,
)
from repositories.pool_repository import PoolRepository
from services.atomic import DEFAULT_MAX_ATTEMPTS, load_pool, update_pool_atomically
from services.collaborators import Actor, GatewayError, Notifier, PaymentGateway
from services.notification_service import (
    EARLY_PAYOUT_SENT,
    PAYOUT_SENT,
    ROUND_ADVANCED,
    send_notification,
)

logger = logging.getLogger(__name__)


_DENIAL_ERRORS = {
    EarlyPayoutDenial.POOL_COMPLETED: InvalidState,
    EarlyPayoutDenial.ROUND_ALREADY_CLOSED: AlreadyPaidOrInProgress,
    EarlyPayoutDenial.ROUND_NOT_STARTED: InvalidState,
    EarlyPayoutDenial.SCHEDULED_DATE_PASSED: InvalidState,
    EarlyPayoutDenial.NO_RECIPIENT: NotFound,
    EarlyPayoutDenial.ALREADY_PAID: AlreadyPaidOrInProgress,
    EarlyPayoutDenial.PAYOUT_EXISTS: AlreadyPaidOrInProgress,
    EarlyPayoutDenial.CYCLE_NOT_STARTED: InvalidState,
    EarlyPayoutDenial.CONTRIBUTIONS_PROCESSING: InvalidState,
    EarlyPayoutDenial.CONTRIBUTIONS_MISSING: InvalidState,
    EarlyPayoutDenial.NO_PAYOUT_METHOD: InvalidState,
}


def denial_error(verification: EarlyPayoutVerification) -> PoolError:
    """Translate a denied eligibility check into the matching PoolError."""

    error_class = _DENIAL_ERRORS[verification.denial]
    return error_class(verification.reason, missing_members=verification.missing_contributions)


@dataclass(frozen=True, slots=True)
class RoundPayoutView:
    """
    Regular payout status for the current round.

    verified_amount is what has actually been collected; pot_amount is what a
    fully funded round holds.
    """

    round: int
    pot_amount: int
    verified_amount: int
    payout_status: PayoutStatus
    round_status: RoundStatus
    recipient: Optional[Member]
    payout_completed_at: Optional[datetime]
    payout_method: Optional[str]
    payout_notes: Optional[str]
    payout_transaction: Optional[PayoutTransaction]


class PayoutEngine:
    """Payout use cases for one pool repository and payment gateway."""

    def __init__(
        self,
        repository: PoolRepository,
        gateway: Optional[PaymentGateway] = None,
        notifier: Optional[Notifier] = None,
        *,
        currency: str = "usd",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.repository = repository
        self.gateway = gateway
        self.notifier = notifier
        self.currency = currency
        self.max_attempts = max_attempts

    def _update(self, pool_id: str, mutation):
        return update_pool_atomically(self.repository, pool_id, mutation, max_attempts=self.max_attempts)

    def _require_gateway(self) -> PaymentGateway:
        if self.gateway is None:
            raise GatewayFailure("Payment gateway is not configured")
        return self.gateway

    # ------------------------------------------------------------------
    # Early payout
    # ------------------------------------------------------------------

    def early_payout_status(
        self, pool_id: str, actor: Actor, *, now: datetime, round_number: Optional[int] = None
    ) -> EarlyPayoutVerification:
        """Eligibility of the current (or given) round for early payout. Admin only."""

        pool = load_pool(self.repository, pool_id)
        pool.require_admin(actor.email, action="view early payout status")
        round_number = pool.current_round if round_number is None else round_number
        return check_early_payout_eligibility(pool, round_number, now)

    def execute_early_payout(
        self,
        pool_id: str,
        actor: Actor,
        *,
        now: datetime,
        round_number: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> PayoutTransaction:
        """
        Pay the round's pot to its recipient before the scheduled date.

        Eligibility is re-checked inside the atomic section, so of two
        concurrent requests for the same round exactly one creates the payout;
        the other fails with AlreadyPaidOrInProgress. On success the round is
        advanced and the next payout date is one interval after the round's
        original scheduled date.

        Raises:
            Forbidden: caller is not a pool administrator
            AlreadyPaidOrInProgress: the round already has a pending or completed payout
            InvalidState / NotFound: an eligibility precondition failed
            InsufficientFunds: tracked balance is lower than the payout amount
            GatewayFailure: the transfer failed; the transaction is marked failed
        """

        require_utc_timestamp("now", now)
        self._require_gateway()
        if round_number is None:
            round_number = load_pool(self.repository, pool_id).current_round

        def mutation(pool: Pool) -> Tuple[Pool, Tuple[PayoutTransaction, Member]]:
            admin = pool.require_admin(actor.email, action="execute early payouts")

            verification = check_early_payout_eligibility(pool, round_number, now)
            if not verification.allowed:
                raise denial_error(verification)

            recipient = verification.recipient
            if not recipient.payout_account_id:
                raise InvalidState("Recipient has not connected a payout account for transfers")

            amount = min(round_status(pool, round_number).collected_amount, verification.payout_amount)
            if amount <= 0:
                raise InvalidState("Nothing has been collected for this round")
            if pool.total_amount < amount:
                raise InsufficientFunds(
                    f"Pool balance ({pool.total_amount}) is lower than the payout amount ({amount})"
                )

            tx = PayoutTransaction(
                transaction_id=pool.next_transaction_id,
                amount=amount,
                round=round_number,
                member_id=recipient.member_id,
                member_name=recipient.name,
                status=TransactionStatus.PENDING,
                date=now,
                scheduled_payout_date=pool.next_payout_date,
                idempotency_key=payout_idempotency_key(pool.pool_id, round_number),
                disbursement_method=DisbursementMethod.GATEWAY,
                was_early_payout=True,
                early_payout_reason=reason or "Early payout requested by admin",
                initiated_by=admin.email,
            )
            return pool.add_transaction(tx), (tx, recipient)

        _, (tx, recipient) = self._update(pool_id, mutation)

        logger.info(
            f"Early payout intent created for pool {pool_id} round {round_number}",
            extra={
                "pool_id": pool_id,
                "round": round_number,
                "transaction_id": tx.transaction_id,
                "amount": tx.amount,
                "initiated_by": actor.email,
            },
        )
        return self._disburse(pool_id, tx, recipient, now=now, advance=True)

    # ------------------------------------------------------------------
    # Regular payout
    # ------------------------------------------------------------------

    def round_payout_status(self, pool_id: str, actor: Actor) -> RoundPayoutView:
        pool = load_pool(self.repository, pool_id)
        pool.require_member(actor.email)
        status = round_status(pool)
        return RoundPayoutView(
            round=pool.current_round,
            pot_amount=pool.pot_amount,
            verified_amount=status.collected_amount,
            payout_status=pool.payout_status,
            round_status=status,
            recipient=pool.current_recipient,
            payout_completed_at=pool.payout_completed_at,
            payout_method=pool.payout_method,
            payout_notes=pool.payout_notes,
            payout_transaction=pool.open_payout_for_round(pool.current_round),
        )

    def confirm_payout(
        self,
        pool_id: str,
        actor: Actor,
        *,
        method: str,
        now: datetime,
        notes: Optional[str] = None,
    ) -> PayoutTransaction:
        """
        Pay out a fully collected round. Admin only.

        Manual methods (venmo, cash, ...) record the payout as completed in one
        atomic commit; `gateway` transfers through the payment gateway. Either
        way the round ends `paid` and must be advanced separately.
        """

        require_utc_timestamp("now", now)
        try:
            disbursement = DisbursementMethod(str(method).strip().lower())
        except ValueError:
            supported = ", ".join(m.value for m in DisbursementMethod)
            raise ValidationError(f"Unsupported payout method '{method}'. Use one of: {supported}") from None
        via_gateway = disbursement is DisbursementMethod.GATEWAY
        if via_gateway:
            self._require_gateway()

        def mutation(pool: Pool) -> Tuple[Pool, Tuple[PayoutTransaction, Member]]:
            admin = pool.require_admin(actor.email, action="confirm payouts")

            if pool.is_completed:
                raise InvalidState("Pool has completed all rounds")
            if pool.payout_status is PayoutStatus.PAID:
                raise AlreadyDone("Payout has already been completed")
            if pool.payout_status is not PayoutStatus.READY_TO_PAY:
                raise InvalidState("All payments must be verified before payout")

            recipient = pool.current_recipient
            if recipient is None:
                raise NotFound("No eligible recipient found for the current round")
            if recipient.payout_received:
                raise AlreadyPaidOrInProgress("Payout has already been processed for this round")
            if pool.open_payout_for_round(pool.current_round) is not None:
                raise AlreadyPaidOrInProgress("A payout transaction already exists for this round")
            if via_gateway and not recipient.payout_account_id:
                raise InvalidState("Recipient has not connected a payout account for transfers")

            amount = min(round_status(pool).collected_amount, pool.pot_amount)
            if amount <= 0:
                raise InvalidState("Nothing has been collected for this round")
            if pool.total_amount < amount:
                raise InsufficientFunds(
                    f"Pool balance ({pool.total_amount}) is lower than the payout amount ({amount})"
                )

            tx = PayoutTransaction(
                transaction_id=pool.next_transaction_id,
                amount=amount,
                round=pool.current_round,
                member_id=recipient.member_id,
                member_name=recipient.name,
                status=TransactionStatus.PENDING,
                date=now,
                scheduled_payout_date=pool.next_payout_date,
                idempotency_key=payout_idempotency_key(pool.pool_id, pool.current_round),
                disbursement_method=disbursement,
                initiated_by=admin.email,
                notes=notes,
            )
            if via_gateway:
                return pool.add_transaction(tx), (tx, recipient)

            completed = tx.completed(external_reference=None, completed_at=now)
            updated = _settle_payout(pool.add_transaction(completed), completed, now=now)
            return updated, (completed, recipient)

        _, (tx, recipient) = self._update(pool_id, mutation)

        if not via_gateway:
            logger.info(
                f"Manual payout recorded for pool {pool_id} round {tx.round}",
                extra={"pool_id": pool_id, "round": tx.round, "method": disbursement.value, "amount": tx.amount},
            )
            self._notify_paid(recipient, tx, pool_id)
            return tx

        return self._disburse(pool_id, tx, recipient, now=now, advance=False)

    # ------------------------------------------------------------------
    # Round advancement
    # ------------------------------------------------------------------

    def advance_round(self, pool_id: str, actor: Actor, *, now: datetime) -> Pool:
        """Move a paid round forward, or complete the pool after the last one. Admin only."""

        require_utc_timestamp("now", now)

        def mutation(pool: Pool) -> Tuple[Pool, None]:
            pool.require_admin(actor.email, action="advance rounds")
            return pool.advanced(), None

        pool, _ = self._update(pool_id, mutation)

        if pool.is_completed:
            logger.info(f"Pool {pool_id} completed all rounds", extra={"pool_id": pool_id})
        else:
            logger.info(
                f"Pool {pool_id} advanced to round {pool.current_round}",
                extra={"pool_id": pool_id, "round": pool.current_round},
            )
            recipient = pool.current_recipient
            if recipient is not None:
                send_notification(
                    self.notifier,
                    recipient.email,
                    ROUND_ADVANCED,
                    {
                        "pool_id": pool_id,
                        "pool_name": pool.name,
                        "round": pool.current_round,
                        "payout_date": pool.next_payout_date.isoformat(),
                    },
                )
        return pool

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile_pending_payout(
        self, pool_id: str, actor: Actor, *, now: datetime, round_number: Optional[int] = None
    ) -> PayoutTransaction:
        """
        Re-drive a payout left pending by an interrupted transfer.

        The same idempotency key is sent again, so a transfer the gateway
        already executed is returned rather than repeated.
        """

        require_utc_timestamp("now", now)
        self._require_gateway()

        pool = load_pool(self.repository, pool_id)
        pool.require_admin(actor.email, action="reconcile payouts")
        round_number = pool.current_round if round_number is None else round_number

        pending = [t for t in pool.payouts_for_round(round_number) if t.status is TransactionStatus.PENDING]
        if not pending:
            raise NotFound("No pending payout for this round")
        tx = pending[0]
        recipient = pool.member_by_id(tx.member_id)
        if recipient is None:
            raise NotFound(f"Member {tx.member_id} not found")

        logger.info(
            f"Reconciling pending payout {tx.transaction_id} for pool {pool_id}",
            extra={"pool_id": pool_id, "round": round_number, "idempotency_key": tx.idempotency_key},
        )
        return self._disburse(pool_id, tx, recipient, now=now, advance=tx.was_early_payout)

    # ------------------------------------------------------------------
    # Gateway path
    # ------------------------------------------------------------------

    def _disburse(
        self,
        pool_id: str,
        tx: PayoutTransaction,
        recipient: Member,
        *,
        now: datetime,
        advance: bool,
    ) -> PayoutTransaction:
        gateway = self._require_gateway()
        try:
            result = gateway.transfer(
                destination_account=recipient.payout_account_id or "",
                amount_minor_units=tx.amount * 100,
                currency=self.currency,
                idempotency_key=tx.idempotency_key,
                metadata={
                    "pool_id": pool_id,
                    "round": str(tx.round),
                    "transaction_id": str(tx.transaction_id),
                    "recipient": recipient.email,
                },
            )
        except GatewayError as e:
            logger.error(
                f"Payout transfer failed for pool {pool_id} round {tx.round}: {str(e)}",
                extra={"pool_id": pool_id, "round": tx.round, "idempotency_key": tx.idempotency_key},
            )
            try:
                self._mark_failed(pool_id, tx.transaction_id)
            except (PoolError, RuntimeError) as mark_error:
                # The transfer failure is what the caller needs to see; the
                # payout stays pending and can be reconciled.
                logger.error(
                    f"Could not mark payout {tx.transaction_id} failed for pool {pool_id}: {str(mark_error)}",
                    extra={"pool_id": pool_id, "transaction_id": str(tx.transaction_id)},
                )
            raise GatewayFailure(f"Payout transfer failed: {str(e)}") from e

        def finalize(pool: Pool) -> Tuple[Pool, PayoutTransaction]:
            current = pool.transaction_by_id(tx.transaction_id)
            if not isinstance(current, PayoutTransaction):
                raise NotFound(f"Payout {tx.transaction_id} not found")
            if current.status is TransactionStatus.COMPLETED:
                return pool, current
            if current.status is not TransactionStatus.PENDING:
                raise InvalidState(f"Payout is already {current.status.value}")

            completed = current.completed(external_reference=result.transfer_id, completed_at=now)
            updated = _settle_payout(pool.with_transaction(completed), completed, now=now)
            if advance and updated.payout_status is PayoutStatus.PAID and updated.current_round == completed.round:
                updated = updated.advanced()
            return updated, completed

        _, completed = self._update(pool_id, finalize)

        logger.info(
            f"Payout {completed.transaction_id} completed for pool {pool_id} round {completed.round}",
            extra={
                "pool_id": pool_id,
                "round": completed.round,
                "transfer_id": completed.external_reference,
                "was_early_payout": completed.was_early_payout,
            },
        )
        self._notify_paid(recipient, completed, pool_id)
        return completed

    def _mark_failed(self, pool_id: str, transaction_id: int) -> None:
        def mutation(pool: Pool) -> Tuple[Pool, None]:
            current = pool.transaction_by_id(transaction_id)
            if not isinstance(current, PayoutTransaction) or current.status is not TransactionStatus.PENDING:
                return pool, None
            return pool.with_transaction(current.failed()), None

        self._update(pool_id, mutation)

    def _notify_paid(self, recipient: Member, tx: PayoutTransaction, pool_id: str) -> None:
        send_notification(
            self.notifier,
            recipient.email,
            EARLY_PAYOUT_SENT if tx.was_early_payout else PAYOUT_SENT,
            {"pool_id": pool_id, "round": tx.round, "amount": tx.amount, "method": tx.disbursement_method.value},
        )


def _settle_payout(pool: Pool, tx: PayoutTransaction, *, now: datetime) -> Pool:
    """Apply a completed payout: debit the balance and, for the active round, mark it paid."""

    pool = pool.with_balance_change(-tx.amount)
    if tx.round != pool.current_round:
        return pool
    recipient = pool.member_by_id(tx.member_id)
    if recipient is None:
        raise NotFound(f"Member {tx.member_id} not found")
    return pool.mark_paid(
        recipient=recipient,
        paid_at=now,
        method=tx.disbursement_method.value,
        notes=tx.notes,
        confirmed_by=tx.initiated_by,
    )


__all__ = ["PayoutEngine", "RoundPayoutView", "denial_error"]
