"""
Pool repository (persistence).

A pool is stored as one JSON document per row, together with an integer
`version` column used for optimistic concurrency:

    pools(pool_id text primary key, version int, document jsonb, updated_at_utc timestamptz)

`save` is a compare-and-swap: the row is only updated when its stored version
still equals the version the caller loaded. Otherwise `VersionConflict` is
raised and nothing is written. This module enforces no business rules.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Protocol

from domain.member import Member, MemberRole, MemberStatus
from domain.payment_links import PayoutMethod, PayoutMethodType
from domain.pool import PayoutStatus, Pool, PoolStatus
from domain.round_payment import RoundPayment, RoundPaymentStatus
from domain.schedule import Frequency, first_payout_date_from
from domain.time import parse_utc_datetime, to_iso_utc
from domain.transaction import (
    ContributionTransaction,
    DisbursementMethod,
    PayoutTransaction,
    Transaction,
    TransactionStatus,
)

logger = logging.getLogger(__name__)


class VersionConflict(Exception):
    """The stored pool changed since it was loaded."""

    def __init__(self, pool_id: str, expected_version: int) -> None:
        super().__init__(f"Pool {pool_id} was modified concurrently (expected version {expected_version})")
        self.pool_id = pool_id
        self.expected_version = expected_version


class PoolRepository(Protocol):
    def create(self, pool: Pool) -> Pool:
        """Insert a new pool; returns it with its initial version."""

    def get(self, pool_id: str) -> Optional[Pool]:
        """Load a pool, or None when it does not exist."""

    def save(self, pool: Pool) -> Pool:
        """Compare-and-swap on `pool.version`; returns the pool with its new version."""


# ----------------------------------------------------------------------
# Document mapping
# ----------------------------------------------------------------------


def _payout_method_to_dict(method: Optional[PayoutMethod]) -> Optional[Dict[str, Any]]:
    if method is None:
        return None
    return {"type": method.type.value, "handle": method.handle, "display_name": method.display_name}


def _payout_method_from_dict(data: Optional[Mapping[str, Any]]) -> Optional[PayoutMethod]:
    if not data:
        return None
    return PayoutMethod(
        type=PayoutMethodType(str(data["type"])),
        handle=str(data["handle"]),
        display_name=data.get("display_name"),
    )


def _member_to_dict(member: Member) -> Dict[str, Any]:
    return {
        "member_id": member.member_id,
        "name": member.name,
        "email": member.email,
        "position": member.position,
        "role": member.role.value,
        "status": member.status.value,
        "payout_received": member.payout_received,
        "payout_date": to_iso_utc(member.payout_date, name="payout_date"),
        "total_contributed": member.total_contributed,
        "payments_on_time": member.payments_on_time,
        "payments_missed": member.payments_missed,
        "payout_method": _payout_method_to_dict(member.payout_method),
        "payout_account_id": member.payout_account_id,
    }


def _member_from_dict(data: Mapping[str, Any]) -> Member:
    return Member(
        member_id=int(data["member_id"]),
        name=str(data["name"]),
        email=str(data["email"]),
        position=int(data["position"]),
        role=MemberRole(str(data.get("role", MemberRole.MEMBER.value))),
        status=MemberStatus(str(data.get("status", MemberStatus.WAITING.value))),
        payout_received=bool(data.get("payout_received", False)),
        payout_date=parse_utc_datetime(data.get("payout_date")),
        total_contributed=int(data.get("total_contributed", 0)),
        payments_on_time=int(data.get("payments_on_time", 0)),
        payments_missed=int(data.get("payments_missed", 0)),
        payout_method=_payout_method_from_dict(data.get("payout_method")),
        payout_account_id=data.get("payout_account_id"),
    )


def _transaction_to_dict(tx: Transaction) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "transaction_id": tx.transaction_id,
        "amount": tx.amount,
        "round": tx.round,
        "member_id": tx.member_id,
        "member_name": tx.member_name,
        "status": tx.status.value,
        "date": to_iso_utc(tx.date, name="date"),
        "external_reference": tx.external_reference,
    }
    if isinstance(tx, ContributionTransaction):
        data["type"] = "contribution"
        return data

    data.update(
        {
            "type": "payout",
            "scheduled_payout_date": to_iso_utc(tx.scheduled_payout_date, name="scheduled_payout_date"),
            "actual_payout_date": to_iso_utc(tx.actual_payout_date, name="actual_payout_date"),
            "idempotency_key": tx.idempotency_key,
            "disbursement_method": tx.disbursement_method.value,
            "was_early_payout": tx.was_early_payout,
            "early_payout_reason": tx.early_payout_reason,
            "initiated_by": tx.initiated_by,
            "notes": tx.notes,
        }
    )
    return data


def _transaction_from_dict(data: Mapping[str, Any]) -> Transaction:
    common = dict(
        transaction_id=int(data["transaction_id"]),
        amount=int(data["amount"]),
        round=int(data["round"]),
        member_id=int(data["member_id"]),
        member_name=str(data["member_name"]),
        status=TransactionStatus(str(data["status"])),
        date=parse_utc_datetime(data["date"]),
        external_reference=data.get("external_reference"),
    )
    kind = data.get("type")
    if kind == "contribution":
        return ContributionTransaction(**common)
    if kind == "payout":
        return PayoutTransaction(
            **common,
            scheduled_payout_date=parse_utc_datetime(data["scheduled_payout_date"]),
            actual_payout_date=parse_utc_datetime(data.get("actual_payout_date")),
            idempotency_key=str(data["idempotency_key"]),
            disbursement_method=DisbursementMethod(str(data.get("disbursement_method", "gateway"))),
            was_early_payout=bool(data.get("was_early_payout", False)),
            early_payout_reason=data.get("early_payout_reason"),
            initiated_by=data.get("initiated_by"),
            notes=data.get("notes"),
        )
    raise ValueError(f"Unknown transaction type: {kind!r}")


def _round_payment_to_dict(payment: RoundPayment) -> Dict[str, Any]:
    return {
        "member_id": payment.member_id,
        "member_name": payment.member_name,
        "amount": payment.amount,
        "status": payment.status.value,
        "updated_at": to_iso_utc(payment.updated_at, name="updated_at"),
        "method": payment.method,
        "member_confirmed_at": to_iso_utc(payment.member_confirmed_at, name="member_confirmed_at"),
        "admin_verified_at": to_iso_utc(payment.admin_verified_at, name="admin_verified_at"),
        "admin_notes": payment.admin_notes,
        "reminder_sent_at": to_iso_utc(payment.reminder_sent_at, name="reminder_sent_at"),
        "reminder_count": payment.reminder_count,
    }


def _round_payment_from_dict(data: Mapping[str, Any]) -> RoundPayment:
    return RoundPayment(
        member_id=int(data["member_id"]),
        member_name=str(data["member_name"]),
        amount=int(data["amount"]),
        status=RoundPaymentStatus(str(data["status"])),
        updated_at=parse_utc_datetime(data["updated_at"]),
        method=data.get("method"),
        member_confirmed_at=parse_utc_datetime(data.get("member_confirmed_at")),
        admin_verified_at=parse_utc_datetime(data.get("admin_verified_at")),
        admin_notes=data.get("admin_notes"),
        reminder_sent_at=parse_utc_datetime(data.get("reminder_sent_at")),
        reminder_count=int(data.get("reminder_count", 0)),
    )


def pool_to_document(pool: Pool) -> Dict[str, Any]:
    """Serialize a Pool into a JSON-compatible document (version excluded)."""

    return {
        "pool_id": pool.pool_id,
        "name": pool.name,
        "description": pool.description,
        "status": pool.status.value,
        "contribution_amount": pool.contribution_amount,
        "frequency": pool.frequency.value,
        "current_round": pool.current_round,
        "total_rounds": pool.total_rounds,
        "next_payout_date": to_iso_utc(pool.next_payout_date, name="next_payout_date"),
        "first_payout_date": to_iso_utc(pool.first_payout_date, name="first_payout_date"),
        "created_at": to_iso_utc(pool.created_at, name="created_at"),
        "members": [_member_to_dict(m) for m in pool.members],
        "transactions": [_transaction_to_dict(t) for t in pool.transactions],
        "round_payments": [_round_payment_to_dict(p) for p in pool.round_payments],
        "payout_status": pool.payout_status.value,
        "total_amount": pool.total_amount,
        "next_transaction_id": pool.next_transaction_id,
        "next_member_id": pool.next_member_id,
        "payout_completed_at": to_iso_utc(pool.payout_completed_at, name="payout_completed_at"),
        "payout_method": pool.payout_method,
        "payout_notes": pool.payout_notes,
        "payout_confirmed_by": pool.payout_confirmed_by,
    }


def document_to_pool(document: Mapping[str, Any], *, version: int) -> Pool:
    """Rebuild a Pool from its stored document."""

    # Stored frequencies were validated at creation.
    frequency = Frequency(str(document["frequency"]))
    current_round = int(document.get("current_round", 1))
    total_rounds = int(document["total_rounds"])
    next_payout_date = parse_utc_datetime(document["next_payout_date"])
    first_payout_date = parse_utc_datetime(document.get("first_payout_date"))
    if first_payout_date is None:
        first_payout_date = first_payout_date_from(next_payout_date, frequency, min(current_round, total_rounds))

    return Pool(
        pool_id=str(document["pool_id"]),
        name=str(document["name"]),
        description=str(document.get("description") or ""),
        status=PoolStatus(str(document.get("status", PoolStatus.ACTIVE.value))),
        contribution_amount=int(document["contribution_amount"]),
        frequency=frequency,
        current_round=current_round,
        total_rounds=total_rounds,
        next_payout_date=next_payout_date,
        first_payout_date=first_payout_date,
        created_at=parse_utc_datetime(document["created_at"]),
        members=tuple(_member_from_dict(m) for m in document.get("members") or []),
        transactions=tuple(_transaction_from_dict(t) for t in document.get("transactions") or []),
        round_payments=tuple(_round_payment_from_dict(p) for p in document.get("round_payments") or []),
        payout_status=PayoutStatus(str(document.get("payout_status", PayoutStatus.PENDING_COLLECTION.value))),
        total_amount=int(document.get("total_amount", 0)),
        next_transaction_id=int(document.get("next_transaction_id", 1)),
        next_member_id=int(document.get("next_member_id", 1)),
        payout_completed_at=parse_utc_datetime(document.get("payout_completed_at")),
        payout_method=document.get("payout_method"),
        payout_notes=document.get("payout_notes"),
        payout_confirmed_by=document.get("payout_confirmed_by"),
        version=version,
    )


# ----------------------------------------------------------------------
# Supabase store
# ----------------------------------------------------------------------


class SupabasePoolRepository:
    """Pool documents in a Supabase (PostgREST) table."""

    def __init__(self, client: Any = None, *, table: str = "pools") -> None:
        if client is None:
            from repositories.client import get_supabase

            client = get_supabase()
        self._client = client
        self._table = table

    def create(self, pool: Pool) -> Pool:
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "pool_id": pool.pool_id,
            "version": 1,
            "document": pool_to_document(pool),
            "updated_at_utc": now.isoformat(),
        }

        response = self._client.table(self._table).insert(payload).execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to create pool: {error}")

        return replace(pool, version=1)

    def get(self, pool_id: str) -> Optional[Pool]:
        response = (
            self._client.table(self._table)
            .select("pool_id,version,document")
            .eq("pool_id", pool_id)
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to get pool: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None

        row = rows[0]
        return document_to_pool(row["document"], version=int(row["version"]))

    def save(self, pool: Pool) -> Pool:
        new_version = pool.version + 1
        payload: dict[str, Any] = {
            "version": new_version,
            "document": pool_to_document(pool),
            "updated_at_utc": datetime.now(timezone.utc).isoformat(),
        }

        # Conditional update: matches zero rows if another writer bumped the version.
        response = (
            self._client.table(self._table)
            .update(payload)
            .eq("pool_id", pool.pool_id)
            .eq("version", pool.version)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to save pool: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            logger.info(
                f"Version conflict saving pool {pool.pool_id}",
                extra={"pool_id": pool.pool_id, "expected_version": pool.version},
            )
            raise VersionConflict(pool.pool_id, pool.version)

        return replace(pool, version=new_version)


__all__ = [
    "PoolRepository",
    "VersionConflict",
    "SupabasePoolRepository",
    "pool_to_document",
    "document_to_pool",
]
