"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Domain objects are converted with the `from_domain` constructors so routers
never hand dataclasses to FastAPI directly.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from domain.member import Member
from domain.payment_links import PayoutMethod
from domain.pool import Pool
from domain.round_payment import RoundPayment
from domain.rounds import EarlyPayoutVerification, MemberContributionStatus
from domain.schedule import schedule_dates
from domain.transaction import ContributionTransaction, Transaction


# ============================================================================
# Shared Models
# ============================================================================

class PayoutMethodResponse(BaseModel):
    type: str  # "venmo", "paypal", "cashapp", "zelle", "bank"
    handle: str
    display_name: Optional[str] = None
    label: str

    @classmethod
    def from_domain(cls, method: Optional[PayoutMethod]) -> Optional["PayoutMethodResponse"]:
        if method is None:
            return None
        return cls(type=method.type.value, handle=method.handle, display_name=method.display_name, label=method.label)


class MemberResponse(BaseModel):
    """Pool member as seen by other members."""
    member_id: int
    name: str
    email: str
    position: int
    role: str
    status: str
    payout_received: bool
    payout_date: Optional[datetime] = None
    total_contributed: int
    payments_on_time: int
    payments_missed: int
    payout_method: Optional[PayoutMethodResponse] = None
    has_payout_account: bool

    @classmethod
    def from_domain(cls, member: Member) -> "MemberResponse":
        return cls(
            member_id=member.member_id,
            name=member.name,
            email=member.email,
            position=member.position,
            role=member.role.value,
            status=member.status.value,
            payout_received=member.payout_received,
            payout_date=member.payout_date,
            total_contributed=member.total_contributed,
            payments_on_time=member.payments_on_time,
            payments_missed=member.payments_missed,
            payout_method=PayoutMethodResponse.from_domain(member.payout_method),
            has_payout_account=member.payout_account_id is not None,
        )


class TransactionResponse(BaseModel):
    """Contribution or payout transaction."""
    transaction_id: int
    type: str  # "contribution" or "payout"
    amount: int
    round: int
    member_id: int
    member_name: str
    status: str
    date: datetime
    external_reference: Optional[str] = None
    scheduled_payout_date: Optional[datetime] = None
    actual_payout_date: Optional[datetime] = None
    was_early_payout: bool = False
    early_payout_reason: Optional[str] = None
    disbursement_method: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_domain(cls, tx: Transaction) -> "TransactionResponse":
        common = dict(
            transaction_id=tx.transaction_id,
            amount=tx.amount,
            round=tx.round,
            member_id=tx.member_id,
            member_name=tx.member_name,
            status=tx.status.value,
            date=tx.date,
            external_reference=tx.external_reference,
        )
        if isinstance(tx, ContributionTransaction):
            return cls(type="contribution", **common)
        return cls(
            type="payout",
            scheduled_payout_date=tx.scheduled_payout_date,
            actual_payout_date=tx.actual_payout_date,
            was_early_payout=tx.was_early_payout,
            early_payout_reason=tx.early_payout_reason,
            disbursement_method=tx.disbursement_method.value,
            notes=tx.notes,
            **common,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "transaction_id": 4,
                "type": "payout",
                "amount": 30,
                "round": 1,
                "member_id": 1,
                "member_name": "Alice",
                "status": "completed",
                "date": "2025-01-05T12:00:00Z",
                "external_reference": "tr_1Pabc",
                "scheduled_payout_date": "2025-01-08T12:00:00Z",
                "actual_payout_date": "2025-01-05T12:00:05Z",
                "was_early_payout": True,
                "early_payout_reason": "Emergency expense",
                "disbursement_method": "gateway",
            }
        }


class RoundPaymentResponse(BaseModel):
    member_id: int
    member_name: str
    amount: int
    status: str
    method: Optional[str] = None
    member_confirmed_at: Optional[datetime] = None
    admin_verified_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    reminder_sent_at: Optional[datetime] = None
    reminder_count: int = 0
    updated_at: datetime

    @classmethod
    def from_domain(cls, payment: RoundPayment) -> "RoundPaymentResponse":
        return cls(
            member_id=payment.member_id,
            member_name=payment.member_name,
            amount=payment.amount,
            status=payment.status.value,
            method=payment.method,
            member_confirmed_at=payment.member_confirmed_at,
            admin_verified_at=payment.admin_verified_at,
            admin_notes=payment.admin_notes,
            reminder_sent_at=payment.reminder_sent_at,
            reminder_count=payment.reminder_count,
            updated_at=payment.updated_at,
        )


# ============================================================================
# Pool Models
# ============================================================================

class CreatePoolRequest(BaseModel):
    """Request to create a pool; the caller becomes its administrator."""
    name: str = Field(..., min_length=1, max_length=100)
    creator_name: str = Field(..., min_length=1, max_length=100)
    contribution_amount: int = Field(..., gt=0, description="Whole currency units per member per round")
    frequency: str = Field(..., description="weekly, biweekly or monthly")
    total_rounds: int = Field(..., ge=2, le=100)
    first_payout_date: datetime
    description: Optional[str] = Field(None, max_length=500)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Family Savings",
                "creator_name": "Alice",
                "contribution_amount": 10,
                "frequency": "weekly",
                "total_rounds": 3,
                "first_payout_date": "2025-01-08T12:00:00Z",
            }
        }


class PoolResponse(BaseModel):
    pool_id: str
    name: str
    description: str
    status: str
    contribution_amount: int
    frequency: str
    current_round: int
    total_rounds: int
    next_payout_date: datetime
    first_payout_date: datetime
    payout_schedule: List[datetime]
    payout_status: str
    total_amount: int
    members: List[MemberResponse]
    transactions: List[TransactionResponse]
    created_at: datetime

    @classmethod
    def from_domain(cls, pool: Pool) -> "PoolResponse":
        return cls(
            pool_id=pool.pool_id,
            name=pool.name,
            description=pool.description,
            status=pool.status.value,
            contribution_amount=pool.contribution_amount,
            frequency=pool.frequency.value,
            current_round=pool.current_round,
            total_rounds=pool.total_rounds,
            next_payout_date=pool.next_payout_date,
            first_payout_date=pool.first_payout_date,
            # Dates of the current and remaining rounds.
            payout_schedule=schedule_dates(pool.first_payout_date, pool.frequency, pool.total_rounds)[pool.current_round - 1 :],
            payout_status=pool.payout_status.value,
            total_amount=pool.total_amount,
            members=[MemberResponse.from_domain(m) for m in sorted(pool.members, key=lambda m: m.position)],
            transactions=[TransactionResponse.from_domain(t) for t in pool.transactions],
            created_at=pool.created_at,
        )


class AddMemberRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)


class PayoutMethodRequest(BaseModel):
    """Where the caller wants to receive their payout."""
    type: Optional[str] = Field(None, description="venmo, paypal, cashapp, zelle or bank")
    handle: Optional[str] = None
    display_name: Optional[str] = None
    payout_account_id: Optional[str] = Field(None, description="Payment gateway destination account")

    class Config:
        json_schema_extra = {
            "example": {"type": "venmo", "handle": "@alice", "payout_account_id": "acct_1Pabc"}
        }


# ============================================================================
# Early Payout Models
# ============================================================================

class EarlyPayoutStatusResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    current_round: int
    missing_contributions: List[str] = []
    scheduled_date: Optional[datetime] = None
    payout_amount: Optional[int] = None
    recipient: Optional[MemberResponse] = None
    payout_method: Optional[PayoutMethodResponse] = None
    payment_link: Optional[str] = None

    @classmethod
    def from_domain(cls, verification: EarlyPayoutVerification) -> "EarlyPayoutStatusResponse":
        return cls(
            allowed=verification.allowed,
            reason=verification.reason,
            current_round=verification.current_round,
            missing_contributions=list(verification.missing_contributions),
            scheduled_date=verification.scheduled_date,
            payout_amount=verification.payout_amount,
            recipient=MemberResponse.from_domain(verification.recipient) if verification.recipient else None,
            payout_method=PayoutMethodResponse.from_domain(verification.payout_method),
            payment_link=verification.payment_link,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "allowed": False,
                "reason": "Not all contributions have been collected for this round",
                "current_round": 1,
                "missing_contributions": ["Carol"],
                "scheduled_date": "2025-01-08T12:00:00Z",
            }
        }


class EarlyPayoutRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
    round: Optional[int] = Field(None, ge=1, description="Round to pay out; defaults to the current round")


# ============================================================================
# Round Payout Models
# ============================================================================

class MemberContributionResponse(BaseModel):
    member_id: int
    name: str
    position: int
    is_recipient: bool
    state: str  # "contributed", "excused", "processing" or "missing"
    amount: int
    round_payment_status: Optional[str] = None
    contribution_date: Optional[datetime] = None

    @classmethod
    def from_domain(cls, status: MemberContributionStatus) -> "MemberContributionResponse":
        return cls(
            member_id=status.member_id,
            name=status.name,
            position=status.position,
            is_recipient=status.is_recipient,
            state=status.state.value,
            amount=status.amount,
            round_payment_status=status.round_payment_status.value if status.round_payment_status else None,
            contribution_date=status.contribution_date,
        )


class RoundPayoutStatusResponse(BaseModel):
    round: int
    pot_amount: int
    verified_amount: int
    all_collected: bool
    payout_status: str
    payout_completed_at: Optional[datetime] = None
    payout_method: Optional[str] = None
    payout_notes: Optional[str] = None
    recipient: Optional[MemberResponse] = None
    members: List[MemberContributionResponse]
    payout_transaction: Optional[TransactionResponse] = None


class ConfirmPayoutRequest(BaseModel):
    method: str = Field(..., description="venmo, cashapp, paypal, zelle, cash, other or gateway")
    notes: Optional[str] = Field(None, max_length=500)


class ReconcilePayoutRequest(BaseModel):
    round: Optional[int] = Field(None, ge=1)


# ============================================================================
# Contribution Models
# ============================================================================

class ContributionRequest(BaseModel):
    """Record a contribution paid outside the platform."""
    method: str = Field(..., description="venmo, cashapp, paypal, zelle, cash or other")
    member_id: Optional[int] = Field(None, description="Admins may record for another member")
    amount: Optional[int] = Field(None, gt=0)

    class Config:
        json_schema_extra = {"example": {"method": "venmo"}}


class RoundPaymentUpdateRequest(BaseModel):
    action: str = Field(
        ..., description="member_confirm, admin_verify, dispute, mark_late, excuse or send_reminder"
    )
    method: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)
