"""
Pools API Endpoints.

Pool creation, membership, payout destinations, and the payout lifecycle
(early payout, regular payout confirmation, round advancement, reconciliation).
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from api.dependencies import get_current_user, get_now, get_payout_engine, get_pool_service
from api.errors import to_http_exception
from api.models import (
    AddMemberRequest,
    ConfirmPayoutRequest,
    CreatePoolRequest,
    EarlyPayoutRequest,
    EarlyPayoutStatusResponse,
    MemberContributionResponse,
    MemberResponse,
    PayoutMethodRequest,
    PoolResponse,
    ReconcilePayoutRequest,
    RoundPayoutStatusResponse,
    TransactionResponse,
)
from domain.errors import PoolError
from services.collaborators import Actor
from services.payout_service import PayoutEngine
from services.pool_service import PoolService

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Pools and members
# ============================================================================

@router.post(
    "/pools",
    response_model=PoolResponse,
    status_code=201,
    summary="Create Pool",
    description="Create a rotating savings pool. The caller becomes its administrator at position 1."
)
def create_pool(
    request: CreatePoolRequest,
    actor: Actor = Depends(get_current_user),
    service: PoolService = Depends(get_pool_service),
    now: datetime = Depends(get_now),
):
    try:
        pool = service.create_pool(
            actor,
            name=request.name,
            creator_name=request.creator_name,
            contribution_amount=request.contribution_amount,
            frequency=request.frequency,
            total_rounds=request.total_rounds,
            first_payout_date=request.first_payout_date,
            now=now,
            description=request.description or "",
        )
        return PoolResponse.from_domain(pool)
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to create pool")
        raise HTTPException(status_code=500, detail=f"Failed to create pool: {str(e)}")


@router.get(
    "/pools/{pool_id}",
    response_model=PoolResponse,
    summary="Get Pool",
    description="Pool details, members, transactions and the remaining payout calendar."
)
def get_pool(
    pool_id: str,
    actor: Actor = Depends(get_current_user),
    service: PoolService = Depends(get_pool_service),
):
    try:
        return PoolResponse.from_domain(service.get_pool(pool_id, actor))
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to fetch pool")
        raise HTTPException(status_code=500, detail=f"Failed to fetch pool: {str(e)}")


@router.post(
    "/pools/{pool_id}/members",
    response_model=MemberResponse,
    status_code=201,
    summary="Add Member",
    description="Add a member at the next free rotation position (admin only)."
)
def add_member(
    pool_id: str,
    request: AddMemberRequest,
    actor: Actor = Depends(get_current_user),
    service: PoolService = Depends(get_pool_service),
):
    try:
        _, member = service.add_member(pool_id, actor, name=request.name, email=request.email)
        return MemberResponse.from_domain(member)
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to add member")
        raise HTTPException(status_code=500, detail=f"Failed to add member: {str(e)}")


@router.put(
    "/pools/{pool_id}/members/me/payout-method",
    response_model=MemberResponse,
    summary="Set Payout Method",
    description="Set where the caller receives their payout: an app handle, a gateway account, or both."
)
def set_payout_method(
    pool_id: str,
    request: PayoutMethodRequest,
    actor: Actor = Depends(get_current_user),
    service: PoolService = Depends(get_pool_service),
):
    try:
        member = service.set_payout_method(
            pool_id,
            actor,
            method_type=request.type,
            handle=request.handle,
            display_name=request.display_name,
            payout_account_id=request.payout_account_id,
        )
        return MemberResponse.from_domain(member)
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to update payout method")
        raise HTTPException(status_code=500, detail=f"Failed to update payout method: {str(e)}")


# ============================================================================
# Early payout
# ============================================================================

@router.get(
    "/pools/{pool_id}/early-payout",
    response_model=EarlyPayoutStatusResponse,
    summary="Early Payout Status",
    description="Whether the current round can be paid out before its scheduled date (admin only)."
)
def early_payout_status(
    pool_id: str,
    actor: Actor = Depends(get_current_user),
    engine: PayoutEngine = Depends(get_payout_engine),
    now: datetime = Depends(get_now),
):
    """
    Check early payout eligibility.

    A denied check is not an error: the response has `allowed: false` and a
    `reason` naming the precondition that failed, plus `missing_contributions`
    when members still owe (or are still processing) their contribution.
    """
    try:
        return EarlyPayoutStatusResponse.from_domain(engine.early_payout_status(pool_id, actor, now=now))
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to check early payout")
        raise HTTPException(status_code=500, detail=f"Failed to check early payout: {str(e)}")


@router.post(
    "/pools/{pool_id}/early-payout",
    response_model=TransactionResponse,
    summary="Execute Early Payout",
    description="Pay the current round's pot before the scheduled date (admin only)."
)
def execute_early_payout(
    pool_id: str,
    request: Optional[EarlyPayoutRequest] = Body(None),
    actor: Actor = Depends(get_current_user),
    engine: PayoutEngine = Depends(get_payout_engine),
    now: datetime = Depends(get_now),
):
    """
    Execute an early payout through the payment gateway.

    **Process:**
    1. Re-checks eligibility atomically (a concurrent request gets 409)
    2. Records a pending payout transaction
    3. Transfers the pot with an idempotency key derived from pool and round
    4. Marks the payout completed and advances to the next round

    The following round keeps its original schedule: its payout date is one
    interval after this round's scheduled date, not after today.

    A gateway failure returns 502 and leaves the round unchanged so the admin
    can retry.
    """
    request = request or EarlyPayoutRequest()
    try:
        tx = engine.execute_early_payout(
            pool_id, actor, now=now, round_number=request.round, reason=request.reason
        )
        return TransactionResponse.from_domain(tx)
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to execute early payout")
        raise HTTPException(status_code=500, detail=f"Failed to execute early payout: {str(e)}")


# ============================================================================
# Regular payout
# ============================================================================

@router.get(
    "/pools/{pool_id}/round-payout",
    response_model=RoundPayoutStatusResponse,
    summary="Round Payout Status",
    description="Pot, collected amount, per-member status and payout state of the current round."
)
def round_payout_status(
    pool_id: str,
    actor: Actor = Depends(get_current_user),
    engine: PayoutEngine = Depends(get_payout_engine),
):
    try:
        view = engine.round_payout_status(pool_id, actor)
        return RoundPayoutStatusResponse(
            round=view.round,
            pot_amount=view.pot_amount,
            verified_amount=view.verified_amount,
            all_collected=view.round_status.all_collected,
            payout_status=view.payout_status.value,
            payout_completed_at=view.payout_completed_at,
            payout_method=view.payout_method,
            payout_notes=view.payout_notes,
            recipient=MemberResponse.from_domain(view.recipient) if view.recipient else None,
            members=[MemberContributionResponse.from_domain(m) for m in view.round_status.per_member],
            payout_transaction=(
                TransactionResponse.from_domain(view.payout_transaction) if view.payout_transaction else None
            ),
        )
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to fetch round payout status")
        raise HTTPException(status_code=500, detail=f"Failed to fetch round payout status: {str(e)}")


@router.post(
    "/pools/{pool_id}/round-payout",
    response_model=TransactionResponse,
    summary="Confirm Payout",
    description="Pay out a fully collected round by a manual method or through the gateway (admin only)."
)
def confirm_payout(
    pool_id: str,
    request: ConfirmPayoutRequest,
    actor: Actor = Depends(get_current_user),
    engine: PayoutEngine = Depends(get_payout_engine),
    now: datetime = Depends(get_now),
):
    try:
        tx = engine.confirm_payout(pool_id, actor, method=request.method, notes=request.notes, now=now)
        return TransactionResponse.from_domain(tx)
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to confirm payout")
        raise HTTPException(status_code=500, detail=f"Failed to confirm payout: {str(e)}")


@router.put(
    "/pools/{pool_id}/round-payout",
    response_model=PoolResponse,
    summary="Advance Round",
    description="Advance a paid round, or complete the pool after the last round (admin only)."
)
def advance_round(
    pool_id: str,
    actor: Actor = Depends(get_current_user),
    engine: PayoutEngine = Depends(get_payout_engine),
    now: datetime = Depends(get_now),
):
    try:
        return PoolResponse.from_domain(engine.advance_round(pool_id, actor, now=now))
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to advance round")
        raise HTTPException(status_code=500, detail=f"Failed to advance round: {str(e)}")


@router.post(
    "/pools/{pool_id}/payouts/reconcile",
    response_model=TransactionResponse,
    summary="Reconcile Pending Payout",
    description="Retry a payout left pending by an interrupted transfer, with the same idempotency key (admin only)."
)
def reconcile_pending_payout(
    pool_id: str,
    request: Optional[ReconcilePayoutRequest] = Body(None),
    actor: Actor = Depends(get_current_user),
    engine: PayoutEngine = Depends(get_payout_engine),
    now: datetime = Depends(get_now),
):
    request = request or ReconcilePayoutRequest()
    try:
        tx = engine.reconcile_pending_payout(pool_id, actor, now=now, round_number=request.round)
        return TransactionResponse.from_domain(tx)
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to reconcile payout")
        raise HTTPException(status_code=500, detail=f"Failed to reconcile payout: {str(e)}")
