"""
Contributions API Endpoints.

Recording contributions and tracking each member's payment for the current round.
"""

import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_contribution_tracker, get_current_user, get_now
from api.errors import to_http_exception
from api.models import ContributionRequest, RoundPaymentResponse, RoundPaymentUpdateRequest
from domain.errors import PoolError, ValidationError
from services.collaborators import Actor
from services.contribution_service import ContributionTracker, RoundPaymentAction

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/pools/{pool_id}/contributions",
    response_model=RoundPaymentResponse,
    status_code=201,
    summary="Record Contribution",
    description="Record a contribution paid outside the platform (Venmo, Zelle, cash, ...)."
)
def record_contribution(
    pool_id: str,
    request: ContributionRequest,
    actor: Actor = Depends(get_current_user),
    tracker: ContributionTracker = Depends(get_contribution_tracker),
    now: datetime = Depends(get_now),
):
    """
    Record a manual contribution for the current round.

    Manual contributions are accepted immediately as verified. Members record
    their own; administrators may pass `member_id` to record for someone else.
    A second contribution for the same round returns 409.
    """
    try:
        payment = tracker.record_manual_contribution(
            pool_id,
            actor,
            method=request.method,
            member_id=request.member_id,
            amount=request.amount,
            now=now,
        )
        return RoundPaymentResponse.from_domain(payment)
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to record contribution")
        raise HTTPException(status_code=500, detail=f"Failed to record contribution: {str(e)}")


@router.get(
    "/pools/{pool_id}/round-payments",
    response_model=List[RoundPaymentResponse],
    summary="List Round Payments",
    description="Payment tracking records for the current round."
)
def list_round_payments(
    pool_id: str,
    actor: Actor = Depends(get_current_user),
    tracker: ContributionTracker = Depends(get_contribution_tracker),
):
    try:
        _, payments = tracker.list_round_payments(pool_id, actor)
        return [RoundPaymentResponse.from_domain(p) for p in payments]
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to fetch round payments")
        raise HTTPException(status_code=500, detail=f"Failed to fetch round payments: {str(e)}")


@router.post(
    "/pools/{pool_id}/round-payments",
    response_model=List[RoundPaymentResponse],
    summary="Initialize Round Payments",
    description="Create a pending payment record for every member in the current round (admin only)."
)
def initialize_round_payments(
    pool_id: str,
    actor: Actor = Depends(get_current_user),
    tracker: ContributionTracker = Depends(get_contribution_tracker),
    now: datetime = Depends(get_now),
):
    try:
        payments = tracker.initialize_round_payments(pool_id, actor, now=now)
        return [RoundPaymentResponse.from_domain(p) for p in payments]
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to initialize round payments")
        raise HTTPException(status_code=500, detail=f"Failed to initialize round payments: {str(e)}")


@router.patch(
    "/pools/{pool_id}/round-payments/{member_id}",
    response_model=RoundPaymentResponse,
    summary="Update Round Payment",
    description="Confirm, verify, dispute, mark late, excuse, or send a reminder for a member's payment."
)
def update_round_payment(
    pool_id: str,
    member_id: int,
    request: RoundPaymentUpdateRequest,
    actor: Actor = Depends(get_current_user),
    tracker: ContributionTracker = Depends(get_contribution_tracker),
    now: datetime = Depends(get_now),
):
    """
    Apply a tracking action to one member's payment.

    **Actions:**
    - `member_confirm`: the member (or an admin) reports the payment as sent
    - `admin_verify`: the admin confirms the money arrived
    - `dispute`: reset an unverified payment to pending
    - `mark_late`: flag a pending payment as late
    - `excuse`: waive the member's contribution for this round
    - `send_reminder`: notify the member (at most once every 24 hours)
    """
    try:
        try:
            action = RoundPaymentAction(request.action)
        except ValueError:
            supported = ", ".join(a.value for a in RoundPaymentAction)
            raise ValidationError(f"Invalid action '{request.action}'. Use one of: {supported}") from None

        payment = tracker.update_round_payment(
            pool_id,
            actor,
            member_id,
            action,
            now=now,
            method=request.method,
            notes=request.notes,
        )
        return RoundPaymentResponse.from_domain(payment)
    except PoolError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Failed to update payment")
        raise HTTPException(status_code=500, detail=f"Failed to update payment: {str(e)}")
