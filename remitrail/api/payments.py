"""
Payment endpoints — submission, status polling, history, cancellation
and manual compliance review.

Submission returns as soon as the payment is created; settlement runs in
the background and clients poll ``GET /payments/{payment_id}``.
"""

import logging

from fastapi import APIRouter, Depends, status

from remitrail.api.deps import get_orchestrator, get_sender_id, http_error
from remitrail.errors import PaymentError
from remitrail.schemas.payment import (
    PaymentCreateRequest,
    PaymentListResponse,
    PaymentStatusResponse,
    ReviewDecision,
)
from remitrail.services.orchestrator import PaymentOrchestrator, build_status_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=PaymentStatusResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    body: PaymentCreateRequest,
    sender_id: str = Depends(get_sender_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """
    Submit a payment against a quote.

    - 404 unknown quote, 410 expired quote
    - 409 quote already backs a live payment
    - 422 no rail can carry the transfer
    """
    try:
        payment = await orchestrator.process_payment(
            quote_id=body.quote_id,
            sender_id=sender_id,
            recipient_details=body.recipient_details,
            purpose=body.purpose,
            reference=body.reference,
            priority=body.priority,
        )
    except PaymentError as exc:
        logger.info("Payment submission for quote %s refused: %s", body.quote_id, exc.code)
        raise http_error(exc)

    return build_status_response(payment)


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    sender_id: str = Depends(get_sender_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """The sender's payments, newest first."""
    payments = await orchestrator.list_payments(sender_id)
    return PaymentListResponse(
        items=[build_status_response(p) for p in payments],
        total=len(payments),
    )


@router.get("/{payment_id}", response_model=PaymentStatusResponse)
async def get_payment(
    payment_id: str,
    sender_id: str = Depends(get_sender_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    try:
        payment = await orchestrator.get_payment(payment_id, sender_id)
    except PaymentError as exc:
        raise http_error(exc)
    return build_status_response(payment)


@router.post("/{payment_id}/cancel", response_model=PaymentStatusResponse)
async def cancel_payment(
    payment_id: str,
    sender_id: str = Depends(get_sender_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Cancel a payment before funds start moving (409 afterwards)."""
    try:
        payment = await orchestrator.cancel_payment(payment_id, sender_id)
    except PaymentError as exc:
        raise http_error(exc)
    return build_status_response(payment)


@router.post("/{payment_id}/review", response_model=PaymentStatusResponse)
async def resolve_review(
    payment_id: str,
    body: ReviewDecision,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Approve or reject a payment held for manual compliance review."""
    try:
        payment = await orchestrator.resolve_review(payment_id, body.approved, body.note)
    except PaymentError as exc:
        raise http_error(exc)
    return build_status_response(payment)
