"""
Quote endpoints.

Quotes are valid for QUOTE_TTL_SECONDS and are referenced by id when a
payment is submitted.
"""

import logging

from fastapi import APIRouter, Depends, status

from remitrail.api.deps import get_orchestrator, http_error
from remitrail.errors import PaymentError
from remitrail.schemas.quote import Quote, QuoteCreateRequest
from remitrail.services.orchestrator import PaymentOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=Quote, status_code=status.HTTP_201_CREATED)
async def create_quote(
    body: QuoteCreateRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """
    Quote a transfer: fee breakdown, exchange rate and the amount the
    recipient receives.
    """
    try:
        return await orchestrator.quote_service.issue_quote(
            body.amount, body.from_currency, body.to_currency,
        )
    except PaymentError as exc:
        raise http_error(exc)


@router.get("/{quote_id}", response_model=Quote)
async def get_quote(
    quote_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Return a live quote (404 if unknown, 410 once expired)."""
    try:
        return await orchestrator.quote_service.get_quote(quote_id)
    except PaymentError as exc:
        raise http_error(exc)
