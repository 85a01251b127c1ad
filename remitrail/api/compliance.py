"""
Compliance endpoints — standalone identity verification, transaction
screening and the screening dashboard.

Payments are screened by the settlement pipeline; these endpoints run the
same providers on demand, outside any payment.
"""

import logging

from fastapi import APIRouter, Depends, Query

from remitrail.api.deps import get_orchestrator
from remitrail.schemas.compliance import (
    AMLScreeningData,
    ComplianceDashboard,
    KYCData,
    ScreeningResponse,
)
from remitrail.services.orchestrator import PaymentOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/kyc/verify", response_model=ScreeningResponse)
async def verify_identity(
    body: KYCData,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Verify a customer's identity with the configured KYC provider."""
    result = await orchestrator.verify_identity(body)
    return ScreeningResponse.from_result(result)


@router.post("/aml/screen", response_model=ScreeningResponse)
async def screen_transaction(
    body: AMLScreeningData,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Screen a transaction against sanctions lists and risk rules."""
    result = await orchestrator.screen_transaction(body)
    if result.recommendation == "reject":
        logger.warning(
            "Transaction screening rejected counterparty %s: %s",
            body.counterparty_name, ", ".join(result.flags),
        )
    return ScreeningResponse.from_result(result)


@router.get("/dashboard", response_model=ComplianceDashboard)
async def get_dashboard(
    hours: int | None = Query(None, ge=1, description="Only payments created in the last N hours"),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """
    Compliance dashboard summary.

    Counts screened payments by recommendation, risk level and flag, plus
    the average risk score and how many payments await manual review.
    """
    return await orchestrator.compliance_dashboard(hours)
