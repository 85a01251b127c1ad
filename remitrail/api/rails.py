"""
Rail endpoints — list the catalog and preview a rail selection.
"""

from fastapi import APIRouter, Depends

from remitrail.api.deps import get_orchestrator, http_error
from remitrail.errors import PaymentError
from remitrail.rails.selector import select_rail
from remitrail.schemas.rail import Rail, RailRequirements, RouteSelection
from remitrail.services.orchestrator import PaymentOrchestrator

router = APIRouter()


@router.get("", response_model=list[Rail])
async def list_rails(orchestrator: PaymentOrchestrator = Depends(get_orchestrator)):
    return list(orchestrator.catalog)


@router.post("/select", response_model=RouteSelection)
async def preview_selection(
    body: RailRequirements,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Which rail (and fallback) a transfer with these requirements would use."""
    try:
        return select_rail(body, orchestrator.catalog)
    except PaymentError as exc:
        raise http_error(exc)
