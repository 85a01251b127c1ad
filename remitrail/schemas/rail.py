"""
Pydantic schemas for settlement rails and rail selection.
"""

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RailType = Literal["traditional", "blockchain", "hybrid"]
RailPriority = Literal["cost", "speed", "reliability"]


class RailCompliance(BaseModel):
    """Screening capabilities a rail provides."""
    model_config = ConfigDict(frozen=True)

    aml: bool
    kyc: bool
    sanctions: bool


class Rail(BaseModel):
    """Statically configured settlement path."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: RailType
    cost_percentage: Decimal
    settlement_time: str
    settlement_seconds: int
    max_amount: Decimal
    supported_currencies: frozenset[str]
    supported_regions: frozenset[str]
    compliance: RailCompliance
    reliability: Decimal
    providers: tuple[str, ...]


class RailRequirements(BaseModel):
    """Hard constraints and scoring priority for a rail selection."""
    amount: Decimal = Field(..., gt=0)
    from_currency: str
    to_currency: str
    from_region: str
    to_region: str
    compliance_required: bool = False
    priority: RailPriority = "cost"


class RouteSelection(BaseModel):
    """Primary rail and optional fallback chosen for a transfer."""
    primary: Rail
    fallback: Rail | None = None
    primary_score: Decimal
    fallback_score: Decimal | None = None
    estimated_cost: Decimal
    estimated_time: str
