"""
Pydantic schemas for compliance screening inputs and results.
"""

import uuid
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

RiskLevel = Literal["low", "medium", "high"]
Recommendation = Literal["approve", "review", "reject"]


class ComplianceResult(BaseModel):
    """Outcome of one screening check (or of their combination)."""
    model_config = ConfigDict(frozen=True)

    success: bool
    risk_level: RiskLevel
    risk_score: Decimal = Field(..., ge=0, le=100)
    recommendation: Recommendation
    flags: tuple[str, ...] = ()
    details: dict[str, Any] = Field(default_factory=dict)

    @field_validator("recommendation", mode="before")
    @classmethod
    def normalise_block(cls, v):
        # Providers answer "block"; it ranks the same as "reject"
        if isinstance(v, str) and v.lower() == "block":
            return "reject"
        return v

    @field_validator("flags", mode="before")
    @classmethod
    def dedupe_flags(cls, v):
        if v is None:
            return ()
        return tuple(sorted(set(v)))


class KYCData(BaseModel):
    """Identity data submitted to the identity-verification provider."""
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    country: str
    reference: str = Field(default_factory=lambda: f"KYC-{uuid.uuid4().hex[:12].upper()}")


class AMLScreeningData(BaseModel):
    """Transaction data submitted to the risk-screening provider."""
    amount: Decimal
    currency: str
    counterparty_name: str
    counterparty_account: str
    wallet_address: str | None = None
    blockchain: str | None = None


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------


class ScreeningResponse(BaseModel):
    """Result of a standalone identity or transaction screening."""
    result: ComplianceResult
    can_proceed: bool
    requires_review: bool

    @classmethod
    def from_result(cls, result: ComplianceResult) -> "ScreeningResponse":
        return cls(
            result=result,
            can_proceed=result.recommendation == "approve",
            requires_review=result.recommendation == "review",
        )


class ComplianceDashboard(BaseModel):
    """Screening outcomes aggregated over stored payments."""
    total_screened: int
    by_recommendation: dict[str, int]
    by_risk_level: dict[str, int]
    flags: dict[str, int]
    average_risk_score: Decimal
    awaiting_review: int
