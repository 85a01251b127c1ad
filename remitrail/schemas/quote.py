"""
Pydantic schemas for quotes and their fee breakdown.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FeeBreakdown(BaseModel):
    """Fees charged on a quote, all in the input currency."""
    model_config = ConfigDict(frozen=True)

    platform_fee: Decimal
    platform_fee_percent: Decimal
    network_fee: Decimal
    fx_spread: Decimal = Decimal("0.00")
    partner_fee: Decimal = Decimal("0.00")
    total: Decimal


class Quote(BaseModel):
    """Time-bounded price commitment. Immutable after creation."""
    model_config = ConfigDict(frozen=True)

    quote_id: str
    input_amount: Decimal
    input_currency: str
    output_amount: Decimal
    output_currency: str
    exchange_rate: Decimal
    fees: FeeBreakdown
    corridor: str
    estimated_time: str
    compliance_required: bool
    valid_until: datetime
    created_at: datetime

    @model_validator(mode="after")
    def _check_validity_window(self) -> "Quote":
        if self.valid_until <= self.created_at:
            raise ValueError("valid_until must be later than created_at")
        return self

    def is_expired(self, now: datetime) -> bool:
        return now > self.valid_until


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------


class QuoteCreateRequest(BaseModel):
    """Schema for requesting a new quote."""
    amount: Decimal = Field(..., examples=[100])
    from_currency: str = Field("USD", min_length=3, max_length=5, examples=["USD"])
    to_currency: str = Field("MXN", min_length=3, max_length=5, examples=["MXN"])
