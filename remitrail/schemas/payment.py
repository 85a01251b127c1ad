"""
Pydantic schemas for payments, their settlement steps, and API payloads.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from remitrail.models.payment import PaymentStatus, StepStatus, StepType
from remitrail.schemas.compliance import ComplianceResult
from remitrail.schemas.quote import FeeBreakdown
from remitrail.schemas.rail import RailPriority


# ---------------------------------------------------------------------------
# Recipient
# ---------------------------------------------------------------------------


class Address(BaseModel):
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str = Field(..., min_length=2, max_length=2, examples=["MX"])


class BankAccount(BaseModel):
    account_number: str = Field(..., min_length=4, max_length=34)
    bank_name: str
    routing_number: str | None = None
    bank_code: str | None = None
    iban: str | None = None
    swift_code: str | None = None


class RecipientDetails(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str | None = None
    phone: str | None = None
    address: Address
    bank_account: BankAccount

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class PaymentRequest(BaseModel):
    """Transfer instruction. Immutable once attached to a Payment."""
    model_config = ConfigDict(frozen=True)

    sender_id: str
    recipient_id: str
    amount_usd: Decimal
    from_currency: str
    to_currency: str
    recipient_details: RecipientDetails
    purpose: str | None = None
    reference: str | None = None


# ---------------------------------------------------------------------------
# Payment + steps
# ---------------------------------------------------------------------------


class PaymentStep(BaseModel):
    step_id: str
    step_name: StepType
    status: StepStatus
    timestamp: datetime
    details: str = ""
    transaction_hash: str | None = None
    error_message: str | None = None


class Payment(BaseModel):
    id: str
    quote_id: str
    request: PaymentRequest
    # Ordered by first insertion; upserting an existing step_id replaces in place
    steps: dict[str, PaymentStep] = Field(default_factory=dict)
    fees: FeeBreakdown
    # Local-currency amount the recipient receives (the quote's output)
    payout_amount: Decimal
    status: PaymentStatus = PaymentStatus.CREATED
    status_reason: str | None = None
    compliance: ComplianceResult | None = None
    rail_id: str | None = None
    fallback_rail_id: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    estimated_completion_time: datetime

    def upsert_step(self, step: PaymentStep) -> None:
        self.steps[step.step_id] = step

    @property
    def timeline(self) -> list[PaymentStep]:
        return list(self.steps.values())

    @property
    def failed_step(self) -> PaymentStep | None:
        for step in self.steps.values():
            if step.status == StepStatus.FAILED:
                return step
        return None

    def step_completed(self, step_id: str) -> bool:
        step = self.steps.get(step_id)
        return step is not None and step.status == StepStatus.COMPLETED


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------


class PaymentCreateRequest(BaseModel):
    """Schema for submitting a payment against a quote."""
    quote_id: str = Field(..., examples=["QT-ABC123DEF456"])
    recipient_details: RecipientDetails
    purpose: str | None = Field(None, max_length=200)
    reference: str | None = Field(None, max_length=100)
    priority: RailPriority | None = None  # None -> DEFAULT_RAIL_PRIORITY


class ReviewDecision(BaseModel):
    """Outcome of a manual compliance review."""
    approved: bool
    note: str = Field("", max_length=500)


class PaymentProgress(BaseModel):
    percentage: int
    current_step: StepType
    completed_steps: int
    total_steps: int


class PaymentStatusResponse(BaseModel):
    """Status view served to polling clients."""
    payment_id: str
    quote_id: str
    status: PaymentStatus
    status_reason: str | None
    failed_step: StepType | None
    error_detail: str | None
    progress: PaymentProgress
    timeline: list[PaymentStep]
    fees: FeeBreakdown
    rail_id: str | None
    fallback_rail_id: str | None
    created_at: datetime
    completed_at: datetime | None
    estimated_completion_time: datetime


class PaymentListResponse(BaseModel):
    items: list[PaymentStatusResponse]
    total: int
