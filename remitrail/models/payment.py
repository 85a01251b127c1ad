"""
Payment model — a cross-border transfer moving through the settlement pipeline.

- PAY-XXXXXXXXXXXXXXXX identifier format
- 10-state lifecycle with validated transitions
- Request, fees, steps and compliance snapshot stored as JSON documents
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, JSON, Numeric, String, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from remitrail.database import Base

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PaymentStatus(str, enum.Enum):
    CREATED = "created"
    KYC_PENDING = "kyc_pending"
    COMPLIANCE_REVIEW = "compliance_review"
    PROCESSING = "processing"
    BLOCKCHAIN_PENDING = "blockchain_pending"
    CONVERTING = "converting"
    SETTLING = "settling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepType(str, enum.Enum):
    INITIATE = "initiate"
    COMPLIANCE_SCREEN = "compliance_screen"
    USD_TO_USDC = "usd_to_usdc"
    BLOCKCHAIN_TRANSFER = "blockchain_transfer"
    USDC_TO_LOCAL = "usdc_to_local"
    BANK_TRANSFER = "bank_transfer"
    COMPLETE = "complete"


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# Status transition map
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.CREATED: {
        PaymentStatus.KYC_PENDING,
        PaymentStatus.COMPLIANCE_REVIEW,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.KYC_PENDING: {
        PaymentStatus.COMPLIANCE_REVIEW,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.COMPLIANCE_REVIEW: {
        PaymentStatus.PROCESSING,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.PROCESSING: {
        PaymentStatus.BLOCKCHAIN_PENDING,
        PaymentStatus.FAILED,
    },
    PaymentStatus.BLOCKCHAIN_PENDING: {
        PaymentStatus.CONVERTING,
        PaymentStatus.FAILED,
    },
    PaymentStatus.CONVERTING: {
        PaymentStatus.SETTLING,
        PaymentStatus.FAILED,
    },
    PaymentStatus.SETTLING: {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.COMPLETED: set(),
    PaymentStatus.FAILED: set(),
    PaymentStatus.CANCELLED: set(),
}

# Funds have not moved yet in these states
CANCELLABLE_STATUSES = frozenset({
    PaymentStatus.CREATED,
    PaymentStatus.KYC_PENDING,
    PaymentStatus.COMPLIANCE_REVIEW,
})

TERMINAL_STATUSES = frozenset({
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
})


def is_valid_transition(from_status: PaymentStatus, to_status: PaymentStatus) -> bool:
    """Check whether a status transition is allowed."""
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed


def generate_payment_id() -> str:
    """Generate a PAY-XXXXXXXXXXXXXXXX identifier (16 uppercase hex chars)."""
    return f"PAY-{uuid.uuid4().hex[:16].upper()}"


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class PaymentRecord(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(24), primary_key=True)
    quote_id: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    sender_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, name="paymentstatus",
               values_callable=lambda e: [m.value for m in e]),
        default=PaymentStatus.CREATED,
    )
    status_reason: Mapped[str | None] = mapped_column(String(500))

    # JSON documents (pydantic ``model_dump(mode="json")`` output)
    request: Mapped[dict] = mapped_column(JSON, nullable=False)
    fees: Mapped[dict] = mapped_column(JSON, nullable=False)
    payout_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    steps: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    compliance: Mapped[dict | None] = mapped_column(JSON)

    # Routing
    rail_id: Mapped[str | None] = mapped_column(String(64))
    fallback_rail_id: Mapped[str | None] = mapped_column(String(64))

    # Lifecycle timestamps
    estimated_completion_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentRecord {self.id} "
            f"quote={self.quote_id} "
            f"status={self.status.value if self.status else 'N/A'}>"
        )
