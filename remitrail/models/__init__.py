"""SQLAlchemy ORM models and lifecycle enums for RemitRail."""

from remitrail.models.payment import (
    PaymentRecord,
    PaymentStatus,
    StepStatus,
    StepType,
)

__all__ = [
    "PaymentRecord",
    "PaymentStatus", "StepStatus", "StepType",
]
