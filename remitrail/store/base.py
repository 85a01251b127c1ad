"""
Persistence interface for quotes, payments and pipeline markers.

Implementations: ``InMemoryPaymentStore`` (dev / tests) and
``SqlPaymentStore`` (PostgreSQL for payments, Redis for quotes and markers).
"""

from datetime import datetime
from typing import Protocol

from remitrail.models.payment import PaymentStatus
from remitrail.schemas.compliance import ComplianceResult
from remitrail.schemas.payment import Payment, PaymentStep
from remitrail.schemas.quote import Quote

QUOTE_KEY = "quote:{quote_id}"
PIPELINE_MARKER_KEY = "pipeline:inflight:{payment_id}"


class PaymentStore(Protocol):
    async def create_quote(self, quote: Quote) -> None: ...

    async def get_quote(self, quote_id: str) -> Quote | None: ...

    async def create_payment(self, payment: Payment) -> None: ...

    async def get_payment(self, payment_id: str) -> Payment | None: ...

    async def get_payment_for_quote(self, quote_id: str) -> Payment | None:
        """Most recent payment that references ``quote_id``."""
        ...

    async def list_payments(self, sender_id: str) -> list[Payment]:
        """Payments for a sender, newest first."""
        ...

    async def list_screened_payments(self, since: datetime | None = None) -> list[Payment]:
        """Payments carrying a compliance snapshot, created at or after ``since``."""
        ...

    async def upsert_step(self, payment_id: str, step: PaymentStep) -> None: ...

    async def update_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        reason: str | None = None,
        completed_at: datetime | None = None,
    ) -> None:
        """Change status; raises InvalidStateTransition for disallowed moves."""
        ...

    async def record_compliance(self, payment_id: str, result: ComplianceResult) -> None: ...

    async def claim_pipeline(self, payment_id: str) -> bool:
        """Atomically set the in-flight marker. False if it already exists."""
        ...

    async def release_pipeline(self, payment_id: str) -> None: ...

    async def ping(self) -> bool: ...
