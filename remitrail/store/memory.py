"""
In-memory payment store for development and tests.

State lives in dictionaries behind an ``asyncio.Lock``; every read and write
goes through a deep copy so callers never share mutable objects with the store.
"""

import asyncio
from datetime import datetime, timezone

from remitrail.errors import InvalidStateTransition, PaymentNotFound
from remitrail.models.payment import PaymentStatus, is_valid_transition
from remitrail.schemas.compliance import ComplianceResult
from remitrail.schemas.payment import Payment, PaymentStep
from remitrail.schemas.quote import Quote


class InMemoryPaymentStore:
    def __init__(self):
        self._lock = asyncio.Lock()
        self._quotes: dict[str, Quote] = {}
        self._payments: dict[str, Payment] = {}
        self._inflight: set[str] = set()

    async def create_quote(self, quote: Quote) -> None:
        async with self._lock:
            self._quotes[quote.quote_id] = quote

    async def get_quote(self, quote_id: str) -> Quote | None:
        async with self._lock:
            # Quotes are frozen; no copy needed
            return self._quotes.get(quote_id)

    async def create_payment(self, payment: Payment) -> None:
        async with self._lock:
            self._payments[payment.id] = payment.model_copy(deep=True)

    async def get_payment(self, payment_id: str) -> Payment | None:
        async with self._lock:
            payment = self._payments.get(payment_id)
            return payment.model_copy(deep=True) if payment else None

    async def get_payment_for_quote(self, quote_id: str) -> Payment | None:
        async with self._lock:
            matches = [p for p in self._payments.values() if p.quote_id == quote_id]
            if not matches:
                return None
            latest = max(matches, key=lambda p: p.created_at)
            return latest.model_copy(deep=True)

    async def list_payments(self, sender_id: str) -> list[Payment]:
        async with self._lock:
            payments = [
                p.model_copy(deep=True)
                for p in self._payments.values()
                if p.request.sender_id == sender_id
            ]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments

    async def list_screened_payments(self, since: datetime | None = None) -> list[Payment]:
        async with self._lock:
            payments = [
                p.model_copy(deep=True)
                for p in self._payments.values()
                if p.compliance is not None and (since is None or p.created_at >= since)
            ]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments

    def _require(self, payment_id: str) -> Payment:
        payment = self._payments.get(payment_id)
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        return payment

    async def upsert_step(self, payment_id: str, step: PaymentStep) -> None:
        async with self._lock:
            payment = self._require(payment_id)
            payment.upsert_step(step.model_copy(deep=True))
            payment.updated_at = datetime.now(timezone.utc)

    async def update_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        reason: str | None = None,
        completed_at: datetime | None = None,
    ) -> None:
        async with self._lock:
            payment = self._require(payment_id)
            if payment.status != status and not is_valid_transition(payment.status, status):
                raise InvalidStateTransition(
                    f"Cannot move payment {payment_id} from "
                    f"{payment.status.value} to {status.value}"
                )
            payment.status = status
            payment.status_reason = reason
            if completed_at is not None:
                payment.completed_at = completed_at
            payment.updated_at = datetime.now(timezone.utc)

    async def record_compliance(self, payment_id: str, result: ComplianceResult) -> None:
        async with self._lock:
            payment = self._require(payment_id)
            payment.compliance = result
            payment.updated_at = datetime.now(timezone.utc)

    async def claim_pipeline(self, payment_id: str) -> bool:
        async with self._lock:
            if payment_id in self._inflight:
                return False
            self._inflight.add(payment_id)
            return True

    async def release_pipeline(self, payment_id: str) -> None:
        async with self._lock:
            self._inflight.discard(payment_id)

    async def ping(self) -> bool:
        return True
