"""
Production payment store.

Payments live in PostgreSQL (``payments`` table, JSON documents for the
request, fees, steps and compliance snapshot). Quotes and pipeline
in-flight markers live in Redis.

Accepts a ``session_factory`` and ``redis`` client on construction so
callers (and tests) can inject their own; falls back to the module-level
defaults from ``remitrail.database`` and ``remitrail.redis_client``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import select, text

from remitrail.config import settings
from remitrail.errors import InvalidStateTransition, PaymentNotFound
from remitrail.models.payment import PaymentRecord, PaymentStatus, is_valid_transition
from remitrail.schemas.compliance import ComplianceResult
from remitrail.schemas.payment import Payment, PaymentRequest, PaymentStep
from remitrail.schemas.quote import FeeBreakdown, Quote
from remitrail.store.base import PIPELINE_MARKER_KEY, QUOTE_KEY

if TYPE_CHECKING:
    import redis.asyncio as aioredis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Record <-> schema mapping
# ---------------------------------------------------------------------------


def payment_to_record(payment: Payment) -> PaymentRecord:
    return PaymentRecord(
        id=payment.id,
        quote_id=payment.quote_id,
        sender_id=payment.request.sender_id,
        status=payment.status,
        status_reason=payment.status_reason,
        request=payment.request.model_dump(mode="json"),
        fees=payment.fees.model_dump(mode="json"),
        payout_amount=payment.payout_amount,
        steps=[s.model_dump(mode="json") for s in payment.timeline],
        compliance=payment.compliance.model_dump(mode="json") if payment.compliance else None,
        rail_id=payment.rail_id,
        fallback_rail_id=payment.fallback_rail_id,
        estimated_completion_time=payment.estimated_completion_time,
        completed_at=payment.completed_at,
        created_at=payment.created_at,
        updated_at=payment.updated_at,
    )


def record_to_payment(record: PaymentRecord) -> Payment:
    steps = [PaymentStep.model_validate(s) for s in record.steps or []]
    return Payment(
        id=record.id,
        quote_id=record.quote_id,
        request=PaymentRequest.model_validate(record.request),
        steps={s.step_id: s for s in steps},
        fees=FeeBreakdown.model_validate(record.fees),
        payout_amount=record.payout_amount,
        status=record.status,
        status_reason=record.status_reason,
        compliance=ComplianceResult.model_validate(record.compliance) if record.compliance else None,
        rail_id=record.rail_id,
        fallback_rail_id=record.fallback_rail_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
        completed_at=record.completed_at,
        estimated_completion_time=record.estimated_completion_time,
    )


class SqlPaymentStore:
    """PostgreSQL + Redis implementation of ``PaymentStore``."""

    def __init__(self, session_factory=None, redis_client: "aioredis.Redis | None" = None):
        self._session_factory = session_factory
        self._redis = redis_client

    @property
    def session_factory(self):
        if self._session_factory is not None:
            return self._session_factory
        from remitrail.database import async_session
        return async_session

    @property
    def redis(self) -> "aioredis.Redis":
        if self._redis is not None:
            return self._redis
        from remitrail.redis_client import redis as _default
        return _default

    # ── Quotes (Redis) ───────────────────────────────────────────────────

    async def create_quote(self, quote: Quote) -> None:
        # Kept past expiry so late reads report "expired" rather than "not found"
        ttl = settings.QUOTE_TTL_SECONDS + settings.QUOTE_RETENTION_SECONDS
        await self.redis.setex(
            QUOTE_KEY.format(quote_id=quote.quote_id),
            ttl,
            quote.model_dump_json(),
        )

    async def get_quote(self, quote_id: str) -> Quote | None:
        raw = await self.redis.get(QUOTE_KEY.format(quote_id=quote_id))
        if raw is None:
            return None
        return Quote.model_validate_json(raw)

    # ── Payments (PostgreSQL) ────────────────────────────────────────────

    async def create_payment(self, payment: Payment) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(payment_to_record(payment))

    async def get_payment(self, payment_id: str) -> Payment | None:
        async with self.session_factory() as session:
            record = await session.get(PaymentRecord, payment_id)
            return record_to_payment(record) if record else None

    async def get_payment_for_quote(self, quote_id: str) -> Payment | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PaymentRecord)
                .where(PaymentRecord.quote_id == quote_id)
                .order_by(PaymentRecord.created_at.desc())
                .limit(1)
            )
            record = result.scalar_one_or_none()
            return record_to_payment(record) if record else None

    async def list_payments(self, sender_id: str) -> list[Payment]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PaymentRecord)
                .where(PaymentRecord.sender_id == sender_id)
                .order_by(PaymentRecord.created_at.desc())
            )
            return [record_to_payment(r) for r in result.scalars().all()]

    async def list_screened_payments(self, since: datetime | None = None) -> list[Payment]:
        statement = select(PaymentRecord).order_by(PaymentRecord.created_at.desc())
        if since is not None:
            statement = statement.where(PaymentRecord.created_at >= since)
        async with self.session_factory() as session:
            result = await session.execute(statement)
            # JSON null and SQL NULL both mean "not screened"
            return [record_to_payment(r) for r in result.scalars().all() if r.compliance]

    async def _locked_record(self, session: "AsyncSession", payment_id: str) -> PaymentRecord:
        result = await session.execute(
            select(PaymentRecord)
            .where(PaymentRecord.id == payment_id)
            .with_for_update()
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        return record

    async def upsert_step(self, payment_id: str, step: PaymentStep) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                record = await self._locked_record(session, payment_id)
                steps = list(record.steps or [])
                doc = step.model_dump(mode="json")
                for i, existing in enumerate(steps):
                    if existing.get("step_id") == step.step_id:
                        steps[i] = doc
                        break
                else:
                    steps.append(doc)
                # Reassign so SQLAlchemy sees the JSON column change
                record.steps = steps

    async def update_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        reason: str | None = None,
        completed_at: datetime | None = None,
    ) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                record = await self._locked_record(session, payment_id)
                if record.status != status and not is_valid_transition(record.status, status):
                    raise InvalidStateTransition(
                        f"Cannot move payment {payment_id} from "
                        f"{record.status.value} to {status.value}"
                    )
                record.status = status
                record.status_reason = reason
                if completed_at is not None:
                    record.completed_at = completed_at

    async def record_compliance(self, payment_id: str, result: ComplianceResult) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                record = await self._locked_record(session, payment_id)
                record.compliance = result.model_dump(mode="json")
                record.updated_at = datetime.now(timezone.utc)

    # ── In-flight markers (Redis) ────────────────────────────────────────

    async def claim_pipeline(self, payment_id: str) -> bool:
        claimed = await self.redis.set(
            PIPELINE_MARKER_KEY.format(payment_id=payment_id), "1",
            nx=True, ex=settings.PIPELINE_MARKER_TTL_SECONDS,
        )
        return bool(claimed)

    async def release_pipeline(self, payment_id: str) -> None:
        await self.redis.delete(PIPELINE_MARKER_KEY.format(payment_id=payment_id))

    async def ping(self) -> bool:
        try:
            await self.redis.ping()
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Payment store health check failed")
            return False
        return True
