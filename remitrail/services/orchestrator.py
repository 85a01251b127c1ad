"""
Payment orchestrator — entry point for submitting and managing payments.

Validates the quote (exists, still live, not backing another live payment),
selects a rail, creates the payment with its initiate step recorded, and
hands it to the pipeline scheduler. Also serves status reads, sender
history, cancellation, manual compliance review decisions, standalone
identity and transaction screening and the compliance dashboard.

Collaborators are injected at construction (see ``services.factory``).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from remitrail.config import settings
from remitrail.errors import (
    CancellationNotAllowed,
    InvalidStateTransition,
    PaymentNotFound,
    PipelineAlreadyRunning,
    QuoteAlreadyUsed,
)
from remitrail.models.payment import (
    CANCELLABLE_STATUSES,
    PaymentStatus,
    StepStatus,
    StepType,
    generate_payment_id,
)
from remitrail.pipeline.engine import COMPLIANCE_STEP, INITIATE_STEP, TOTAL_STEPS
from remitrail.rails.catalog import RAIL_CATALOG, region_for_currency
from remitrail.rails.selector import select_rail
from remitrail.schemas.compliance import AMLScreeningData, ComplianceDashboard, ComplianceResult, KYCData
from remitrail.schemas.payment import (
    Payment,
    PaymentProgress,
    PaymentRequest,
    PaymentStatusResponse,
    PaymentStep,
    RecipientDetails,
)
from remitrail.schemas.rail import RailRequirements
from remitrail.services.compliance_service import build_compliance_dashboard

logger = logging.getLogger(__name__)

# A quote backing a payment in one of these states may be used again
REUSABLE_QUOTE_STATUSES = frozenset({PaymentStatus.FAILED, PaymentStatus.CANCELLED})

DISPATCH_FAILED_REASON = "Pipeline dispatch failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_status_response(payment: Payment) -> PaymentStatusResponse:
    """Status view with progress over the seven pipeline steps."""
    timeline = payment.timeline
    completed = sum(1 for s in timeline if s.status == StepStatus.COMPLETED)
    current = timeline[-1].step_name if timeline else StepType.INITIATE
    failed = payment.failed_step

    return PaymentStatusResponse(
        payment_id=payment.id,
        quote_id=payment.quote_id,
        status=payment.status,
        status_reason=payment.status_reason,
        failed_step=failed.step_name if failed else None,
        error_detail=failed.error_message if failed else None,
        progress=PaymentProgress(
            percentage=round(completed / TOTAL_STEPS * 100),
            current_step=current,
            completed_steps=completed,
            total_steps=TOTAL_STEPS,
        ),
        timeline=timeline,
        fees=payment.fees,
        rail_id=payment.rail_id,
        fallback_rail_id=payment.fallback_rail_id,
        created_at=payment.created_at,
        completed_at=payment.completed_at,
        estimated_completion_time=payment.estimated_completion_time,
    )


class PaymentOrchestrator:
    """Coordinates quotes, routing, persistence and pipeline scheduling."""

    def __init__(
        self,
        store,
        quote_service,
        scheduler,
        pipeline,
        screener=None,
        settlement=None,
        catalog=RAIL_CATALOG,
        clock: Callable[[], datetime] = _utcnow,
        config=settings,
    ):
        self.store = store
        self.quote_service = quote_service
        self.scheduler = scheduler
        self.pipeline = pipeline
        self.screener = screener
        self.settlement = settlement
        self.catalog = catalog
        self.clock = clock
        self.config = config

    # ── Submission ───────────────────────────────────────────────────────

    async def process_payment(
        self,
        quote_id: str,
        sender_id: str,
        recipient_details: RecipientDetails,
        purpose: str | None = None,
        reference: str | None = None,
        priority: str | None = None,
    ) -> Payment:
        """
        Create a payment from a live quote and schedule its pipeline.

        Raises QuoteNotFound, QuoteExpired, QuoteAlreadyUsed, NoSuitableRail
        or PipelineAlreadyRunning. Returns the payment as created; settlement
        continues in the background. When the pipeline cannot be dispatched
        the payment is failed (freeing its quote) and the error re-raised.
        """
        now = self.clock()
        quote = await self.quote_service.get_quote(quote_id, now)

        existing = await self.store.get_payment_for_quote(quote_id)
        if existing is not None and existing.status not in REUSABLE_QUOTE_STATUSES:
            raise QuoteAlreadyUsed(
                f"Quote {quote_id} is already used by payment {existing.id}"
            )

        route = select_rail(
            RailRequirements(
                amount=quote.input_amount,
                from_currency=quote.input_currency,
                to_currency=quote.output_currency,
                from_region=region_for_currency(quote.input_currency),
                to_region=region_for_currency(quote.output_currency),
                compliance_required=quote.compliance_required,
                priority=priority or self.config.DEFAULT_RAIL_PRIORITY,
            ),
            self.catalog,
        )

        payment_id = generate_payment_id()
        initiate = PaymentStep(
            step_id=INITIATE_STEP.step_id,
            step_name=StepType.INITIATE,
            status=StepStatus.COMPLETED,
            timestamp=now,
            details=f"Payment initiated via {route.primary.name}",
        )
        payment = Payment(
            id=payment_id,
            quote_id=quote.quote_id,
            request=PaymentRequest(
                sender_id=sender_id,
                recipient_id=recipient_details.email or "external",
                amount_usd=quote.input_amount,
                from_currency=quote.input_currency,
                to_currency=quote.output_currency,
                recipient_details=recipient_details,
                purpose=purpose,
                reference=reference,
            ),
            steps={initiate.step_id: initiate},
            fees=quote.fees,
            payout_amount=quote.output_amount,
            rail_id=route.primary.id,
            fallback_rail_id=route.fallback.id if route.fallback else None,
            created_at=now,
            updated_at=now,
            estimated_completion_time=now + timedelta(minutes=self.config.PAYMENT_ESTIMATED_MINUTES),
        )

        await self.store.create_payment(payment)
        try:
            await self.scheduler.schedule(payment_id)
        except PipelineAlreadyRunning:
            raise
        except Exception:
            logger.exception("Pipeline dispatch for payment %s failed", payment_id)
            await self.store.update_status(
                payment_id, PaymentStatus.FAILED, reason=DISPATCH_FAILED_REASON,
            )
            await self.store.release_pipeline(payment_id)
            raise

        logger.info(
            "Payment %s created from quote %s: %s %s -> %s %s via %s",
            payment_id, quote_id, quote.input_amount, quote.input_currency,
            quote.output_amount, quote.output_currency, route.primary.id,
        )
        return payment

    # ── Reads ────────────────────────────────────────────────────────────

    async def get_payment(self, payment_id: str, sender_id: str | None = None) -> Payment:
        """Return a payment; another sender's payment reads as not found."""
        payment = await self.store.get_payment(payment_id)
        if payment is None or (sender_id is not None and payment.request.sender_id != sender_id):
            raise PaymentNotFound(f"Payment {payment_id} not found")
        return payment

    async def list_payments(self, sender_id: str) -> list[Payment]:
        return await self.store.list_payments(sender_id)

    # ── Lifecycle actions ────────────────────────────────────────────────

    async def cancel_payment(self, payment_id: str, sender_id: str) -> Payment:
        """Cancel a payment whose funds have not started moving."""
        payment = await self.get_payment(payment_id, sender_id)
        if payment.status not in CANCELLABLE_STATUSES:
            raise CancellationNotAllowed(
                f"Payment cannot be cancelled in status {payment.status.value}"
            )

        try:
            await self.store.update_status(
                payment_id, PaymentStatus.CANCELLED, reason="Cancelled by sender",
            )
        except InvalidStateTransition as exc:
            # The pipeline moved the payment on between the read and the write
            raise CancellationNotAllowed(str(exc)) from exc

        logger.info("Payment %s cancelled by sender %s", payment_id, sender_id)
        return await self.get_payment(payment_id)

    async def resolve_review(self, payment_id: str, approved: bool, note: str = "") -> Payment:
        """
        Apply a manual compliance review decision.

        Approval completes the compliance step and reschedules the pipeline,
        which resumes at the first conversion step. Rejection fails the
        compliance step and the payment.
        """
        payment = await self.get_payment(payment_id)
        step = payment.steps.get(COMPLIANCE_STEP.step_id)
        if (
            payment.status != PaymentStatus.COMPLIANCE_REVIEW
            or step is None
            or step.status != StepStatus.PENDING
        ):
            raise InvalidStateTransition(
                f"Payment {payment_id} is not awaiting compliance review"
            )

        suffix = f": {note}" if note else ""
        if not approved:
            logger.info("Payment %s rejected on manual review", payment_id)
            await self.pipeline.fail(payment_id, COMPLIANCE_STEP, f"Rejected on manual review{suffix}")
            return await self.get_payment(payment_id)

        await self.pipeline.record_step(
            payment_id, COMPLIANCE_STEP, StepStatus.COMPLETED,
            details=f"Approved on manual review{suffix}",
        )
        await self.store.update_status(
            payment_id, PaymentStatus.COMPLIANCE_REVIEW, reason="Approved on manual review",
        )
        await self.scheduler.schedule(payment_id)
        logger.info("Payment %s approved on manual review; pipeline resumed", payment_id)
        return await self.get_payment(payment_id)

    # ── Compliance ───────────────────────────────────────────────────────

    async def verify_identity(self, kyc: KYCData) -> ComplianceResult:
        return await self.screener.verify_identity(kyc)

    async def screen_transaction(self, aml: AMLScreeningData) -> ComplianceResult:
        return await self.screener.screen_transaction(aml)

    async def compliance_dashboard(self, hours: int | None = None) -> ComplianceDashboard:
        """Screening outcomes of payments created in the last ``hours`` (all when None)."""
        since = self.clock() - timedelta(hours=hours) if hours else None
        payments = await self.store.list_screened_payments(since)
        return build_compliance_dashboard(payments)

    # ── Health ───────────────────────────────────────────────────────────

    async def health_check(self) -> dict:
        checks = {"store": await self.store.ping()}
        if self.screener is not None:
            checks["compliance"] = await self.screener.ping()
        if self.settlement is not None:
            checks["settlement"] = await self.settlement.ping()
        return {
            "status": "healthy" if all(checks.values()) else "degraded",
            "checks": checks,
        }
