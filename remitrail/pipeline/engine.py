"""
Settlement pipeline — drives one payment through its settlement steps.

Steps run strictly in order; each is persisted as ``processing`` before its
collaborator call and again with its outcome before the next step starts.
The first failing step fails the payment; completed steps are never
retracted and nothing is retried.

The pipeline re-reads the payment before every step, so it stops when the
payment was cancelled meanwhile and skips steps already completed by an
earlier run (resuming after a manual compliance review).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from remitrail.errors import (
    ComplianceRejected,
    ConversionFailed,
    InvalidStateTransition,
    PaymentError,
    PaymentNotFound,
    SettlementFailed,
    TransferFailed,
)
from remitrail.models.payment import (
    TERMINAL_STATUSES,
    PaymentStatus,
    StepStatus,
    StepType,
)
from remitrail.schemas.payment import Payment, PaymentStep

logger = logging.getLogger(__name__)

MANUAL_REVIEW_REASON = "Manual compliance review required"


@dataclass(frozen=True)
class StepSpec:
    step_id: str
    step_type: StepType
    status: PaymentStatus
    error: type[PaymentError]


INITIATE_STEP = StepSpec("1", StepType.INITIATE, PaymentStatus.CREATED, PaymentError)
COMPLIANCE_STEP = StepSpec(
    "2", StepType.COMPLIANCE_SCREEN, PaymentStatus.COMPLIANCE_REVIEW, ComplianceRejected,
)
COMPLETE_STEP = StepSpec("7", StepType.COMPLETE, PaymentStatus.COMPLETED, PaymentError)

# Steps the pipeline executes (1 is recorded at creation, 7 on completion)
STEP_PLAN: tuple[StepSpec, ...] = (
    COMPLIANCE_STEP,
    StepSpec("3", StepType.USD_TO_USDC, PaymentStatus.PROCESSING, ConversionFailed),
    StepSpec("4", StepType.BLOCKCHAIN_TRANSFER, PaymentStatus.BLOCKCHAIN_PENDING, TransferFailed),
    StepSpec("5", StepType.USDC_TO_LOCAL, PaymentStatus.CONVERTING, ConversionFailed),
    StepSpec("6", StepType.BANK_TRANSFER, PaymentStatus.SETTLING, SettlementFailed),
)

TOTAL_STEPS = len(STEP_PLAN) + 2


@dataclass
class StepOutcome:
    details: str
    transaction_hash: str | None = None
    parked: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentPipeline:
    """Runs the settlement steps for a payment against the injected collaborators."""

    def __init__(self, store, screener, settlement, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.screener = screener
        self.settlement = settlement
        self.clock = clock

    # ── Step recording ───────────────────────────────────────────────────

    async def record_step(
        self,
        payment_id: str,
        spec: StepSpec,
        status: StepStatus,
        details: str = "",
        transaction_hash: str | None = None,
        error_message: str | None = None,
    ) -> None:
        await self.store.upsert_step(
            payment_id,
            PaymentStep(
                step_id=spec.step_id,
                step_name=spec.step_type,
                status=status,
                timestamp=self.clock(),
                details=details,
                transaction_hash=transaction_hash,
                error_message=error_message,
            ),
        )

    async def fail(self, payment_id: str, spec: StepSpec, error: str) -> None:
        """Record ``spec`` as failed and move the payment to ``failed``."""
        await self.record_step(
            payment_id, spec, StepStatus.FAILED,
            details=f"{spec.step_type.value} failed",
            error_message=error,
        )
        try:
            await self.store.update_status(
                payment_id, PaymentStatus.FAILED,
                reason=f"{spec.step_type.value} failed: {error}",
            )
        except InvalidStateTransition:
            # Cancelled while the step was in flight; cancellation stands
            logger.warning(
                "Payment %s: %s failed after the payment was closed",
                payment_id, spec.step_type.value,
            )

    # ── Public entry point ───────────────────────────────────────────────

    async def run(self, payment_id: str) -> Payment:
        """
        Execute the remaining steps of a payment.

        Returns the payment as persisted when the run ends (completed,
        failed, cancelled, or parked for manual review).
        """
        for spec in STEP_PLAN:
            payment = await self._load(payment_id)
            if payment.status in TERMINAL_STATUSES:
                logger.info(
                    "Payment %s is %s; pipeline stopped before %s",
                    payment_id, payment.status.value, spec.step_type.value,
                )
                return payment
            if payment.step_completed(spec.step_id):
                continue

            try:
                if payment.status != spec.status:
                    await self.store.update_status(payment_id, spec.status)
            except InvalidStateTransition as exc:
                logger.info("Payment %s: pipeline stopped: %s", payment_id, exc)
                return await self._load(payment_id)

            await self.record_step(payment_id, spec, StepStatus.PROCESSING)

            try:
                outcome = await self.execute_step(spec, payment)
            except PaymentError as exc:
                logger.warning(
                    "Payment %s: step %s failed: %s",
                    payment_id, spec.step_type.value, exc.message,
                )
                await self.fail(payment_id, spec, exc.message)
                return await self._load(payment_id)
            except Exception as exc:
                logger.exception(
                    "Payment %s: unexpected error in step %s",
                    payment_id, spec.step_type.value,
                )
                await self.fail(payment_id, spec, str(exc) or exc.__class__.__name__)
                return await self._load(payment_id)

            if outcome.parked:
                return await self._park_for_review(payment_id, outcome)

            await self.record_step(
                payment_id, spec, StepStatus.COMPLETED,
                details=outcome.details,
                transaction_hash=outcome.transaction_hash,
            )

        return await self._complete(payment_id)

    # ── Step handlers ────────────────────────────────────────────────────

    async def execute_step(self, spec: StepSpec, payment: Payment) -> StepOutcome:
        handler = getattr(self, f"_step_{spec.step_type.value}")
        return await handler(payment)

    async def _step_compliance_screen(self, payment: Payment) -> StepOutcome:
        result = await self.screener.screen(payment)
        summary = f"risk score {result.risk_score} ({result.risk_level})"
        if result.flags:
            summary += f", flags: {', '.join(result.flags)}"

        await self.store.record_compliance(payment.id, result)
        if result.recommendation == "reject":
            raise ComplianceRejected(f"Compliance screening rejected the payment: {summary}")
        if result.recommendation == "review":
            return StepOutcome(details=f"Held for manual compliance review: {summary}", parked=True)
        return StepOutcome(details=f"Compliance approved: {summary}")

    async def _step_usd_to_usdc(self, payment: Payment) -> StepOutcome:
        amount = payment.request.amount_usd - payment.fees.total
        result = await self.settlement.convert_fiat_to_stable(amount, payment.request.sender_id)
        return StepOutcome(
            details=f"Converted {amount} {payment.request.from_currency} to stablecoin "
                    f"(ref {result['reference']})",
        )

    async def _step_blockchain_transfer(self, payment: Payment) -> StepOutcome:
        amount = payment.request.amount_usd - payment.fees.total
        result = await self.settlement.transfer_on_chain(amount, payment.request.recipient_id)
        tx_hash = result["tx_reference"]
        return StepOutcome(
            details=f"Transferred {amount} on-chain",
            transaction_hash=tx_hash,
        )

    async def _step_usdc_to_local(self, payment: Payment) -> StepOutcome:
        amount = payment.request.amount_usd - payment.fees.total
        currency = payment.request.to_currency
        result = await self.settlement.convert_stable_to_fiat(
            amount, currency, payment.request.recipient_id,
        )
        return StepOutcome(
            details=f"Converted stablecoin to {payment.payout_amount} {currency} "
                    f"(ref {result['reference']})",
        )

    async def _step_bank_transfer(self, payment: Payment) -> StepOutcome:
        request = payment.request
        bank = request.recipient_details.bank_account
        result = await self.settlement.settle_to_bank(
            payment.payout_amount, request.to_currency, bank.model_dump(),
        )
        return StepOutcome(
            details=f"Paid {payment.payout_amount} {request.to_currency} to "
                    f"{bank.bank_name} (ref {result['reference']})",
        )

    # ── Terminal transitions ─────────────────────────────────────────────

    async def _park_for_review(self, payment_id: str, outcome: StepOutcome) -> Payment:
        payment = await self._load(payment_id)
        if payment.status in TERMINAL_STATUSES:
            logger.info(
                "Payment %s is %s; not holding it for manual review",
                payment_id, payment.status.value,
            )
            await self.record_step(
                payment_id, COMPLIANCE_STEP, StepStatus.SKIPPED,
                details=f"Review hold dropped: payment already {payment.status.value}",
            )
            return await self._load(payment_id)

        await self.record_step(payment_id, COMPLIANCE_STEP, StepStatus.PENDING, details=outcome.details)
        try:
            await self.store.update_status(
                payment_id, PaymentStatus.COMPLIANCE_REVIEW, reason=MANUAL_REVIEW_REASON,
            )
        except InvalidStateTransition:
            # Cancelled between the read and the write; cancellation stands
            logger.warning("Payment %s closed while being held for review", payment_id)
            return await self._load(payment_id)
        # Parked payments are resumed by a fresh schedule after the review
        await self.store.release_pipeline(payment_id)
        logger.info("Payment %s parked for manual compliance review", payment_id)
        return await self._load(payment_id)

    async def _complete(self, payment_id: str) -> Payment:
        now = self.clock()
        await self.record_step(
            payment_id, COMPLETE_STEP, StepStatus.COMPLETED,
            details="Payment completed successfully",
        )
        await self.store.update_status(payment_id, PaymentStatus.COMPLETED, completed_at=now)
        logger.info("Payment %s completed", payment_id)
        return await self._load(payment_id)

    async def _load(self, payment_id: str) -> Payment:
        payment = await self.store.get_payment(payment_id)
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        return payment
