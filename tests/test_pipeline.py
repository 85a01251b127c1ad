"""Tests for the settlement pipeline — step recording, failures, review, cancellation."""

from decimal import Decimal

import pytest

from remitrail.errors import ConversionFailed, SettlementFailed, TransferFailed
from remitrail.models.payment import PaymentStatus, StepStatus, StepType
from remitrail.pipeline.engine import MANUAL_REVIEW_REASON, PaymentPipeline, StepOutcome

STEP_NAMES = {
    "1": StepType.INITIATE,
    "2": StepType.COMPLIANCE_SCREEN,
    "3": StepType.USD_TO_USDC,
    "4": StepType.BLOCKCHAIN_TRANSFER,
    "5": StepType.USDC_TO_LOCAL,
    "6": StepType.BANK_TRANSFER,
    "7": StepType.COMPLETE,
}


def _inject_failure(k, screener, settlement, compliance_result):
    if k == 2:
        screener.screen.return_value = compliance_result("reject", "91", flags=["watchlist_match"])
    elif k == 3:
        settlement.convert_fiat_to_stable.side_effect = ConversionFailed("FX desk unavailable")
    elif k == 4:
        settlement.transfer_on_chain.side_effect = TransferFailed("RPC node rejected transaction")
    elif k == 5:
        settlement.convert_stable_to_fiat.side_effect = ConversionFailed("No MXN liquidity")
    elif k == 6:
        settlement.settle_to_bank.side_effect = SettlementFailed("Beneficiary account closed")


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_all_steps_completed_in_order(self, pipeline, stored_payment):
        payment = await pipeline.run(stored_payment.id)

        assert payment.status == PaymentStatus.COMPLETED
        assert [s.step_id for s in payment.timeline] == ["1", "2", "3", "4", "5", "6", "7"]
        assert [s.step_name for s in payment.timeline] == list(STEP_NAMES.values())
        assert all(s.status == StepStatus.COMPLETED for s in payment.timeline)

    @pytest.mark.asyncio
    async def test_completion_timestamp(self, pipeline, stored_payment, clock):
        payment = await pipeline.run(stored_payment.id)
        assert payment.completed_at == clock.now

    @pytest.mark.asyncio
    async def test_transaction_hash_recorded(self, pipeline, stored_payment):
        payment = await pipeline.run(stored_payment.id)
        assert payment.steps["4"].transaction_hash == "0xabc123"

    @pytest.mark.asyncio
    async def test_compliance_snapshot_recorded(self, pipeline, stored_payment, approve_result):
        payment = await pipeline.run(stored_payment.id)
        assert payment.compliance == approve_result

    @pytest.mark.asyncio
    async def test_settlement_amounts(self, pipeline, stored_payment, settlement):
        await pipeline.run(stored_payment.id)

        # 100.00 sent less 1.51 fees moves as stablecoin
        settlement.convert_fiat_to_stable.assert_awaited_once_with(Decimal("98.49"), "sender-1")
        settlement.transfer_on_chain.assert_awaited_once_with(Decimal("98.49"), "maria@example.mx")
        args = settlement.settle_to_bank.await_args.args
        assert args[0] == Decimal("1822.07")
        assert args[1] == "MXN"
        assert args[2]["account_number"] == "012180001234567890"


# ---------------------------------------------------------------------------
# Failure containment
# ---------------------------------------------------------------------------


class TestFailureContainment:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("k", [2, 3, 4, 5, 6])
    async def test_failure_at_step_k(
        self, k, pipeline, stored_payment, screener, settlement, compliance_result,
    ):
        _inject_failure(k, screener, settlement, compliance_result)

        payment = await pipeline.run(stored_payment.id)

        steps = payment.timeline
        assert [s.step_id for s in steps] == [str(i) for i in range(1, k + 1)]
        assert all(s.status == StepStatus.COMPLETED for s in steps[:k - 1])
        failed = steps[k - 1]
        assert failed.status == StepStatus.FAILED
        assert failed.error_message
        assert payment.status == PaymentStatus.FAILED
        assert payment.status_reason.startswith(f"{STEP_NAMES[str(k)].value} failed: ")
        assert payment.failed_step.step_id == str(k)

    @pytest.mark.asyncio
    async def test_error_detail_verbatim(self, pipeline, stored_payment, settlement):
        settlement.settle_to_bank.side_effect = SettlementFailed("Beneficiary account closed")
        payment = await pipeline.run(stored_payment.id)

        assert payment.steps["6"].error_message == "Beneficiary account closed"
        assert payment.status_reason == "bank_transfer failed: Beneficiary account closed"

    @pytest.mark.asyncio
    async def test_later_collaborators_not_called(self, pipeline, stored_payment, settlement):
        settlement.transfer_on_chain.side_effect = TransferFailed("nonce too low")
        await pipeline.run(stored_payment.id)

        settlement.convert_stable_to_fiat.assert_not_awaited()
        settlement.settle_to_bank.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_the_step(self, pipeline, stored_payment, settlement):
        settlement.convert_fiat_to_stable.side_effect = RuntimeError("socket closed")
        payment = await pipeline.run(stored_payment.id)

        assert payment.status == PaymentStatus.FAILED
        assert payment.steps["3"].error_message == "socket closed"

    @pytest.mark.asyncio
    async def test_rejection_reason_names_flags(
        self, pipeline, stored_payment, screener, compliance_result,
    ):
        screener.screen.return_value = compliance_result("reject", "91", flags=["watchlist_match"])
        payment = await pipeline.run(stored_payment.id)

        assert "watchlist_match" in payment.steps["2"].error_message
        assert payment.compliance.recommendation == "reject"


# ---------------------------------------------------------------------------
# Manual review
# ---------------------------------------------------------------------------


class TestManualReview:

    @pytest.mark.asyncio
    async def test_review_parks_payment(
        self, pipeline, stored_payment, store, screener, settlement, compliance_result,
    ):
        screener.screen.return_value = compliance_result("review", "55", flags=["identity_partial_match"])
        assert await store.claim_pipeline(stored_payment.id)

        payment = await pipeline.run(stored_payment.id)

        assert payment.status == PaymentStatus.COMPLIANCE_REVIEW
        assert payment.status_reason == MANUAL_REVIEW_REASON
        assert payment.steps["2"].status == StepStatus.PENDING
        assert "manual compliance review" in payment.steps["2"].details
        assert "3" not in payment.steps
        assert payment.compliance.recommendation == "review"
        settlement.convert_fiat_to_stable.assert_not_awaited()
        # Marker released so the payment can be rescheduled after review
        assert await store.claim_pipeline(stored_payment.id) is True

    @pytest.mark.asyncio
    async def test_resume_skips_completed_steps(
        self, pipeline, stored_payment, store, screener, compliance_result,
    ):
        screener.screen.return_value = compliance_result("review", "55")
        await pipeline.run(stored_payment.id)

        from remitrail.pipeline.engine import COMPLIANCE_STEP
        await pipeline.record_step(stored_payment.id, COMPLIANCE_STEP, StepStatus.COMPLETED, "approved")
        screener.screen.reset_mock()

        payment = await pipeline.run(stored_payment.id)

        screener.screen.assert_not_awaited()
        assert payment.status == PaymentStatus.COMPLETED
        assert [s.step_id for s in payment.timeline] == ["1", "2", "3", "4", "5", "6", "7"]


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, pipeline, stored_payment, store, screener):
        await store.update_status(stored_payment.id, PaymentStatus.CANCELLED, reason="Cancelled by sender")

        payment = await pipeline.run(stored_payment.id)

        assert payment.status == PaymentStatus.CANCELLED
        assert list(payment.steps) == ["1"]
        screener.screen.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancelled_during_compliance(
        self, pipeline, stored_payment, store, screener, settlement, approve_result,
    ):
        """The in-flight step finishes; nothing after it runs."""
        async def screen_then_cancel(payment):
            await store.update_status(payment.id, PaymentStatus.CANCELLED, reason="Cancelled by sender")
            return approve_result

        screener.screen.side_effect = screen_then_cancel

        payment = await pipeline.run(stored_payment.id)

        assert payment.status == PaymentStatus.CANCELLED
        assert "3" not in payment.steps
        settlement.convert_fiat_to_stable.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejection_after_cancel_keeps_cancelled(
        self, pipeline, stored_payment, store, screener, compliance_result,
    ):
        async def screen_then_cancel(payment):
            await store.update_status(payment.id, PaymentStatus.CANCELLED)
            return compliance_result("reject", "95")

        screener.screen.side_effect = screen_then_cancel

        payment = await pipeline.run(stored_payment.id)

        assert payment.status == PaymentStatus.CANCELLED
        assert payment.steps["2"].status == StepStatus.FAILED

    @pytest.mark.asyncio
    async def test_review_after_cancel_keeps_cancelled(
        self, pipeline, stored_payment, store, screener, settlement, compliance_result,
    ):
        async def screen_then_cancel(payment):
            await store.update_status(payment.id, PaymentStatus.CANCELLED, reason="Cancelled by sender")
            return compliance_result("review", "55")

        screener.screen.side_effect = screen_then_cancel
        assert await store.claim_pipeline(stored_payment.id)

        payment = await pipeline.run(stored_payment.id)

        assert payment.status == PaymentStatus.CANCELLED
        assert payment.status_reason == "Cancelled by sender"
        assert payment.steps["2"].status == StepStatus.SKIPPED
        assert "3" not in payment.steps
        settlement.convert_fiat_to_stable.assert_not_awaited()
        # A cancelled payment keeps its marker and cannot be rescheduled
        assert await store.claim_pipeline(stored_payment.id) is False


# ---------------------------------------------------------------------------
# Step dispatch
# ---------------------------------------------------------------------------


class TestStepDispatch:

    @pytest.mark.asyncio
    async def test_processing_recorded_before_collaborator_call(
        self, store, screener, settlement, stored_payment, clock,
    ):
        seen = []

        async def convert(amount, account):
            payment = await store.get_payment(stored_payment.id)
            seen.append((payment.status, payment.steps["3"].status))
            return {"reference": "CNV-1"}

        settlement.convert_fiat_to_stable.side_effect = convert
        await PaymentPipeline(store, screener, settlement, clock=clock).run(stored_payment.id)

        assert seen == [(PaymentStatus.PROCESSING, StepStatus.PROCESSING)]

    def test_step_outcome_defaults(self):
        outcome = StepOutcome(details="ok")
        assert outcome.parked is False
        assert outcome.transaction_hash is None
