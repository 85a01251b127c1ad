"""
Shared test fixtures for RemitRail.

Provides a controllable clock, the in-memory store, stub compliance and
settlement collaborators, a fully wired orchestrator, and an async HTTP
test client bound to that orchestrator.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from remitrail.models.payment import StepStatus, StepType, generate_payment_id
from remitrail.pipeline.engine import PaymentPipeline
from remitrail.pipeline.scheduler import PipelineScheduler
from remitrail.schemas.compliance import ComplianceResult
from remitrail.schemas.payment import (
    Address,
    BankAccount,
    Payment,
    PaymentRequest,
    PaymentStep,
    RecipientDetails,
)
from remitrail.schemas.quote import FeeBreakdown
from remitrail.services.orchestrator import PaymentOrchestrator
from remitrail.services.quote_service import QuoteService
from remitrail.store.memory import InMemoryPaymentStore

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# --- Clock ---


class FixedClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock()


# --- Mock Redis ---


@pytest.fixture
def mock_redis():
    """AsyncMock Redis client with the methods the SQL store uses."""
    redis = AsyncMock()
    redis.setex = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock()
    redis.ping = AsyncMock(return_value=True)
    return redis


# --- Store ---


@pytest.fixture
def store():
    return InMemoryPaymentStore()


# --- Compliance results ---


def make_result(recommendation="approve", score="10", flags=(), success=True) -> ComplianceResult:
    score = Decimal(score)
    return ComplianceResult(
        success=success,
        risk_level="low" if score < 30 else "medium" if score < 70 else "high",
        risk_score=score,
        recommendation=recommendation,
        flags=list(flags),
        details={"provider": "test"},
    )


@pytest.fixture
def compliance_result():
    """Factory fixture for ComplianceResult instances."""
    return make_result


@pytest.fixture
def approve_result():
    return make_result("approve", "12.40")


# --- Collaborator stubs ---


@pytest.fixture
def screener(approve_result):
    """Compliance screener that approves unless a test says otherwise."""
    stub = MagicMock()
    stub.screen = AsyncMock(return_value=approve_result)
    stub.ping = AsyncMock(return_value=True)
    return stub


@pytest.fixture
def settlement():
    """Settlement service whose every leg succeeds."""
    stub = MagicMock()
    stub.convert_fiat_to_stable = AsyncMock(return_value={"reference": "CNV-IN-0001"})
    stub.transfer_on_chain = AsyncMock(return_value={"tx_reference": "0xabc123"})
    stub.convert_stable_to_fiat = AsyncMock(return_value={"reference": "CNV-OUT-0001"})
    stub.settle_to_bank = AsyncMock(return_value={"reference": "STL-0001"})
    stub.ping = AsyncMock(return_value=True)
    return stub


@pytest.fixture
def pipeline(store, screener, settlement, clock):
    return PaymentPipeline(store, screener, settlement, clock=clock)


@pytest.fixture
def scheduler(store, pipeline):
    return PipelineScheduler(store, pipeline.run)


@pytest.fixture
def quote_service(store, clock):
    return QuoteService(store, clock=clock)


@pytest.fixture
def orchestrator(store, quote_service, scheduler, pipeline, screener, settlement, clock):
    return PaymentOrchestrator(
        store=store,
        quote_service=quote_service,
        scheduler=scheduler,
        pipeline=pipeline,
        screener=screener,
        settlement=settlement,
        clock=clock,
    )


# --- Sample data ---


@pytest.fixture
def recipient():
    return RecipientDetails(
        first_name="Maria",
        last_name="Gonzalez",
        email="maria@example.mx",
        phone="+525512345678",
        address=Address(
            street="Av. Reforma 222",
            city="Ciudad de Mexico",
            postal_code="06600",
            country="MX",
        ),
        bank_account=BankAccount(
            account_number="012180001234567890",
            bank_name="BBVA Mexico",
            bank_code="012",
        ),
    )


@pytest.fixture
def recipient_payload(recipient):
    return recipient.model_dump(mode="json")


@pytest_asyncio.fixture
async def stored_payment(store, recipient):
    """A freshly created USD->MXN payment (step 1 recorded) saved in the store."""
    initiate = PaymentStep(
        step_id="1",
        step_name=StepType.INITIATE,
        status=StepStatus.COMPLETED,
        timestamp=T0,
        details="Payment initiated",
    )
    payment = Payment(
        id=generate_payment_id(),
        quote_id="QT-000000000001",
        request=PaymentRequest(
            sender_id="sender-1",
            recipient_id=recipient.email,
            amount_usd=Decimal("100.00"),
            from_currency="USD",
            to_currency="MXN",
            recipient_details=recipient,
        ),
        steps={"1": initiate},
        fees=FeeBreakdown(
            platform_fee=Decimal("1.50"),
            platform_fee_percent=Decimal("0.015"),
            network_fee=Decimal("0.01"),
            total=Decimal("1.51"),
        ),
        payout_amount=Decimal("1822.07"),
        rail_id="circle-usdc",
        fallback_rail_id="triple-redundant",
        created_at=T0,
        updated_at=T0,
        estimated_completion_time=T0 + timedelta(minutes=5),
    )
    await store.create_payment(payment)
    return payment


# --- HTTP client ---


@pytest_asyncio.fixture
async def client(orchestrator):
    """
    Async HTTP test client with the test orchestrator on app.state.

    ASGITransport does not run the lifespan, so the wiring is done here.
    """
    from remitrail.main import app

    app.state.orchestrator = orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await orchestrator.scheduler.drain()
