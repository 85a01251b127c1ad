"""
Wiring — builds the orchestrator and its collaborators from settings.

STORE_BACKEND selects where payments live ("memory" or "sql");
PIPELINE_BACKEND selects where pipelines run ("asyncio" or "celery").
Celery workers run in other processes, so they need the shared "sql" store.
"""

import logging

from remitrail.config import settings
from remitrail.pipeline.engine import PaymentPipeline
from remitrail.pipeline.scheduler import CeleryPipelineScheduler, PipelineScheduler
from remitrail.services.compliance_service import ComplianceScreener, build_compliance_providers
from remitrail.services.orchestrator import PaymentOrchestrator
from remitrail.services.quote_service import QuoteService
from remitrail.services.settlement_service import SettlementService
from remitrail.store.memory import InMemoryPaymentStore
from remitrail.store.sql import SqlPaymentStore

logger = logging.getLogger(__name__)


def build_store(config=settings):
    if config.STORE_BACKEND == "memory":
        return InMemoryPaymentStore()
    if config.STORE_BACKEND == "sql":
        return SqlPaymentStore()
    raise ValueError(f"Unknown STORE_BACKEND: {config.STORE_BACKEND}")


def build_screener(config=settings) -> ComplianceScreener:
    identity, risk = build_compliance_providers(config)
    return ComplianceScreener(identity, risk)


def build_settlement(config=settings) -> SettlementService:
    return SettlementService(
        base_url=config.SETTLEMENT_API_URL,
        api_key=config.SETTLEMENT_API_KEY,
        timeout=config.SETTLEMENT_TIMEOUT_SECONDS,
        stablecoin=config.STABLECOIN,
        network=config.BLOCKCHAIN_NETWORK,
    )


def build_pipeline(store, config=settings) -> PaymentPipeline:
    return PaymentPipeline(store, build_screener(config), build_settlement(config))


def build_scheduler(store, pipeline: PaymentPipeline, config=settings) -> PipelineScheduler:
    if config.PIPELINE_BACKEND == "asyncio":
        return PipelineScheduler(store, pipeline.run)
    if config.PIPELINE_BACKEND == "celery":
        if config.STORE_BACKEND == "memory":
            raise ValueError("PIPELINE_BACKEND=celery requires STORE_BACKEND=sql")
        return CeleryPipelineScheduler(store)
    raise ValueError(f"Unknown PIPELINE_BACKEND: {config.PIPELINE_BACKEND}")


def build_orchestrator(config=settings, store=None) -> PaymentOrchestrator:
    store = store if store is not None else build_store(config)
    pipeline = build_pipeline(store, config)
    orchestrator = PaymentOrchestrator(
        store=store,
        quote_service=QuoteService(store, config=config),
        scheduler=build_scheduler(store, pipeline, config),
        pipeline=pipeline,
        screener=pipeline.screener,
        settlement=pipeline.settlement,
        config=config,
    )
    logger.info(
        "Orchestrator ready (store=%s, pipeline=%s)",
        config.STORE_BACKEND, config.PIPELINE_BACKEND,
    )
    return orchestrator
