"""
Payment Celery tasks — run a payment's settlement pipeline on a worker.

The API process claims the in-flight marker before dispatch, so each task
runs the pipeline for a payment id that nobody else is processing.
"""

import asyncio
import logging

from remitrail.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run_payment_pipeline_async(payment_id: str) -> dict:
    """
    Build the pipeline from settings and run it.

    Builds its own collaborators (not FastAPI app.state; Celery runs
    outside the request lifecycle).
    """
    from remitrail.services.factory import build_pipeline, build_store

    pipeline = build_pipeline(build_store())
    payment = await pipeline.run(payment_id)
    return {
        "payment_id": payment.id,
        "status": payment.status.value,
        "status_reason": payment.status_reason,
    }


@celery_app.task(name="remitrail.tasks.payment_tasks.run_payment_pipeline")
def run_payment_pipeline(payment_id: str):
    """
    Run the settlement pipeline for ``payment_id``.

    Celery tasks are synchronous, so the async pipeline runs in a fresh
    event loop.
    """
    logger.info("Starting settlement pipeline for payment %s", payment_id)
    loop = asyncio.new_event_loop()
    try:
        result = loop.run_until_complete(_run_payment_pipeline_async(payment_id))
        logger.info("Pipeline for payment %s ended in %s", payment_id, result["status"])
        return result
    except Exception:
        logger.exception("Pipeline for payment %s crashed", payment_id)
        raise
    finally:
        loop.close()
