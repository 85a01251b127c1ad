"""
Pipeline scheduling — at most one settlement run per payment id.

Scheduling first claims the payment's in-flight marker through the store;
a second schedule for the same id raises ``PipelineAlreadyRunning``. The
marker stays set after the run ends and is only released when the pipeline
parks a payment for manual review.

- ``PipelineScheduler`` runs each pipeline as an asyncio task in-process
- ``CeleryPipelineScheduler`` dispatches the ``run_payment_pipeline`` task
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from remitrail.errors import PipelineAlreadyRunning

logger = logging.getLogger(__name__)


class PipelineScheduler:
    """Runs pipelines as named asyncio tasks on the current event loop."""

    def __init__(self, store, runner: Callable[[str], Awaitable]):
        self.store = store
        self.runner = runner
        self._tasks: dict[str, asyncio.Task] = {}

    async def _claim(self, payment_id: str) -> None:
        if not await self.store.claim_pipeline(payment_id):
            raise PipelineAlreadyRunning(
                f"Pipeline for payment {payment_id} is already scheduled"
            )

    async def schedule(self, payment_id: str) -> None:
        await self._claim(payment_id)
        task = asyncio.create_task(self.runner(payment_id), name=f"pipeline:{payment_id}")
        self._tasks[payment_id] = task
        task.add_done_callback(self._on_done)
        logger.info("Scheduled pipeline for payment %s", payment_id)

    def _on_done(self, task: asyncio.Task) -> None:
        payment_id = task.get_name().removeprefix("pipeline:")
        if self._tasks.get(payment_id) is task:
            del self._tasks[payment_id]
        if task.cancelled():
            logger.warning("Pipeline for payment %s was cancelled", payment_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Pipeline for payment %s crashed", payment_id,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def running(self, payment_id: str) -> bool:
        task = self._tasks.get(payment_id)
        return task is not None and not task.done()

    async def wait(self, payment_id: str) -> None:
        """Wait for the payment's pipeline task, if one is running."""
        task = self._tasks.get(payment_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for every running pipeline (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)


class CeleryPipelineScheduler(PipelineScheduler):
    """Claims the marker, then hands the run to a Celery worker."""

    def __init__(self, store):
        super().__init__(store, runner=None)

    async def schedule(self, payment_id: str) -> None:
        await self._claim(payment_id)
        from remitrail.tasks.payment_tasks import run_payment_pipeline
        run_payment_pipeline.delay(payment_id)
        logger.info("Dispatched pipeline task for payment %s", payment_id)
