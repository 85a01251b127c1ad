"""Tests for pipeline scheduling — in-flight markers, task lifecycle, Celery dispatch."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from remitrail.errors import PipelineAlreadyRunning
from remitrail.pipeline.scheduler import CeleryPipelineScheduler, PipelineScheduler
from remitrail.tasks import payment_tasks


class TestPipelineScheduler:

    @pytest.mark.asyncio
    async def test_runs_pipeline_task(self, store):
        runner = AsyncMock()
        scheduler = PipelineScheduler(store, runner)

        await scheduler.schedule("PAY-1")
        await scheduler.wait("PAY-1")

        runner.assert_awaited_once_with("PAY-1")
        assert not scheduler.running("PAY-1")

    @pytest.mark.asyncio
    async def test_second_schedule_rejected(self, store):
        runner = AsyncMock()
        scheduler = PipelineScheduler(store, runner)

        await scheduler.schedule("PAY-1")
        with pytest.raises(PipelineAlreadyRunning):
            await scheduler.schedule("PAY-1")
        await scheduler.drain()

        runner.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_marker_outlives_the_run(self, store):
        """A finished pipeline cannot be started again for the same id."""
        scheduler = PipelineScheduler(store, AsyncMock())
        await scheduler.schedule("PAY-1")
        await scheduler.drain()

        with pytest.raises(PipelineAlreadyRunning):
            await scheduler.schedule("PAY-1")

    @pytest.mark.asyncio
    async def test_released_marker_allows_reschedule(self, store):
        runner = AsyncMock()
        scheduler = PipelineScheduler(store, runner)
        await scheduler.schedule("PAY-1")
        await scheduler.drain()

        await store.release_pipeline("PAY-1")
        await scheduler.schedule("PAY-1")
        await scheduler.drain()

        assert runner.await_count == 2

    @pytest.mark.asyncio
    async def test_task_named_after_payment(self, store):
        started = asyncio.Event()
        release = asyncio.Event()

        async def runner(payment_id):
            started.set()
            await release.wait()

        scheduler = PipelineScheduler(store, runner)
        await scheduler.schedule("PAY-9")
        await started.wait()

        names = {t.get_name() for t in asyncio.all_tasks()}
        assert "pipeline:PAY-9" in names
        assert scheduler.running("PAY-9")

        release.set()
        await scheduler.drain()

    @pytest.mark.asyncio
    async def test_crash_is_logged(self, store, caplog):
        runner = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = PipelineScheduler(store, runner)

        with caplog.at_level(logging.ERROR, logger="remitrail.pipeline.scheduler"):
            await scheduler.schedule("PAY-1")
            await scheduler.drain()

        assert "Pipeline for payment PAY-1 crashed" in caplog.text

    @pytest.mark.asyncio
    async def test_drain_waits_for_all(self, store):
        done = []

        async def runner(payment_id):
            await asyncio.sleep(0)
            done.append(payment_id)

        scheduler = PipelineScheduler(store, runner)
        for pid in ("PAY-1", "PAY-2", "PAY-3"):
            await scheduler.schedule(pid)
        await scheduler.drain()

        assert sorted(done) == ["PAY-1", "PAY-2", "PAY-3"]


class TestCeleryScheduler:

    @pytest.mark.asyncio
    async def test_dispatches_task(self, store, monkeypatch):
        task = MagicMock()
        monkeypatch.setattr(payment_tasks, "run_payment_pipeline", task)

        scheduler = CeleryPipelineScheduler(store)
        await scheduler.schedule("PAY-1")

        task.delay.assert_called_once_with("PAY-1")

    @pytest.mark.asyncio
    async def test_claims_marker_before_dispatch(self, store, monkeypatch):
        task = MagicMock()
        monkeypatch.setattr(payment_tasks, "run_payment_pipeline", task)
        await store.claim_pipeline("PAY-1")

        with pytest.raises(PipelineAlreadyRunning):
            await CeleryPipelineScheduler(store).schedule("PAY-1")
        task.delay.assert_not_called()

    @pytest.mark.asyncio
    async def test_worker_runs_pipeline(self, store, pipeline, stored_payment, monkeypatch):
        from remitrail.services import factory

        monkeypatch.setattr(factory, "build_store", lambda: store)
        monkeypatch.setattr(factory, "build_pipeline", lambda s: pipeline)

        result = await payment_tasks._run_payment_pipeline_async(stored_payment.id)

        assert result == {
            "payment_id": stored_payment.id,
            "status": "completed",
            "status_reason": None,
        }
