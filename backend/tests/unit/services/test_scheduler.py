"""
Unit tests for the background job scheduler.

WHAT: Tests scheduler lifecycle, job registration and the job body.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from app.core.exceptions import SLAScanTimeoutError
from app.services import scheduler
from app.services.escalation_dispatcher import ScanResult


class TestSchedulerLifecycle:
    """Tests for start, status and shutdown."""

    def test_status_before_start(self):
        status = scheduler.get_scheduler_status()

        assert status["running"] is False
        assert status["jobs"] == []

    @pytest.mark.asyncio
    async def test_start_registers_escalation_job(self):
        try:
            await scheduler.start_scheduler()
            job = scheduler.get_scheduler().get_job(scheduler.SLA_ESCALATION_JOB_ID)

            assert job is not None
            assert job.name == "SLA Escalation Check"
            assert job.trigger.interval.total_seconds() == 60

            status = scheduler.get_scheduler_status()
            assert status["running"] is True
            assert [j["id"] for j in status["jobs"]] == ["sla_escalation_check"]
        finally:
            await scheduler.shutdown_scheduler()

        assert scheduler.get_scheduler() is None

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_scheduler(self):
        try:
            await scheduler.start_scheduler()
            first = scheduler.get_scheduler()
            await scheduler.start_scheduler()

            assert scheduler.get_scheduler() is first
            assert len(first.get_jobs()) == 1
        finally:
            await scheduler.shutdown_scheduler()

    @pytest.mark.asyncio
    async def test_shutdown_without_start(self):
        await scheduler.shutdown_scheduler()
        assert scheduler.get_scheduler() is None


class TestEscalationJob:
    """Tests for the scheduled job body."""

    @pytest.mark.asyncio
    async def test_job_returns_scan_counters(self):
        dispatcher = MagicMock()
        dispatcher.run_escalation_scan = AsyncMock(
            return_value=ScanResult(checked=3, warnings_raised=1)
        )

        with patch.object(scheduler, "get_escalation_dispatcher", return_value=dispatcher):
            result = await scheduler.run_sla_check_now()

        assert result == {
            "checked": 3,
            "warnings_raised": 1,
            "escalations_raised": 0,
            "errors": 0,
            "notifications_failed": 0,
        }

    @pytest.mark.asyncio
    async def test_job_propagates_scan_failure(self):
        dispatcher = MagicMock()
        dispatcher.run_escalation_scan = AsyncMock(
            side_effect=SLAScanTimeoutError(timeout_seconds=30)
        )

        with patch.object(scheduler, "get_escalation_dispatcher", return_value=dispatcher):
            with pytest.raises(SLAScanTimeoutError):
                await scheduler.run_escalation_job()
