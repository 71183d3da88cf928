"""
Unit tests for payment background jobs and their registration.
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from scholarship_aid.core import scheduler
from scholarship_aid.modules.payments.jobs import (
    JOB_ID_PURGE_STALE_CLAIMS,
    purge_stale_processing_claims,
    register_payment_jobs,
)


@pytest.fixture
def mock_session_maker(mock_db):
    session_cm = MagicMock()
    session_cm.__aenter__ = AsyncMock(return_value=mock_db)
    session_cm.__aexit__ = AsyncMock(return_value=None)
    with patch(
        "scholarship_aid.modules.payments.jobs.async_session_maker", return_value=session_cm
    ):
        yield


class TestPurgeStaleProcessingClaims:
    @pytest.mark.asyncio
    async def test_purges_claims_older_than_ttl(self, mock_db, mock_session_maker):
        with patch("scholarship_aid.modules.payments.jobs.repository") as mock_repo:
            mock_repo.purge_stale_claims = AsyncMock(return_value=2)

            result = await purge_stale_processing_claims()

        assert result["purged"] == 2
        executed_at = datetime.fromisoformat(result["executed_at"])
        threshold = datetime.fromisoformat(result["threshold"])
        assert (executed_at - threshold).total_seconds() == 15 * 60
        mock_repo.purge_stale_claims.assert_awaited_once_with(mock_db, threshold)


class TestRegistration:
    def test_registers_hourly_purge(self):
        with patch.dict(scheduler._job_registry, clear=True):
            register_payment_jobs()

            func, trigger = scheduler._job_registry[JOB_ID_PURGE_STALE_CLAIMS]
            assert func is purge_stale_processing_claims
            assert isinstance(trigger, IntervalTrigger)
            assert trigger.interval.total_seconds() == 3600

    @pytest.mark.asyncio
    async def test_manual_trigger_runs_job(self, mock_db, mock_session_maker):
        with (
            patch.dict(scheduler._job_registry, clear=True),
            patch("scholarship_aid.modules.payments.jobs.repository") as mock_repo,
        ):
            mock_repo.purge_stale_claims = AsyncMock(return_value=0)
            register_payment_jobs()

            result = await scheduler.trigger_job_manually(JOB_ID_PURGE_STALE_CLAIMS)

        assert result["status"] == "success"
        assert result["result"]["purged"] == 0

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        with pytest.raises(ValueError):
            await scheduler.trigger_job_manually("no-such-job")
