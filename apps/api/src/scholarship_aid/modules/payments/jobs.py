"""
Payment Background Jobs

Scheduled maintenance for payment processing:
1. Purge processing claims left behind by requests that died between
   claiming applications and releasing them

Design Principles:
- Jobs are idempotent (safe to run multiple times)
- Jobs handle their own database sessions
- Jobs log all operations for auditing

Schedule:
- The purge runs hourly; processApprovedApplications also purges stale
  claims inline before claiming, so the job only bounds how long a dead
  claim can linger when nobody is processing
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from scholarship_aid.core.config import settings
from scholarship_aid.core.database import async_session_maker
from scholarship_aid.core.scheduler import register_job
from scholarship_aid.modules.payments import repository

logger = logging.getLogger(__name__)

JOB_ID_PURGE_STALE_CLAIMS = "payments_purge_stale_processing_claims"


async def purge_stale_processing_claims() -> dict[str, Any]:
    """
    Delete processing claims older than the configured TTL.

    Returns:
        Dict with job execution summary:
        - executed_at: When the job ran
        - threshold: Claims older than this were removed
        - purged: Number of claims removed
    """
    executed_at = datetime.now(UTC)
    threshold = executed_at - timedelta(minutes=settings.processing_claim_ttl_minutes)

    logger.info(f"Starting stale claim purge. Threshold: {threshold.isoformat()}")

    async with async_session_maker() as db:
        purged = await repository.purge_stale_claims(db, threshold)

    logger.info(f"Stale claim purge completed: {purged} removed")

    return {
        "executed_at": executed_at.isoformat(),
        "threshold": threshold.isoformat(),
        "purged": purged,
    }


def register_payment_jobs() -> None:
    """
    Register payment background jobs with the scheduler.

    Called during application startup, before the scheduler is started.
    """
    logger.info("Registering payment background jobs...")

    register_job(
        job_id=JOB_ID_PURGE_STALE_CLAIMS,
        func=purge_stale_processing_claims,
        trigger=IntervalTrigger(hours=1),
    )
    logger.info(f"Registered job: {JOB_ID_PURGE_STALE_CLAIMS} (interval: 1 hour)")
