"""
scheduler.py

Responsibility: Sets up the APScheduler AsyncIOScheduler and registers the
periodic update-cycle job.
Does NOT: contain detection, failover or DNS logic; those are delegated
entirely to UpdateService and its collaborators.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from services.update_service import CycleStatus, UpdateService

logger = logging.getLogger(__name__)

# Job ID used to identify the update cycle job in APScheduler
JOB_ID = "ipfailover_cycle"


# ---------------------------------------------------------------------------
# Scheduler job
# ---------------------------------------------------------------------------


async def _update_cycle_job(update_service: UpdateService) -> None:
    """
    APScheduler job: runs one update cycle and logs a one-line summary.

    Cycle-level failures are already logged and reported by UpdateService;
    anything unexpected propagates to APScheduler, which logs it and keeps
    the job scheduled.

    Args:
        update_service: The application-wide UpdateService from app.state.
    """
    logger.debug("Update cycle job triggered.")
    report = await update_service.run_scheduled()

    if report.status in (CycleStatus.UPDATED, CycleStatus.PARTIAL, CycleStatus.FAILED):
        logger.info(
            "Cycle finished: %s (target %s, %d record(s) updated, %d failed).",
            report.status.value,
            report.decision.address if report.decision else "n/a",
            len(report.updated),
            len(report.failures),
        )
    else:
        logger.debug("Cycle finished: %s.", report.status.value)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def create_scheduler(update_service: UpdateService, interval_seconds: float = 30.0) -> AsyncIOScheduler:
    """
    Creates and returns a configured AsyncIOScheduler with the update job.

    The job runs immediately on startup (next_run_time=now) and then at the
    configured interval. Runs never overlap: a tick that fires while a cycle
    is still running is skipped (APScheduler logs "maximum number of running
    instances reached") and the next cycle starts on the following tick.

    Args:
        update_service: The UpdateService to drive.
        interval_seconds: Seconds between cycles; must be positive.

    Returns:
        A configured but not yet started AsyncIOScheduler.

    Raises:
        ValueError: If interval_seconds is not positive.
    """
    if interval_seconds <= 0:
        raise ValueError(f"poll interval must be positive, got {interval_seconds}")

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        _update_cycle_job,
        trigger="interval",
        seconds=interval_seconds,
        id=JOB_ID,
        kwargs={"update_service": update_service},
        # NOTE: next_run_time=now triggers the first cycle immediately on startup
        # rather than waiting a full interval before the first run.
        next_run_time=datetime.now(timezone.utc),
        max_instances=1,  # Prevent overlapping runs if a cycle takes too long
        coalesce=True,
        misfire_grace_time=None,
    )
    logger.info("Update cycle job scheduled (interval: %.1fs).", interval_seconds)
    return scheduler
