"""
Interval scheduler for the risk assessment batch.

Runs in a background thread, independent of request handling. Started and
stopped from the FastAPI lifespan in main.py.
"""

from typing import Optional
import structlog
from apscheduler.schedulers.background import BackgroundScheduler

from config import settings
from services.risk_assessment_service import get_risk_assessment_service

logger = structlog.get_logger(__name__)

JOB_ID = "risk_assessment"

_scheduler: Optional[BackgroundScheduler] = None


def run_risk_assessment_job() -> None:
    """Scheduled entry point. Errors are logged, never raised to the scheduler."""
    try:
        result = get_risk_assessment_service().assess_all()
        logger.info("scheduled_risk_assessment_finished", updated=result.updated, errors=result.errors)
    except Exception as e:
        logger.error("scheduled_risk_assessment_failed", error=str(e), error_type=type(e).__name__)


def start_risk_scheduler() -> Optional[BackgroundScheduler]:
    """
    Start the interval job if enabled.

    Returns:
        The running scheduler, or None when disabled
    """
    global _scheduler

    if not settings.risk_scheduler_enabled:
        logger.info("risk_scheduler_disabled")
        return None

    if _scheduler is not None:
        return _scheduler

    interval = settings.risk_assessment_interval_minutes
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_risk_assessment_job,
        "interval",
        minutes=interval,
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    _scheduler = scheduler

    logger.info("risk_scheduler_started", interval_minutes=interval)
    return scheduler


def stop_risk_scheduler() -> None:
    """Shut the scheduler down without waiting for a running job."""
    global _scheduler
    if _scheduler is None:
        return
    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("risk_scheduler_stopped")
