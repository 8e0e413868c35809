"""
Background scheduler. Runs periodic jobs inside the FastAPI process.

Jobs:
  - Reminder sweep (at startup, then every REMINDER_SWEEP_INTERVAL_MINUTES)
"""
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from tesoreria.config import get_settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True, timezone="UTC")


def _run_reminder_sweep():
    from tesoreria.infrastructure.db.session import get_session_factory
    from tesoreria.application.reminders import ReminderSweepUseCase

    Session = get_session_factory()
    db = Session()
    try:
        ReminderSweepUseCase(db).execute()
    except Exception:
        logger.exception("Reminder sweep job failed")
    finally:
        db.close()


def start_scheduler():
    """Start the background scheduler with all periodic jobs."""
    interval = get_settings().REMINDER_SWEEP_INTERVAL_MINUTES
    scheduler.add_job(
        _run_reminder_sweep,
        "interval",
        minutes=interval,
        next_run_time=datetime.now(timezone.utc),
        id="reminder_sweep",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info("Scheduler started: reminder_sweep (every %d min)", interval)


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
