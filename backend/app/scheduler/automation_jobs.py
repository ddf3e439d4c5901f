"""
In-process jobs for the automation engine (registered in main.py when SCHEDULER_ENABLED):
- period lifecycle: daily at LIFECYCLE_CRON_HOUR (UTC)
- reminder tick: every REMINDER_TICK_MINUTES

Each run opens its own session and never raises into APScheduler.
"""
import logging

from app.db.session import SessionLocal
from app.services.period_lifecycle import run_period_lifecycle
from app.services.reminders.tick import run_reminder_tick

logger = logging.getLogger(__name__)


def run_period_lifecycle_job() -> None:
    db = SessionLocal()
    try:
        result = run_period_lifecycle(db)
        if result.get("created"):
            logger.info("Period lifecycle job: created %s", result["created"])
    except Exception as e:
        logger.exception("Period lifecycle job failed: %s", e)
        db.rollback()
    finally:
        db.close()


def run_reminder_tick_job() -> None:
    db = SessionLocal()
    try:
        summary = run_reminder_tick(db)
        if summary["aborted"] or summary["errors"]:
            logger.warning(
                "Reminder tick job: aborted=%s errors=%s", summary["aborted"], summary["errors"][:5]
            )
    except Exception as e:
        logger.exception("Reminder tick job failed: %s", e)
        db.rollback()
    finally:
        db.close()
