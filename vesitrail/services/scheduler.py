"""APScheduler integration for periodic booklet status reconciliation."""

import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

_scheduler = BackgroundScheduler(timezone="UTC")
_JOB_ID = "booklet_reconcile"


def init_app(app) -> None:
    """Start the scheduler and apply the current reconcile schedule."""
    if not _scheduler.running:
        _scheduler.start()
    apply_schedule(app)


def apply_schedule(app) -> None:
    """Update the reconcile job to match the current settings."""
    with app.app_context():
        from vesitrail.models import Settings
        schedule = Settings.get_reconcile_schedule()

    if _scheduler.get_job(_JOB_ID):
        _scheduler.remove_job(_JOB_ID)

    trigger = make_trigger(schedule)
    if trigger:
        _scheduler.add_job(
            run_reconcile,
            trigger=trigger,
            id=_JOB_ID,
            args=[app],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Booklet reconciliation scheduled: %s", schedule)
    else:
        logger.info("Booklet reconciliation schedule disabled.")


def make_trigger(schedule: str):
    if schedule == "hourly":
        return CronTrigger(minute=0)
    elif schedule == "daily":
        return CronTrigger(hour=2, minute=0)
    elif schedule == "weekly":
        return CronTrigger(day_of_week="sun", hour=2, minute=0)
    return None


def run_reconcile(app) -> int:
    """Recalculate every booklet status and record the outcome in settings."""
    with app.app_context():
        from vesitrail import db
        from vesitrail.models import Settings
        from vesitrail.services.booklets import BookletService

        try:
            updated = BookletService.recalculate_all_statuses()
        except Exception:
            logger.exception("Scheduled booklet reconciliation failed")
            db.session.rollback()
            return 0

        Settings.set("booklet_reconcile_last_run", datetime.now().isoformat())
        Settings.set("booklet_reconcile_last_updated", str(updated))
        return updated
