"""Runs once a day: generate tomorrow's slots for every active business."""
import logging

from scheduling.generator import generate_for_all

logger = logging.getLogger(__name__)

JOB_ID = "daily_slot_generation"


def run_daily_slot_generation(app) -> list:
    with app.app_context():
        outcomes = generate_for_all()
        failed = [o for o in outcomes if not o["success"]]
        logger.info(
            "Daily slot generation finished: %s businesses, %s failed", len(outcomes), len(failed)
        )
        return outcomes


def schedule_daily_slot_generation(scheduler, app):
    scheduler.add_job(
        run_daily_slot_generation,
        "cron",
        hour=app.config["SLOT_GENERATION_HOUR"],
        minute=app.config["SLOT_GENERATION_MINUTE"],
        id=JOB_ID,
        args=[app],
        replace_existing=True,
        coalesce=True,
    )
