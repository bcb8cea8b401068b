"""
ImmunoTrack - Notification Tasks
Celery task for the daily notification pass
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import sessionmaker

from immunotrack.celery_app import celery_app
from immunotrack.config import ScheduleTunables, settings
from immunotrack.engine import ImmunizationEngine
from immunotrack.services.repository import ImmunizationRepository

logger = logging.getLogger(__name__)


def execute_daily_pass(
    session_factory: sessionmaker,
    reference_date: date,
    tunables: Optional[ScheduleTunables] = None,
    now: Optional[datetime] = None
) -> dict:
    """
    Lock, load a snapshot, run the scheduler and persist its decisions in one transaction

    Args:
        session_factory: Bound SQLAlchemy session factory
        reference_date: Date of the pass
        tunables: Engine tunables (defaults to the configured ones)
        now: Creation timestamp for new notifications

    Returns:
        Pass summary as a JSON-ready dictionary
    """
    with session_factory() as session:
        repository = ImmunizationRepository(session)
        # Held until commit so overlapping passes read each other's writes
        if repository.lock_daily_pass():
            logger.info("Daily pass lock acquired")
        catalog = repository.load_catalog(tunables or settings.schedule_tunables())
        engine = ImmunizationEngine(catalog)

        result = engine.scheduler.run_daily_pass(
            repository.active_children_with_history(),
            repository.all_notifications(),
            reference_date,
            now
        )
        repository.apply_transitions(result.expired)
        repository.add_notifications(result.created)
        repository.commit()

    return result.summary.model_dump(mode="json")


@celery_app.task(name="immunotrack.tasks.notifications.run_daily_pass", bind=True, max_retries=3)
def run_daily_pass_task(self, reference_date: Optional[str] = None) -> dict:
    """
    Daily notification pass

    Args:
        reference_date: ISO date of the pass (defaults to today)

    Returns:
        Pass summary as dictionary
    """
    try:
        day = date.fromisoformat(reference_date) if reference_date else date.today()
        logger.info(f"Starting daily notification pass for {day.isoformat()}")

        from immunotrack.services.database import build_session_factory
        summary = execute_daily_pass(build_session_factory(), day)

        logger.info(
            f"✓ Daily pass complete: {summary['total_created']} created, {summary['expired']} expired"
        )
        return summary

    except Exception as e:
        logger.error(f"Daily notification pass failed: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))
