"""
ImmunoTrack - Celery Application Configuration
Runs the daily notification pass and other background jobs
"""

import logging
from celery import Celery
from celery.schedules import crontab
from immunotrack.config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create Celery application
celery_app = Celery(
    "immunotrack",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "immunotrack.tasks.notifications",
    ]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.task_time_limit,
    task_soft_time_limit=settings.task_soft_time_limit,
    worker_prefetch_multiplier=settings.worker_prefetch_multiplier,
    worker_max_tasks_per_child=1000,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    task_always_eager=settings.celery_task_always_eager,
)

celery_app.conf.task_routes = {
    "immunotrack.tasks.notifications.*": {"queue": "notifications"},
}

# One pass per day; the pass itself is idempotent for a given date
celery_app.conf.beat_schedule = {
    "daily-notification-pass": {
        "task": "immunotrack.tasks.notifications.run_daily_pass",
        "schedule": crontab(hour=settings.daily_pass_hour, minute=0),
    },
}

logger.info("Celery application configured successfully")
logger.info(f"Broker: {settings.celery_broker_url}")
logger.info(f"Daily notification pass at {settings.daily_pass_hour:02d}:00 UTC")

if __name__ == "__main__":
    celery_app.start()
