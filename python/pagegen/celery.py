"""Celery application configuration.

Central configuration for Celery used by both API (for enqueuing)
and worker (for executing tasks).

Usage:
    from pagegen.celery import celery_app

    # Arm a generation trigger:
    celery_app.send_task("process_queued_page", args=[page_id], eta=scheduled_at)

    # Or import task directly:
    from pagegen.tasks import process_queued_page
    process_queued_page.apply_async(args=[page_id], eta=scheduled_at)
"""

from celery import Celery
from celery.schedules import crontab

from pagegen.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery("pagegen")

# Configure from settings
celery_app.conf.broker_url = settings.effective_celery_broker_url
celery_app.conf.result_backend = settings.effective_celery_result_backend

# Task configuration
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

# Generation runs one page at a time on its own queue
celery_app.conf.task_routes = {
    "process_queued_page": {"queue": "generation"},
}

# Default queue
celery_app.conf.task_default_queue = "default"

# Nightly cleanup of old queue items and generation logs
celery_app.conf.beat_schedule = {
    "cleanup-generation-history": {
        "task": "cleanup_generation_history",
        "schedule": crontab(hour=3, minute=0),
    },
}

# For testing: allow eager mode (synchronous execution)
celery_app.conf.task_always_eager = False


def get_celery_app() -> Celery:
    """Get the Celery application instance.

    Returns:
        Configured Celery application.
    """
    return celery_app
