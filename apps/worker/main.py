"""Celery worker entrypoint.

Run with:
    celery -A apps.worker.main:celery_app worker -Q generation,default --concurrency=1 --loglevel=info
    celery -A apps.worker.main:celery_app beat --loglevel=info

This module imports the Celery app and explicitly registers all tasks.
Task definitions are in the pagegen.tasks package - no autodiscovery.

Logging Convention:
- Task log entries include request_id, task_name, task_id and page_id when available
- process_queued_page receives the request_id of whoever armed its trigger
- Use configure_task_logging() at the start of each task to set up context

Queue Configuration:
- generation: Queued page generation (process_queued_page)
- default: Maintenance (cleanup_generation_history) and related-link images
  (generate_related_link_images)

Concurrency Notes:
- The global rate gate admits one generation per GENERATION_RATE_LIMIT_SECONDS
  regardless of worker count; extra concurrency only adds rescheduling churn
"""

from celery.signals import worker_process_init

from pagegen.celery import celery_app
from pagegen.logging import configure_logging, get_logger

# =============================================================================
# Task Registration (explicit imports - no autodiscovery)
# =============================================================================

from pagegen.tasks import (  # noqa: F401
    cleanup_generation_history,
    generate_related_link_images,
    process_queued_page,
)

# =============================================================================
# Worker Lifecycle
# =============================================================================


@worker_process_init.connect
def setup_worker_logging(**kwargs):
    """Configure structlog when the worker process starts."""
    configure_logging()
    logger = get_logger(__name__)
    logger.info("celery_worker_started", queues=["generation", "default"])


# Command: celery -A apps.worker.main:celery_app worker ...
__all__ = ["celery_app"]
