"""Nightly cleanup of generation history.

Celery beat runs cleanup_generation_history daily (see pagegen.celery):
- completed/failed queue items scheduled more than 7 days ago
- generation log entries older than 30 days
"""

from pagegen.celery import celery_app
from pagegen.db.session import get_session_factory
from pagegen.logging import clear_task_context, configure_task_logging, get_logger
from pagegen.services.cost_tracking import CostTracker
from pagegen.services.scheduler import CelerySchedulerImpl
from pagegen.services.work_queue import WorkQueue

logger = get_logger(__name__)

QUEUE_RETENTION_DAYS = 7
LOG_RETENTION_DAYS = 30


def cleanup_history(db, scheduler=None) -> dict:
    """Prune old queue items and log entries. Returns the counts deleted."""
    queue = WorkQueue(db, scheduler or CelerySchedulerImpl())
    jobs = queue.cleanup_old_jobs(QUEUE_RETENTION_DAYS)
    logs = CostTracker(db).cleanup_old_logs(LOG_RETENTION_DAYS)
    return {"jobs_deleted": jobs, "logs_deleted": logs}


@celery_app.task(bind=True, max_retries=0, name="cleanup_generation_history")
def cleanup_generation_history(self) -> dict:
    configure_task_logging(task_name="cleanup_generation_history", task_id=self.request.id)

    session_factory = get_session_factory()
    db = session_factory()
    try:
        result = cleanup_history(db)
        logger.info("cleanup_generation_history_completed", **result)
        return result
    finally:
        db.close()
        clear_task_context()
