"""Celery task that runs one queued generation job.

This task:
1. Opens a worker session and a shared httpx client
2. Wires the orchestrator over them
3. Runs process_queued_page (pending check, pause check, rate gate, blocks,
   finalize)

Pause and rate-limit deferrals re-arm a new trigger and return at once.
max_retries=0: a failed job is retried only by an operator (retry_failed).
"""

from datetime import UTC, datetime
from functools import lru_cache

import httpx
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from pagegen.celery import celery_app
from pagegen.config import get_settings
from pagegen.db.models import GenerationQueueItem, QueueStatus
from pagegen.db.session import get_session_factory
from pagegen.logging import clear_task_context, configure_task_logging, get_logger
from pagegen.services.generation import build_generation_service
from pagegen.services.rate_limit import create_redis_client

logger = get_logger(__name__)

HTTP_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


@lru_cache
def _worker_redis():
    """Redis client shared by every task in this worker process (None if unavailable)."""
    return create_redis_client(get_settings().redis_url)


@celery_app.task(bind=True, max_retries=0, name="process_queued_page")
def process_queued_page(self, page_id: int, request_id: str | None = None) -> dict:
    """Generate the blocks of a queued page.

    Args:
        page_id: Page whose queue item fired.
        request_id: Optional request ID for log correlation.

    Returns:
        Dict with the job outcome status.
    """
    configure_task_logging(
        request_id=request_id,
        task_name="process_queued_page",
        task_id=self.request.id,
        page_id=page_id,
    )
    logger.info("process_queued_page_started", page_id=page_id)

    session_factory = get_session_factory()
    db = session_factory()
    http_client = httpx.Client(timeout=HTTP_TIMEOUT)

    try:
        service = build_generation_service(db, http_client, redis_client=_worker_redis())
        result = service.process_queued_page(page_id)
        logger.info("process_queued_page_completed", page_id=page_id, result=result)
        return result
    except Exception as e:
        logger.error("process_queued_page_failed", page_id=page_id, error=str(e))
        db.rollback()
        _mark_failed(db, page_id, f"Unexpected error: {e}")
        raise
    finally:
        http_client.close()
        db.close()
        clear_task_context()


def _mark_failed(db, page_id: int, message: str) -> None:
    """Fail the page's in-flight item after an unexpected error."""
    try:
        db.execute(
            update(GenerationQueueItem)
            .where(
                GenerationQueueItem.page_id == page_id,
                GenerationQueueItem.status == QueueStatus.processing.value,
            )
            .values(status=QueueStatus.failed.value, error=message, updated_at=datetime.now(UTC))
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("process_queued_page_mark_failed_error", page_id=page_id, error=str(e))
