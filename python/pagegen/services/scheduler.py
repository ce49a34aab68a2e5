"""One-shot triggers for queued page generation.

The work queue arms one trigger per pending item. A trigger is a Celery
task sent with an ETA; its task id is the trigger handle stored on the
queue item. Cancelling revokes the task.

The current request id rides along as a task kwarg, so worker logs
correlate with the API call (or earlier task) that armed the trigger.

Triggers never block: rescheduling sends a new task and returns at once.

A finished job can also hand its page to the related-link image task, which
runs outside the generation queue and its rate gate.
"""

from datetime import UTC, datetime, timedelta
from typing import Protocol

from pagegen.logging import get_logger, get_request_id

logger = get_logger(__name__)

PROCESS_TASK_NAME = "process_queued_page"
LINK_IMAGES_TASK_NAME = "generate_related_link_images"

_LIVE_STATES = frozenset({"PENDING", "RECEIVED", "STARTED", "RETRY"})


class Scheduler(Protocol):
    def schedule(self, page_id: int, at: datetime) -> str: ...

    def reschedule(self, page_id: int, delay_seconds: float) -> str: ...

    def cancel(self, trigger_id: str) -> None: ...

    def is_scheduled(self, trigger_id: str) -> bool: ...

    def schedule_link_images(self, page_id: int) -> str: ...


class CelerySchedulerImpl:
    """Scheduler backed by Celery ETA tasks."""

    def __init__(self, celery_app=None):
        if celery_app is None:
            from pagegen.celery import celery_app
        self._app = celery_app

    def schedule(self, page_id: int, at: datetime) -> str:
        result = self._app.send_task(
            PROCESS_TASK_NAME,
            args=[page_id],
            kwargs={"request_id": get_request_id()},
            eta=at,
        )
        logger.debug("scheduler.armed", page_id=page_id, trigger_id=result.id, eta=at.isoformat())
        return result.id

    def reschedule(self, page_id: int, delay_seconds: float) -> str:
        at = datetime.now(UTC) + timedelta(seconds=max(delay_seconds, 0))
        return self.schedule(page_id, at)

    def cancel(self, trigger_id: str) -> None:
        self._app.control.revoke(trigger_id)
        logger.debug("scheduler.cancelled", trigger_id=trigger_id)

    def is_scheduled(self, trigger_id: str) -> bool:
        return self._app.AsyncResult(trigger_id).state in _LIVE_STATES

    def schedule_link_images(self, page_id: int) -> str:
        """Send the related-link image job for a finished page (runs now)."""
        result = self._app.send_task(
            LINK_IMAGES_TASK_NAME,
            args=[page_id],
            kwargs={"request_id": get_request_id()},
        )
        logger.debug("scheduler.link_images_armed", page_id=page_id, task_id=result.id)
        return result.id
