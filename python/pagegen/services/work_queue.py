"""Durable generation queue and the global rate gate.

Each queued page is a row in generation_queue_items. Enqueueing staggers
jobs GENERATION_RATE_LIMIT_SECONDS apart and arms one scheduled trigger per
job; there is no polling loop, so ordering across jobs is approximate
(by scheduled_at).

The pause flag and the time of the last admitted generation live in the
single generation_queue_state row (id = 1). The rate gate is a conditional
UPDATE on that row: of two workers racing for the same window, exactly one
sees rowcount 1.

State machine per item:
    pending -> processing -> completed | failed
    failed -> pending (retry_failed, operator-initiated, max 3 times)
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pagegen.config import Settings, get_settings
from pagegen.db.models import GenerationQueueItem, GenerationQueueState, QueueStatus
from pagegen.logging import get_logger
from pagegen.services.scheduler import Scheduler

logger = get_logger(__name__)

STATE_ROW_ID = 1
AVERAGE_JOB_DURATION = timedelta(minutes=5)
MAX_RETRIES = 3
DEFAULT_CLEANUP_DAYS = 7


@dataclass(frozen=True)
class QueueStats:
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.processing + self.completed + self.failed

    def to_dict(self) -> dict:
        return {
            "pending": self.pending,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
            "total": self.total,
        }


def _utcnow() -> datetime:
    return datetime.now(UTC)


class WorkQueue:
    """Queue operations used by the admin API and the orchestrator."""

    def __init__(
        self,
        db: Session,
        scheduler: Scheduler,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._db = db
        self._scheduler = scheduler
        self._settings = settings or get_settings()
        self._clock = clock

    @property
    def rate_limit_seconds(self) -> int:
        return self._settings.generation_rate_limit_seconds

    # =========================================================================
    # Items
    # =========================================================================

    def enqueue(self, page_id: int, index: int = 0, block_selection: list[str] | None = None) -> bool:
        """Queue a page for generation.

        The job is scheduled `index * rate_limit_seconds` from now, so a batch
        enqueued with consecutive indices is spread over the rate limit.

        Returns:
            False if the page already has a pending item.

        Raises:
            Whatever the scheduler raises; the committed item is then failed.
        """
        if self.get_pending_item(page_id) is not None:
            logger.info("queue.enqueue_rejected", page_id=page_id, reason="already_pending")
            return False

        scheduled_at = self._clock() + timedelta(seconds=index * self.rate_limit_seconds)
        item = GenerationQueueItem(
            page_id=page_id,
            status=QueueStatus.pending.value,
            scheduled_at=scheduled_at,
            queued_at=self._clock(),
            block_selection=list(block_selection) if block_selection is not None else None,
        )
        self._db.add(item)
        try:
            self._db.commit()
        except IntegrityError:
            # A concurrent enqueue won the partial unique index
            self._db.rollback()
            logger.info("queue.enqueue_rejected", page_id=page_id, reason="already_pending")
            return False

        self._arm_trigger(item, scheduled_at)

        logger.info(
            "queue.enqueued",
            page_id=page_id,
            index=index,
            scheduled_at=scheduled_at.isoformat(),
            block_count=len(block_selection) if block_selection is not None else None,
        )
        return True

    def update_status(self, page_id: int, status: QueueStatus | str, error: str | None = None) -> bool:
        """Set the status (and error) of the page's most recent item."""
        item = self.get_item(page_id)
        if item is None:
            return False

        item.status = QueueStatus(status).value
        item.error = error
        item.updated_at = self._clock()
        self._db.flush()
        self._db.commit()

        logger.info("queue.status_updated", page_id=page_id, status=item.status)
        return True

    def remove(self, page_id: int) -> bool:
        """Delete every item for the page, cancelling the trigger of a pending one."""
        items = list(
            self._db.scalars(
                select(GenerationQueueItem).where(GenerationQueueItem.page_id == page_id)
            )
        )
        if not items:
            return False

        for item in items:
            self._cancel_trigger(item)
            self._db.delete(item)
        self._db.commit()

        logger.info("queue.removed", page_id=page_id, removed=len(items))
        return True

    def clear(self) -> int:
        """Cancel every pending trigger and empty the queue. Returns rows deleted."""
        for item in self._db.scalars(
            select(GenerationQueueItem).where(
                GenerationQueueItem.status == QueueStatus.pending.value
            )
        ):
            self._cancel_trigger(item)

        result = self._db.execute(delete(GenerationQueueItem))
        self._db.commit()
        deleted = result.rowcount or 0
        logger.warning("queue.cleared", deleted=deleted)
        return deleted

    def get_item(self, page_id: int) -> GenerationQueueItem | None:
        """Most recent item for the page."""
        return self._db.scalar(
            select(GenerationQueueItem)
            .where(GenerationQueueItem.page_id == page_id)
            .order_by(GenerationQueueItem.id.desc())
            .limit(1)
        )

    def get_pending_item(self, page_id: int) -> GenerationQueueItem | None:
        """The page's pending item; a trigger only ever runs this one."""
        return self._db.scalar(
            select(GenerationQueueItem).where(
                GenerationQueueItem.page_id == page_id,
                GenerationQueueItem.status == QueueStatus.pending.value,
            )
        )

    def list_items(self, status: QueueStatus | str | None = None) -> list[GenerationQueueItem]:
        stmt = select(GenerationQueueItem)
        if status is not None:
            stmt = stmt.where(GenerationQueueItem.status == QueueStatus(status).value)
        stmt = stmt.order_by(GenerationQueueItem.scheduled_at, GenerationQueueItem.id)
        return list(self._db.scalars(stmt))

    def reschedule(self, page_id: int, delay_seconds: float) -> str:
        """Arm a new trigger for the page `delay_seconds` from now.

        Returns at once. The pending item, if any, records the new trigger
        and time.
        """
        trigger_id = self._scheduler.reschedule(page_id, delay_seconds)

        item = self.get_pending_item(page_id)
        if item is not None:
            item.trigger_id = trigger_id
            item.scheduled_at = self._clock() + timedelta(seconds=max(delay_seconds, 0))
            self._db.flush()
            self._db.commit()

        logger.info("queue.rescheduled", page_id=page_id, delay_seconds=round(delay_seconds, 3))
        return trigger_id

    def retry_failed(self, page_id: int, error: str | None = None) -> bool:
        """Re-arm a failed item with exponential backoff (30s, 60s, 120s).

        After MAX_RETRIES the item stays failed with a "Max retries" error.

        Returns:
            True if the item was re-armed.
        """
        item = self.get_item(page_id)
        if item is None or item.status != QueueStatus.failed.value:
            return False

        last_error = error or item.error or "Unknown error"
        if item.retry_count >= MAX_RETRIES:
            item.error = f"Max retries ({MAX_RETRIES}) exceeded. Last error: {last_error}"
            item.updated_at = self._clock()
            self._db.commit()
            logger.warning("queue.retry_exhausted", page_id=page_id, retry_count=item.retry_count)
            return False

        if self.get_pending_item(page_id) is not None:
            return False

        item.retry_count += 1
        delay = self.rate_limit_seconds * 2 ** (item.retry_count - 1)
        scheduled_at = self._clock() + timedelta(seconds=delay)
        item.status = QueueStatus.pending.value
        item.scheduled_at = scheduled_at
        item.error = last_error
        item.updated_at = self._clock()
        self._db.commit()
        self._arm_trigger(item, scheduled_at)

        logger.info(
            "queue.retry_scheduled",
            page_id=page_id,
            attempt=item.retry_count,
            max_retries=MAX_RETRIES,
            delay_seconds=delay,
        )
        return True

    def cleanup_old_jobs(self, days: int = DEFAULT_CLEANUP_DAYS) -> int:
        """Delete completed and failed items scheduled more than `days` ago."""
        cutoff = self._clock() - timedelta(days=days)
        result = self._db.execute(
            delete(GenerationQueueItem).where(
                GenerationQueueItem.status.in_(
                    [QueueStatus.completed.value, QueueStatus.failed.value]
                ),
                GenerationQueueItem.scheduled_at < cutoff,
            )
        )
        self._db.commit()
        deleted = result.rowcount or 0
        if deleted:
            logger.info("queue.cleaned_up", deleted=deleted, days=days)
        return deleted

    # =========================================================================
    # Reporting
    # =========================================================================

    def stats(self) -> QueueStats:
        rows = self._db.execute(
            select(GenerationQueueItem.status, func.count(GenerationQueueItem.id)).group_by(
                GenerationQueueItem.status
            )
        ).all()
        counts = {status: count for status, count in rows}
        return QueueStats(
            pending=counts.get(QueueStatus.pending.value, 0),
            processing=counts.get(QueueStatus.processing.value, 0),
            completed=counts.get(QueueStatus.completed.value, 0),
            failed=counts.get(QueueStatus.failed.value, 0),
        )

    def estimated_completion(self) -> datetime | None:
        """Latest pending scheduled time plus the average job duration."""
        last = self._db.scalar(
            select(func.max(GenerationQueueItem.scheduled_at)).where(
                GenerationQueueItem.status == QueueStatus.pending.value
            )
        )
        if last is None:
            return None
        if last.tzinfo is None:
            last = last.replace(tzinfo=UTC)
        return last + AVERAGE_JOB_DURATION

    # =========================================================================
    # Pause flag and rate gate
    # =========================================================================

    def pause(self) -> None:
        self._state().paused = True
        self._db.commit()
        logger.warning("queue.paused")

    def resume(self) -> None:
        self._state().paused = False
        self._db.commit()
        logger.info("queue.resumed")

    def is_paused(self) -> bool:
        state = self._db.get(GenerationQueueState, STATE_ROW_ID)
        if state is not None:
            self._db.refresh(state)
        return bool(state and state.paused)

    def try_acquire_rate_slot(self, now: float | None = None) -> float:
        """Claim the global generation window.

        Returns:
            0.0 if the window was claimed (the last-generation time is now
            `now`), otherwise the seconds left until the window opens.
        """
        now = time.time() if now is None else now
        self._state()

        window = self.rate_limit_seconds
        result = self._db.execute(
            update(GenerationQueueState)
            .where(
                GenerationQueueState.id == STATE_ROW_ID,
                or_(
                    GenerationQueueState.last_generation_at.is_(None),
                    GenerationQueueState.last_generation_at <= now - window,
                ),
            )
            .values(last_generation_at=now)
            .execution_options(synchronize_session=False)
        )
        self._db.commit()
        if result.rowcount == 1:
            return 0.0

        last = self._db.scalar(
            select(GenerationQueueState.last_generation_at).where(
                GenerationQueueState.id == STATE_ROW_ID
            )
        )
        return max((last or 0.0) + window - now, 0.0)

    # =========================================================================
    # Internals
    # =========================================================================

    def _arm_trigger(self, item: GenerationQueueItem, at: datetime) -> None:
        """Send the trigger for a committed pending item and store its id.

        The row is committed before the trigger exists, so a worker firing at
        once finds it. If the scheduler raises, the item is failed and the
        error propagates.
        """
        try:
            trigger_id = self._scheduler.schedule(item.page_id, at)
        except Exception as e:
            item.status = QueueStatus.failed.value
            item.error = f"Scheduling failed: {e}"
            item.updated_at = self._clock()
            self._db.commit()
            logger.error("queue.schedule_failed", page_id=item.page_id, error=str(e))
            raise

        item.trigger_id = trigger_id
        self._db.commit()

    def _cancel_trigger(self, item: GenerationQueueItem) -> None:
        if item.status == QueueStatus.pending.value and item.trigger_id:
            self._scheduler.cancel(item.trigger_id)

    def _state(self) -> GenerationQueueState:
        """Load the state row, creating it on first use."""
        state = self._db.get(GenerationQueueState, STATE_ROW_ID)
        if state is not None:
            return state

        state = GenerationQueueState(id=STATE_ROW_ID, paused=False)
        self._db.add(state)
        try:
            self._db.flush()
            self._db.commit()
        except IntegrityError:
            self._db.rollback()
            state = self._db.get(GenerationQueueState, STATE_ROW_ID)
        return state
