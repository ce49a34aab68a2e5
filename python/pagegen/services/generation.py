"""Page-level generation orchestrator.

Two entry points run a page's blocks in order through the
BlockContentGenerator:

- process_queued_page: entered from the scheduled trigger of a queue item.
  Runs only while the page has a pending item. Honors the pause flag and
  the global rate gate by rescheduling (never by blocking), then generates
  and finalizes the job.
- generate_all_blocks: interactive bulk path. Admission is capped per user
  by the BulkGenerationLimiter; progress is published to Redis after every
  block.

Block failures never abort a run. Each block yields a BlockOutcome and the
loop continues; content persisted by earlier blocks is kept. A provider
rate limit gets one wait-and-retry.
"""

import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx
from sqlalchemy.orm import Session

from pagegen.config import Settings, get_settings
from pagegen.db.models import QueueStatus
from pagegen.errors import InvalidPageError
from pagegen.logging import get_logger
from pagegen.services.block_generator import (
    INVALID_PAGE_MESSAGE,
    BlockContentGenerator,
    BlockGenerationResult,
)
from pagegen.services.block_rules import BlockRuleService
from pagegen.services.blocks import DEFAULT_BLOCK_ORDER, METADATA_BLOCK
from pagegen.services.cost_tracking import CostTracker
from pagegen.services.host import GENERATED_PAGE_TYPE, ContentHost, SqlContentHost
from pagegen.services.image_matching import ImageMatcher
from pagegen.services.integrations import (
    LinkRefresher,
    MetaSeoIntegration,
    SeoIntegration,
    TopicLinkRefresher,
)
from pagegen.services.llm import RateLimitError, create_provider_client
from pagegen.services.prompts import PromptTemplateEngine
from pagegen.services.rate_limit import BulkGenerationLimiter, get_bulk_limiter
from pagegen.services.scheduler import CelerySchedulerImpl, Scheduler
from pagegen.services.validation import ValidationService
from pagegen.services.work_queue import WorkQueue

logger = get_logger(__name__)

PAUSED_RETRY_SECONDS = 300
RATE_LIMIT_RETRY_SECONDS = 60

BLOCK_ORDER_META_KEY = "_seo_block_order"
REVIEW_STATUS = "pending"


@dataclass(frozen=True)
class BlockOutcome:
    """Result of one block: either `result` or `error` is set."""

    block_type: str
    result: BlockGenerationResult | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BulkGenerationResult:
    total_blocks: int
    successful: int = 0
    failed: dict[str, str] = field(default_factory=dict)
    total_tokens: int = 0
    total_cost: float = 0.0
    total_time: float = 0.0

    def to_dict(self) -> dict:
        return {
            "total_blocks": self.total_blocks,
            "successful": self.successful,
            "failed": dict(self.failed),
            "total_tokens": self.total_tokens,
            "total_cost": round(self.total_cost, 6),
            "total_time": self.total_time,
        }


def error_summary(outcomes: list[BlockOutcome]) -> str:
    """'Generation failed: hero: <error>, faqs: <error>'"""
    parts = [f"{o.block_type}: {o.error}" for o in outcomes if not o.ok]
    return "Generation failed: " + ", ".join(parts)


def force_metadata_first(blocks: list[str]) -> list[str]:
    return [METADATA_BLOCK] + [b for b in blocks if b != METADATA_BLOCK]


class GenerationService:
    def __init__(
        self,
        queue: WorkQueue,
        host: ContentHost,
        generator: BlockContentGenerator,
        *,
        seo: SeoIntegration | None = None,
        links: LinkRefresher | None = None,
        limiter: BulkGenerationLimiter | None = None,
        schedule_link_images: Callable[[int], str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._queue = queue
        self._host = host
        self._generator = generator
        self._seo = seo or MetaSeoIntegration(host)
        self._links = links or TopicLinkRefresher(host)
        self._limiter = limiter or get_bulk_limiter()
        self._schedule_link_images = schedule_link_images
        self._sleep = sleep
        self._clock = clock

    # =========================================================================
    # Queue path
    # =========================================================================

    def process_queued_page(self, page_id: int) -> dict:
        """Run one queued job.

        A trigger whose page has no pending item (removed, cleared, or
        already claimed by another trigger) is skipped before the pause flag
        and the rate gate are touched.

        Returns:
            Dict with the outcome status (skipped, paused, rate_limited,
            failed, completed).
        """
        item = self._queue.get_pending_item(page_id)
        if item is None:
            logger.info("generation.job.skipped", page_id=page_id, reason="no_pending_item")
            return {"status": "skipped"}

        if self._queue.is_paused():
            self._queue.reschedule(page_id, PAUSED_RETRY_SECONDS)
            logger.info("generation.job.paused", page_id=page_id, retry_in=PAUSED_RETRY_SECONDS)
            return {"status": "paused"}

        remaining = self._queue.try_acquire_rate_slot(self._clock())
        if remaining > 0:
            self._queue.reschedule(page_id, remaining)
            logger.info("generation.job.rate_limited", page_id=page_id, retry_in=round(remaining, 3))
            return {"status": "rate_limited", "retry_in": remaining}

        page = self._host.get_page(page_id)
        if page is None or page.page_type != GENERATED_PAGE_TYPE:
            self._queue.update_status(page_id, QueueStatus.failed, INVALID_PAGE_MESSAGE)
            logger.warning("generation.job.invalid_page", page_id=page_id)
            return {"status": "failed", "error": INVALID_PAGE_MESSAGE}

        blocks = self.resolve_blocks(page_id, item.block_selection)

        self._queue.update_status(page_id, QueueStatus.processing)
        logger.info("generation.job.started", page_id=page_id, blocks=blocks)

        outcomes = [self._run_block(page_id, block_type) for block_type in blocks]
        failed = [o for o in outcomes if not o.ok]

        if failed:
            message = error_summary(outcomes)
            self._queue.update_status(page_id, QueueStatus.failed, message)
            logger.warning(
                "generation.job.failed",
                page_id=page_id,
                blocks_generated=len(outcomes) - len(failed),
                blocks_failed=len(failed),
            )
            return {"status": "failed", "error": message}

        self._finalize(page_id, generated=len(outcomes))
        self._queue.update_status(page_id, QueueStatus.completed)
        logger.info("generation.job.completed", page_id=page_id, blocks_generated=len(outcomes))
        return {"status": "completed", "blocks_generated": len(outcomes)}

    def resolve_blocks(self, page_id: int, block_selection: list[str] | None) -> list[str]:
        """Explicit selection, else the page's stored order, else the default order."""
        if block_selection:
            blocks = list(block_selection)
        else:
            blocks = self._stored_block_order(page_id) or list(DEFAULT_BLOCK_ORDER)
        return force_metadata_first(blocks)

    def _stored_block_order(self, page_id: int) -> list[str] | None:
        raw = self._host.get_meta(page_id, BLOCK_ORDER_META_KEY)
        if isinstance(raw, str) and raw:
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("generation.block_order_invalid", page_id=page_id)
                return None
        if isinstance(raw, list) and raw and all(isinstance(b, str) for b in raw):
            return raw
        return None

    def _finalize(self, page_id: int, *, generated: int) -> None:
        self._host.set_page_status(page_id, REVIEW_STATUS)
        self._host.update_meta(page_id, "_auto_generated", True)
        self._host.update_meta(page_id, "_generation_date", datetime.now(UTC).isoformat())
        self._host.update_meta(page_id, "_blocks_generated", generated)
        self._host.update_meta(page_id, "_blocks_failed", 0)

        self._seo.sync_page(page_id)
        link_count = self._links.refresh_links(page_id)
        logger.info("generation.job.finalized", page_id=page_id, related_links=link_count)

        if link_count and self._schedule_link_images is not None:
            # Link images are extras; a broker error must not fail a finished job
            try:
                self._schedule_link_images(page_id)
            except Exception as e:
                logger.warning(
                    "generation.link_images.schedule_failed",
                    page_id=page_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )

    # =========================================================================
    # Bulk path
    # =========================================================================

    def generate_all_blocks(
        self, page_id: int, user_id: str, block_types: list[str] | None = None
    ) -> BulkGenerationResult:
        """Generate every block of a page now, on behalf of `user_id`.

        Raises:
            InvalidPageError: Page missing or not a generated page.
            BulkLimitError: The user already runs the maximum number of bulk generations.
        """
        page = self._host.get_page(page_id)
        if page is None or page.page_type != GENERATED_PAGE_TYPE:
            raise InvalidPageError(INVALID_PAGE_MESSAGE)

        blocks = force_metadata_first(list(block_types or DEFAULT_BLOCK_ORDER))
        self._limiter.acquire(user_id, page_id)

        start = time.monotonic()
        result = BulkGenerationResult(total_blocks=len(blocks))
        completed: list[str] = []
        logger.info("generation.bulk.started", page_id=page_id, block_count=len(blocks))

        try:
            for index, block_type in enumerate(blocks, start=1):
                outcome = self._run_block(page_id, block_type, user_id=user_id)
                if outcome.ok:
                    result.successful += 1
                    result.total_tokens += outcome.result.metadata["total_tokens"]
                    result.total_cost += outcome.result.metadata["cost"]
                    completed.append(block_type)
                else:
                    result.failed[block_type] = str(outcome.error)

                elapsed = time.monotonic() - start
                self._limiter.update_progress(
                    page_id,
                    user_id,
                    {
                        "current_block": block_type,
                        "current_index": index,
                        "total_blocks": len(blocks),
                        "percentage": round(index / len(blocks) * 100, 2),
                        "time_elapsed": round(elapsed, 2),
                        "estimated_remaining": round(elapsed / index * (len(blocks) - index), 2),
                        "completed_blocks": list(completed),
                        "failed_blocks": list(result.failed),
                    },
                )

            if result.successful:
                self._seo.sync_page(page_id)
        finally:
            self._limiter.release(user_id, page_id)
            self._limiter.clear_progress(page_id, user_id)

        result.total_time = round(time.monotonic() - start, 2)
        logger.info(
            "generation.bulk.finished",
            page_id=page_id,
            successful=result.successful,
            failed=len(result.failed),
            total_tokens=result.total_tokens,
            total_cost=round(result.total_cost, 6),
            total_time=result.total_time,
        )
        return result

    def get_progress(self, page_id: int, user_id: str) -> dict | None:
        return self._limiter.get_progress(page_id, user_id)

    # =========================================================================
    # Blocks
    # =========================================================================

    def _run_block(self, page_id: int, block_type: str, user_id: str | None = None) -> BlockOutcome:
        try:
            return BlockOutcome(block_type, result=self._generate(page_id, block_type, user_id))
        except RateLimitError as e:
            logger.warning(
                "generation.block.rate_limited",
                page_id=page_id,
                block_type=block_type,
                retry_after=e.retry_after,
                wait_seconds=RATE_LIMIT_RETRY_SECONDS,
            )
            self._sleep(RATE_LIMIT_RETRY_SECONDS)
            try:
                return BlockOutcome(block_type, result=self._generate(page_id, block_type, user_id))
            except Exception as retry_error:
                return BlockOutcome(block_type, error=retry_error)
        except Exception as e:
            return BlockOutcome(block_type, error=e)

    def _generate(self, page_id: int, block_type: str, user_id: str | None) -> BlockGenerationResult:
        return self._generator.generate_block(page_id, block_type, user_id=user_id)


def build_generation_service(
    db: Session,
    http_client: httpx.Client,
    *,
    settings: Settings | None = None,
    scheduler: Scheduler | None = None,
    redis_client=None,
    limiter: BulkGenerationLimiter | None = None,
) -> GenerationService:
    """Wire the orchestrator and its collaborators over one database session."""
    settings = settings or get_settings()
    host = SqlContentHost(db, site_url=settings.site_url)
    provider = create_provider_client(http_client, settings)

    generator = BlockContentGenerator(
        host,
        provider,
        CostTracker(db, settings=settings, redis_client=redis_client),
        ValidationService(BlockRuleService(db)),
        PromptTemplateEngine(host, settings),
        ImageMatcher(host, provider=provider, settings=settings),
        settings=settings,
    )
    scheduler = scheduler or CelerySchedulerImpl()
    queue = WorkQueue(db, scheduler, settings=settings)
    return GenerationService(
        queue,
        host,
        generator,
        limiter=limiter,
        schedule_link_images=(
            scheduler.schedule_link_images if settings.enable_link_image_generation else None
        ),
    )
