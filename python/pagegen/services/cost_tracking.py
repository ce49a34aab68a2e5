"""Cost tracking, budget enforcement and generation logging.

Every provider call is recorded in generation_logs (success or failure).
The month-to-date total of successful calls is cached in Redis and checked
against MONTHLY_BUDGET before each block.

Redis keys:
- cost:month_total:{YYYY-MM} - Cached month-to-date cost (300s TTL, dropped on every log write)
- alert:budget:{YYYY-MM} - Budget alert already sent this month
- alert:success_rate:{YYYY-MM-DD} - Low success rate alert already sent today

Fail modes:
- Redis unavailable: the total is read from the database on every check,
  and alerts are sent without de-duplication
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from pagegen.config import Settings, get_settings
from pagegen.db.models import GenerationLog, LogStatus
from pagegen.errors import BudgetExceededError
from pagegen.logging import get_logger
from pagegen.services.integrations import LogNotifier, Notifier
from pagegen.services.llm.types import DEFAULT_MODEL

logger = get_logger(__name__)

# USD per 1K tokens
MODEL_PRICING: dict[str, dict[str, float]] = {
    "gpt-4-turbo-preview": {"prompt": 0.01, "completion": 0.03},
    "gpt-4": {"prompt": 0.03, "completion": 0.06},
    "gpt-3.5-turbo": {"prompt": 0.0015, "completion": 0.002},
}

MONTH_COST_CACHE_PREFIX = "cost:month_total"
MONTH_COST_CACHE_TTL_SECONDS = 300
BUDGET_ALERT_TTL_SECONDS = 31 * 86400
SUCCESS_RATE_ALERT_TTL_SECONDS = 86400

SUCCESS_RATE_WARNING_PERCENT = 95.0
SUCCESS_RATE_ALERT_PERCENT = 80.0


@dataclass(frozen=True)
class PostStatistics:
    total_generations: int
    total_tokens: int
    total_cost: float
    avg_cost: float


def calculate_cost(prompt_tokens: int, completion_tokens: int, model: str) -> float:
    """Cost in USD for one call, rounded to 6 decimals.

    Unknown models are priced as gpt-4-turbo-preview.
    """
    pricing = MODEL_PRICING.get(model, MODEL_PRICING[DEFAULT_MODEL])
    prompt_cost = (prompt_tokens / 1000) * pricing["prompt"]
    completion_cost = (completion_tokens / 1000) * pricing["completion"]
    return round(prompt_cost + completion_cost, 6)


def month_cost_cache_key(now: datetime) -> str:
    """Redis key of the cached month-to-date total, e.g. cost:month_total:2026-03."""
    return f"{MONTH_COST_CACHE_PREFIX}:{now:%Y-%m}"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CostTracker:
    """Records provider calls and enforces the monthly budget."""

    def __init__(
        self,
        db: Session,
        *,
        settings: Settings | None = None,
        redis_client=None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._db = db
        self._settings = settings or get_settings()
        self._redis = redis_client
        self._notifier = notifier or LogNotifier()
        self._clock = clock

    @staticmethod
    def calculate_cost(prompt_tokens: int, completion_tokens: int, model: str) -> float:
        return calculate_cost(prompt_tokens, completion_tokens, model)

    # =========================================================================
    # Logging
    # =========================================================================

    def log_generation(
        self,
        *,
        page_id: int,
        block_type: str,
        status: str,
        model: str,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        total_tokens: int = 0,
        cost: float = 0.0,
        error_message: str | None = None,
        user_id: str | None = None,
    ) -> int:
        """Append a generation log entry.

        Drops the cached month total, then checks the budget alert threshold
        after a successful entry.

        Returns:
            Id of the new log row.
        """
        entry = GenerationLog(
            page_id=page_id,
            block_type=block_type,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            cost=cost,
            model=model,
            status=status,
            error_message=error_message,
            user_id=user_id,
        )
        self._db.add(entry)
        self._db.flush()
        self._db.commit()

        self._invalidate_month_cost()

        if status == LogStatus.success.value:
            self.check_budget_alert()

        return entry.id

    # =========================================================================
    # Budget
    # =========================================================================

    def get_current_month_cost(self) -> float:
        """Sum of successful log cost since the first of the current month (UTC)."""
        now = self._clock()
        cache_key = month_cost_cache_key(now)
        cached = self._cache_get(cache_key)
        if cached is not None:
            return float(cached)

        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        total = self._db.scalar(
            select(func.coalesce(func.sum(GenerationLog.cost), 0)).where(
                GenerationLog.created_at >= month_start,
                GenerationLog.status == LogStatus.success.value,
            )
        )
        cost = float(total or 0.0)
        self._cache_set(cache_key, str(cost), MONTH_COST_CACHE_TTL_SECONDS)
        return cost

    def check_budget_limit(self) -> None:
        """Raise if the month-to-date cost has reached the budget.

        Disabled when cost tracking is off; a budget of 0 means unlimited.

        Raises:
            BudgetExceededError: If current cost >= MONTHLY_BUDGET.
        """
        if not self._settings.enable_cost_tracking:
            return

        budget = float(self._settings.monthly_budget)
        if budget == 0.0:
            return

        current = self.get_current_month_cost()
        if current >= budget:
            logger.warning("budget.exceeded", current_cost=current, budget=budget)
            raise BudgetExceededError(current, budget)

    def check_budget_alert(self) -> bool:
        """Notify the operator once per month when spend crosses the alert threshold.

        Returns:
            True if a notification was sent.
        """
        if not self._settings.enable_cost_tracking:
            return False

        budget = float(self._settings.monthly_budget)
        if budget == 0.0:
            return False

        current = self.get_current_month_cost()
        percent_used = (current / budget) * 100
        if percent_used < self._settings.budget_alert_threshold_percent:
            return False

        key = f"alert:budget:{self._clock():%Y-%m}"
        if not self._claim_alert(key, BUDGET_ALERT_TTL_SECONDS):
            return False

        self._notifier.notify(
            "Budget Alert",
            f"Content generation has used {percent_used:.1f}% of the monthly budget.\n"
            f"Current spend: ${current:.2f}\n"
            f"Monthly budget: ${budget:.2f}\n"
            f"Remaining: ${budget - current:.2f}",
        )
        logger.warning(
            "budget.alert_sent",
            percent_used=round(percent_used, 1),
            current_cost=current,
            budget=budget,
        )
        return True

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_success_rate(self, limit: int = 100) -> float:
        """Success percentage over the most recent `limit` log entries.

        Returns 100.0 when there are no entries. Below 95% a warning is
        logged; below 80% the operator is notified (at most once per day).
        """
        statuses = list(
            self._db.scalars(
                select(GenerationLog.status)
                .order_by(GenerationLog.created_at.desc(), GenerationLog.id.desc())
                .limit(limit)
            )
        )
        if not statuses:
            return 100.0

        total = len(statuses)
        successful = sum(1 for s in statuses if s == LogStatus.success.value)
        rate = (successful / total) * 100

        if rate < SUCCESS_RATE_WARNING_PERCENT:
            logger.warning(
                "generation.success_rate_low",
                success_rate=round(rate, 1),
                successful=successful,
                total=total,
            )
            if rate < SUCCESS_RATE_ALERT_PERCENT:
                key = f"alert:success_rate:{self._clock():%Y-%m-%d}"
                if self._claim_alert(key, SUCCESS_RATE_ALERT_TTL_SECONDS):
                    self._notifier.notify(
                        "Low Success Rate Alert",
                        f"Success rate: {rate:.1f}%\n"
                        f"Successful: {successful}/{total} generations\n"
                        "Check provider connectivity, API key validity and parse errors.",
                    )

        return round(rate, 2)

    def get_post_statistics(self, page_id: int) -> PostStatistics:
        row = self._db.execute(
            select(
                func.count(GenerationLog.id),
                func.coalesce(func.sum(GenerationLog.total_tokens), 0),
                func.coalesce(func.sum(GenerationLog.cost), 0),
                func.coalesce(func.avg(GenerationLog.cost), 0),
            ).where(
                GenerationLog.page_id == page_id,
                GenerationLog.status == LogStatus.success.value,
            )
        ).one()
        return PostStatistics(
            total_generations=int(row[0]),
            total_tokens=int(row[1]),
            total_cost=float(row[2]),
            avg_cost=float(row[3]),
        )

    def get_post_logs(self, page_id: int) -> list[GenerationLog]:
        return list(
            self._db.scalars(
                select(GenerationLog)
                .where(GenerationLog.page_id == page_id)
                .order_by(GenerationLog.created_at.desc(), GenerationLog.id.desc())
            )
        )

    def get_logs_by_date_range(self, start: datetime, end: datetime) -> list[GenerationLog]:
        return list(
            self._db.scalars(
                select(GenerationLog)
                .where(GenerationLog.created_at.between(start, end))
                .order_by(GenerationLog.created_at.desc(), GenerationLog.id.desc())
            )
        )

    def cleanup_old_logs(self, days: int = 30) -> int:
        """Delete log entries older than `days`. Returns the number deleted."""
        cutoff = self._clock() - timedelta(days=days)
        result = self._db.execute(delete(GenerationLog).where(GenerationLog.created_at < cutoff))
        self._db.commit()
        deleted = result.rowcount or 0
        if deleted:
            self._invalidate_month_cost()
            logger.info("generation_logs.cleaned_up", deleted=deleted, days=days)
        return deleted

    # =========================================================================
    # Redis helpers (fail open)
    # =========================================================================

    def _cache_get(self, key: str) -> str | None:
        if self._redis is None:
            return None
        try:
            return self._redis.get(key)
        except Exception as e:
            logger.warning("cost_cache_read_failed", error=str(e))
            return None

    def _cache_set(self, key: str, value: str, ttl: int) -> None:
        if self._redis is None:
            return
        try:
            self._redis.set(key, value, ex=ttl)
        except Exception as e:
            logger.warning("cost_cache_write_failed", error=str(e))

    def _invalidate_month_cost(self) -> None:
        if self._redis is None:
            return
        try:
            self._redis.delete(month_cost_cache_key(self._clock()))
        except Exception as e:
            logger.warning("cost_cache_invalidate_failed", error=str(e))

    def _claim_alert(self, key: str, ttl: int) -> bool:
        """Mark an alert as sent; False if it was already sent in this window."""
        if self._redis is None:
            return True
        try:
            return bool(self._redis.set(key, "1", nx=True, ex=ttl))
        except Exception as e:
            logger.warning("alert_dedupe_failed", key=key, error=str(e))
            return True
