"""Bulk generation admission and progress tracking using Redis.

Limits:
- Concurrent bulk generations per user: 3 (BulkLimitError)

Redis keys:
- bulk:active:{user_id} - Set of page ids with a bulk run in flight (600s TTL)
- bulk:progress:{page_id}:{user_id} - JSON progress snapshot for the admin UI (1h TTL)

Fail modes:
- Redis unavailable: fail open for admission, progress writes are dropped

The check-then-add on the active set is advisory: two admissions racing for
the last slot can both succeed. Queue-driven generation never goes through
this limiter; the global rate gate lives in the database (see work_queue).
"""

import json

import redis

from pagegen.errors import BulkLimitError
from pagegen.logging import get_logger
from pagegen.services.redact import safe_kv

logger = get_logger(__name__)

DEFAULT_BULK_CONCURRENT_LIMIT = 3

# TTLs
BULK_ACTIVE_TTL_SECONDS = 600  # 10 minutes max for a bulk run
PROGRESS_TTL_SECONDS = 3600


def create_redis_client(redis_url: str | None):
    """Connect to Redis, returning None when unset or unreachable."""
    if not redis_url:
        return None
    try:
        client = redis.Redis.from_url(redis_url, decode_responses=True, socket_timeout=5)
        client.ping()
        logger.info("redis_client_initialized", redis_url=redis_url[:30] + "...")
        return client
    except redis.RedisError as e:
        logger.warning("redis_client_init_failed", error=str(e))
        return None


class BulkGenerationLimiter:
    """Per-user cap on concurrent bulk generations, plus progress snapshots."""

    def __init__(self, redis_client=None, concurrent_limit: int = DEFAULT_BULK_CONCURRENT_LIMIT):
        """Initialize limiter.

        Args:
            redis_client: Redis client instance (sync). If None, limits are not enforced.
            concurrent_limit: Maximum concurrent bulk runs per user.
        """
        self._redis = redis_client
        self._concurrent_limit = concurrent_limit

    @property
    def redis_available(self) -> bool:
        """Check if Redis is available."""
        if self._redis is None:
            return False
        try:
            self._redis.ping()
            return True
        except Exception:
            return False

    @staticmethod
    def _active_key(user_id: str) -> str:
        return f"bulk:active:{user_id}"

    @staticmethod
    def _progress_key(page_id: int, user_id: str) -> str:
        return f"bulk:progress:{page_id}:{user_id}"

    def acquire(self, user_id: str, page_id: int) -> None:
        """Claim a bulk slot for (user, page).

        Fails open if Redis unavailable. Re-acquiring a page the user already
        holds does not consume another slot.

        Raises:
            BulkLimitError: If the user already holds the maximum number of slots.
        """
        if not self.redis_available:
            logger.warning("bulk_limit_redis_unavailable", check="acquire")
            return  # Fail open

        try:
            key = self._active_key(user_id)
            member = str(page_id)
            if not self._redis.sismember(key, member):
                if self._redis.scard(key) >= self._concurrent_limit:
                    logger.warning("rate_limit.blocked", **safe_kv(limit_type="bulk"))
                    raise BulkLimitError(
                        f"Maximum {self._concurrent_limit} concurrent bulk generations "
                        "allowed. Please try again later."
                    )
            self._redis.sadd(key, member)
            self._redis.expire(key, BULK_ACTIVE_TTL_SECONDS)
        except BulkLimitError:
            raise
        except Exception as e:
            logger.warning("bulk_limit_check_failed", error=str(e))
            # Fail open

    def release(self, user_id: str, page_id: int) -> None:
        """Release the slot held for (user, page)."""
        if not self.redis_available:
            return

        try:
            self._redis.srem(self._active_key(user_id), str(page_id))
        except Exception as e:
            logger.warning("bulk_release_failed", user_id=user_id, page_id=page_id, error=str(e))

    def active_count(self, user_id: str) -> int:
        """Number of bulk runs the user currently holds (0 if Redis unavailable)."""
        if not self.redis_available:
            return 0
        try:
            return int(self._redis.scard(self._active_key(user_id)))
        except Exception:
            return 0

    def update_progress(self, page_id: int, user_id: str, progress: dict) -> None:
        """Store a progress snapshot for a running bulk generation."""
        if not self.redis_available:
            return

        try:
            self._redis.set(
                self._progress_key(page_id, user_id),
                json.dumps(progress),
                ex=PROGRESS_TTL_SECONDS,
            )
        except Exception as e:
            logger.warning("bulk_progress_write_failed", page_id=page_id, error=str(e))

    def get_progress(self, page_id: int, user_id: str) -> dict | None:
        """Read the latest progress snapshot, or None if there is none."""
        if not self.redis_available:
            return None

        try:
            raw = self._redis.get(self._progress_key(page_id, user_id))
        except Exception:
            return None
        if not raw:
            return None
        return json.loads(raw)

    def clear_progress(self, page_id: int, user_id: str) -> None:
        if not self.redis_available:
            return
        try:
            self._redis.delete(self._progress_key(page_id, user_id))
        except Exception as e:
            logger.warning("bulk_progress_clear_failed", page_id=page_id, error=str(e))


# Global limiter instance (initialized by app startup / worker init)
_bulk_limiter: BulkGenerationLimiter | None = None


def get_bulk_limiter() -> BulkGenerationLimiter:
    """Get the global bulk limiter instance.

    Returns a no-op limiter if not initialized (for testing without Redis).
    """
    global _bulk_limiter
    if _bulk_limiter is None:
        _bulk_limiter = BulkGenerationLimiter(redis_client=None)
    return _bulk_limiter


def set_bulk_limiter(limiter: BulkGenerationLimiter | None) -> None:
    """Set the global bulk limiter instance."""
    global _bulk_limiter
    _bulk_limiter = limiter
