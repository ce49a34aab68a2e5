"""Test helpers: in-process fakes and common row builders.

Provides:
- FakeRedis: the subset of redis-py the pipeline uses (string values,
  decode_responses semantics)
- RecordingScheduler: Scheduler that records calls instead of sending tasks
- chat_completion / image_generation_body: OpenAI response bodies for respx
- make_settings, create_page, create_image, png_bytes
"""

import io
import json
from datetime import datetime

from PIL import Image as PILImage
from sqlalchemy.orm import Session

from pagegen.config import Settings
from pagegen.db.models import Image, Page

OPENAI_BASE_URL = "https://api.openai.test/v1"
CHAT_URL = f"{OPENAI_BASE_URL}/chat/completions"
IMAGES_URL = f"{OPENAI_BASE_URL}/images/generations"


def make_settings(**overrides) -> Settings:
    """Settings for tests (aliases as keys, e.g. MONTHLY_BUDGET=10)."""
    values = {
        "DATABASE_URL": "sqlite://",
        "PAGEGEN_ENV": "test",
        "OPENAI_API_KEY": "sk-test",
        "OPENAI_BASE_URL": OPENAI_BASE_URL,
        "SITE_URL": "https://shop.test",
        "BUSINESS_NAME": "Acme Jewelers",
        "BUSINESS_TYPE": "jewelry",
    }
    values.update(overrides)
    return Settings(**values)


# =============================================================================
# Fakes
# =============================================================================


class FakeRedis:
    """In-memory stand-in for a redis.Redis(decode_responses=True) client."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.strings: dict[str, str] = {}
        self.sets: dict[str, set[str]] = {}
        self.ttls: dict[str, int] = {}

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis down")

    def ping(self) -> bool:
        self._check()
        return True

    def get(self, key: str) -> str | None:
        self._check()
        return self.strings.get(key)

    def set(self, key: str, value, ex: int | None = None, nx: bool = False):
        self._check()
        if nx and key in self.strings:
            return None
        self.strings[key] = str(value)
        if ex is not None:
            self.ttls[key] = ex
        return True

    def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            removed += int(self.strings.pop(key, None) is not None)
            removed += int(self.sets.pop(key, None) is not None)
        return removed

    def sadd(self, key: str, *members: str) -> int:
        self._check()
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(str(m) for m in members)
        return len(bucket) - before

    def srem(self, key: str, *members: str) -> int:
        self._check()
        bucket = self.sets.get(key, set())
        removed = sum(1 for m in members if str(m) in bucket)
        bucket.difference_update(str(m) for m in members)
        return removed

    def scard(self, key: str) -> int:
        self._check()
        return len(self.sets.get(key, set()))

    def sismember(self, key: str, member: str) -> bool:
        self._check()
        return str(member) in self.sets.get(key, set())

    def expire(self, key: str, seconds: int) -> bool:
        self._check()
        self.ttls[key] = seconds
        return True

    def close(self) -> None:
        pass


class RecordingScheduler:
    """Scheduler that hands out sequential trigger ids and records every call."""

    def __init__(self):
        self.scheduled: list[tuple[int, datetime, str]] = []
        self.rescheduled: list[tuple[int, float, str]] = []
        self.cancelled: list[str] = []
        self.link_images: list[int] = []
        self._next = 0

    def _new_id(self) -> str:
        self._next += 1
        return f"trigger-{self._next}"

    def schedule(self, page_id: int, at: datetime) -> str:
        trigger_id = self._new_id()
        self.scheduled.append((page_id, at, trigger_id))
        return trigger_id

    def reschedule(self, page_id: int, delay_seconds: float) -> str:
        trigger_id = self._new_id()
        self.rescheduled.append((page_id, delay_seconds, trigger_id))
        return trigger_id

    def cancel(self, trigger_id: str) -> None:
        self.cancelled.append(trigger_id)

    def is_scheduled(self, trigger_id: str) -> bool:
        armed = {t for _, _, t in self.scheduled} | {t for _, _, t in self.rescheduled}
        return trigger_id in armed and trigger_id not in self.cancelled

    def schedule_link_images(self, page_id: int) -> str:
        self.link_images.append(page_id)
        return self._new_id()


# =============================================================================
# Provider response bodies
# =============================================================================


def chat_completion(
    content: str | dict,
    *,
    prompt_tokens: int = 1000,
    completion_tokens: int = 500,
    model: str = "gpt-4-turbo-preview",
) -> dict:
    """An OpenAI chat completion body. Dict content is JSON-encoded."""
    if isinstance(content, dict):
        content = json.dumps(content)
    return {
        "id": "chatcmpl-test",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


def image_generation_body(url: str = "https://images.openai.test/img-1.png") -> dict:
    return {"created": 1700000000, "data": [{"url": url}]}


def png_bytes(size: tuple[int, int] = (4, 4)) -> bytes:
    buffer = io.BytesIO()
    PILImage.new("RGB", size, (200, 160, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


# =============================================================================
# Rows
# =============================================================================


def create_page(
    db: Session,
    title: str = "Best Gold Engagement Rings",
    *,
    slug: str | None = None,
    page_type: str = "seo-page",
    topics: list[str] | None = None,
    fields: dict | None = None,
    meta: dict | None = None,
) -> int:
    page = Page(
        title=title,
        slug=slug or title.lower().replace(" ", "-"),
        page_type=page_type,
        status="draft",
        topics=list(topics if topics is not None else ["Engagement Rings"]),
        fields=dict(fields or {}),
        meta=dict(meta or {}),
    )
    db.add(page)
    db.commit()
    return page.id


def create_image(
    db: Session,
    title: str = "Gold ring",
    *,
    tags: list[str] | None = None,
    folder: str | None = None,
    is_library: bool = True,
) -> int:
    image = Image(
        title=title,
        tags=list(tags or []),
        folder=folder,
        is_library=is_library,
        meta={},
    )
    db.add(image)
    db.commit()
    return image.id
