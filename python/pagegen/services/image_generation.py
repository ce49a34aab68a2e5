"""AI image generation with a context-hash cache.

Images for related links are generated in two stages:
1. A chat call turns the link's title and category into an image prompt
2. The image call renders it; the result is downloaded, checked with Pillow,
   uploaded to storage and attached as a new (non-library) image

Each result is cached in image_cache under
md5(lower(trim(title)) + "|" + lower(trim(category))), so links with the same
title and category share one image across pages.

Generation cost is tracked in generation_counters at a flat rate per image.
"""

import hashlib
import io
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx
from PIL import Image as PILImage
from PIL import UnidentifiedImageError
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pagegen.config import Settings, get_settings
from pagegen.db.models import GenerationCounter, ImageCacheRecord
from pagegen.logging import get_logger
from pagegen.services.host import ContentHost, SqlContentHost
from pagegen.services.llm import (
    ContentProviderClient,
    GenerationOptions,
    ProviderError,
    create_provider_client,
)
from pagegen.services.redact import safe_kv
from pagegen.storage import (
    StorageClientBase,
    StorageError,
    build_image_path,
    get_image_extension,
    get_storage_client,
)

logger = get_logger(__name__)

# dall-e-3 1024x1024 standard ($0.040) plus the prompt call (~$0.0015)
COST_PER_IMAGE = 0.0415

COST_COUNTER_KEY = "image_generation_cost"
COUNT_COUNTER_KEY = "image_generation_count"

PROMPT_OPTIONS = GenerationOptions(
    model="gpt-4",
    temperature=0.7,
    max_tokens=200,
    frequency_penalty=0.0,
    presence_penalty=0.0,
    system_message=(
        "You write prompts for an image generation model. Describe one clean, "
        "photographic product or lifestyle scene. No text, logos or watermarks "
        "in the image. Reply with the prompt only."
    ),
)

_FORMAT_CONTENT_TYPES = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


class InvalidImageError(Exception):
    """Downloaded bytes are not a supported image."""


def image_context_hash(title: str, category: str) -> str:
    normalized = f"{title.strip().lower()}|{category.strip().lower()}"
    return hashlib.md5(normalized.encode("utf-8")).hexdigest()


def build_image_prompt_request(page_title: str, title: str, category: str, description: str) -> str:
    lines = [f'Write an image prompt for a link card titled "{title}".', f"Category: {category}"]
    if description:
        lines.append(f"Description: {description}")
    if page_title:
        lines.append(f'The card appears on a page titled "{page_title}".')
    lines.append("Keep it under 60 words.")
    return "\n".join(lines)


def inspect_image(content: bytes) -> str:
    """Return the content type of an image, verifying it decodes.

    Raises:
        InvalidImageError: If Pillow cannot identify or verify the image.
    """
    try:
        with PILImage.open(io.BytesIO(content)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise InvalidImageError(f"Downloaded file is not a valid image: {e}") from e

    if fmt not in _FORMAT_CONTENT_TYPES:
        raise InvalidImageError(f"Unsupported image format: {fmt}")
    return _FORMAT_CONTENT_TYPES[fmt]


@dataclass(frozen=True)
class ImageCostStats:
    total_cost: float
    total_generated: int
    unique_cached: int
    total_usages: int
    cache_efficiency: float
    cost_per_image: float
    estimated_savings: float

    def to_dict(self) -> dict:
        return {
            "total_cost": round(self.total_cost, 2),
            "total_generated": self.total_generated,
            "unique_cached": self.unique_cached,
            "total_usages": self.total_usages,
            "cache_efficiency": round(self.cache_efficiency, 1),
            "cost_per_image": round(self.cost_per_image, 4),
            "estimated_savings": round(self.estimated_savings, 2),
        }


class ImageGenerator:
    def __init__(
        self,
        db: Session,
        host: ContentHost,
        provider: ContentProviderClient,
        storage: StorageClientBase,
        http_client: httpx.Client,
        *,
        settings: Settings | None = None,
    ):
        self._db = db
        self._host = host
        self._provider = provider
        self._storage = storage
        self._http = http_client
        self._settings = settings or get_settings()

    def find_or_generate_image(
        self,
        title: str,
        category: str,
        *,
        page_title: str = "",
        description: str = "",
    ) -> int | None:
        """Return a cached image for (title, category), generating one on a miss.

        Returns None if generation fails at any stage; the failure is logged.
        """
        context_hash = image_context_hash(title, category)

        cached_id = self._use_cached(context_hash)
        if cached_id is not None:
            logger.info("image_generation.cache_hit", context_hash=context_hash, image_id=cached_id)
            return cached_id

        try:
            prompt_response = self._provider.generate(
                build_image_prompt_request(page_title, title, category, description),
                PROMPT_OPTIONS,
            )
            image_prompt = prompt_response.content.strip()
            image_url = self._provider.generate_image(image_prompt)
            image_id = self._store_image(image_url, title, category, context_hash)
        except (ProviderError, httpx.HTTPError, InvalidImageError, StorageError) as e:
            logger.warning(
                "image_generation.failed",
                context_hash=context_hash,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None

        self._cache_image(context_hash, title, category, image_prompt, image_id)
        self._track_cost()
        logger.info(
            "image_generation.generated",
            **safe_kv(
                context_hash=context_hash, image_id=image_id, image_prompt_chars=len(image_prompt)
            ),
        )
        return image_id

    def is_cached(self, title: str, category: str) -> bool:
        """Whether a usable cached image exists for (title, category)."""
        record = self._db.scalar(
            select(ImageCacheRecord).where(
                ImageCacheRecord.context_hash == image_context_hash(title, category)
            )
        )
        return record is not None and self._host.image_exists(record.attachment_id)

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_cost_stats(self) -> ImageCostStats:
        total_cost = self._counter(COST_COUNTER_KEY)
        total_generated = int(self._counter(COUNT_COUNTER_KEY))
        unique_cached = int(self._db.scalar(select(func.count(ImageCacheRecord.id))) or 0)
        total_usages = int(
            self._db.scalar(select(func.coalesce(func.sum(ImageCacheRecord.usage_count), 0))) or 0
        )
        reused = total_usages - total_generated
        return ImageCostStats(
            total_cost=total_cost,
            total_generated=total_generated,
            unique_cached=unique_cached,
            total_usages=total_usages,
            cache_efficiency=(reused / total_usages * 100) if total_usages > 0 else 0.0,
            cost_per_image=(total_cost / total_generated) if total_generated > 0 else 0.0,
            estimated_savings=max(reused, 0) * COST_PER_IMAGE,
        )

    def clear_cache(self) -> int:
        """Drop every cache row (images themselves stay in the library)."""
        result = self._db.execute(delete(ImageCacheRecord))
        self._db.commit()
        return result.rowcount or 0

    def get_most_used_images(self, limit: int = 10) -> list[ImageCacheRecord]:
        return list(
            self._db.scalars(
                select(ImageCacheRecord)
                .order_by(ImageCacheRecord.usage_count.desc(), ImageCacheRecord.id)
                .limit(limit)
            )
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _use_cached(self, context_hash: str) -> int | None:
        record = self._db.scalar(
            select(ImageCacheRecord).where(ImageCacheRecord.context_hash == context_hash)
        )
        if record is None or not self._host.image_exists(record.attachment_id):
            return None

        self._db.execute(
            update(ImageCacheRecord)
            .where(ImageCacheRecord.id == record.id)
            .values(usage_count=ImageCacheRecord.usage_count + 1, last_used=datetime.now(UTC))
        )
        self._db.commit()
        return record.attachment_id

    def _store_image(self, image_url: str, title: str, category: str, context_hash: str) -> int:
        response = self._http.get(image_url, timeout=60.0)
        response.raise_for_status()
        content = response.content
        if len(content) > self._settings.max_image_bytes:
            raise InvalidImageError(f"Image exceeds {self._settings.max_image_bytes} bytes")

        content_type = inspect_image(content)
        path = build_image_path(context_hash, get_image_extension(content_type))
        self._storage.put_object(path, content, content_type)

        return self._host.create_image(
            title=f"{title} {int(time.time())}",
            storage_path=path,
            content_type=content_type,
            source_url=self._storage.public_url(path),
            tags=[category.strip().lower()] if category.strip() else [],
            is_library=False,
        )

    def _cache_image(
        self, context_hash: str, title: str, category: str, prompt: str, image_id: int
    ) -> None:
        now = datetime.now(UTC)
        record = self._db.scalar(
            select(ImageCacheRecord).where(ImageCacheRecord.context_hash == context_hash)
        )
        if record is None:
            record = ImageCacheRecord(context_hash=context_hash, title=title, category=category)
            self._db.add(record)
        record.generation_prompt = prompt
        record.attachment_id = image_id
        record.usage_count = 1
        record.created_at = now
        record.last_used = now
        try:
            self._db.flush()
            self._db.commit()
        except IntegrityError:
            # Another worker cached the same context first; keep its row
            self._db.rollback()

    def _track_cost(self) -> None:
        self._increment(COST_COUNTER_KEY, COST_PER_IMAGE)
        self._increment(COUNT_COUNTER_KEY, 1)
        self._db.commit()

    def _increment(self, key: str, amount: float) -> None:
        result = self._db.execute(
            update(GenerationCounter)
            .where(GenerationCounter.key == key)
            .values(value=GenerationCounter.value + amount)
        )
        if not result.rowcount:
            self._db.add(GenerationCounter(key=key, value=amount))
            self._db.flush()

    def _counter(self, key: str) -> float:
        value = self._db.scalar(select(GenerationCounter.value).where(GenerationCounter.key == key))
        return float(value or 0.0)


# =============================================================================
# Related links
# =============================================================================


@dataclass
class LinkImageReport:
    generated: int = 0
    cached: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class RelatedLinksImageService:
    """Fills `link_image` on the page's related links."""

    def __init__(self, host: ContentHost, generator: ImageGenerator):
        self._host = host
        self._generator = generator

    def generate_images_for_page(self, page_id: int) -> LinkImageReport:
        report = LinkImageReport()
        page = self._host.get_page(page_id)
        links = self._host.get_field(page_id, "links") or []
        if page is None or not isinstance(links, list) or not links:
            report.errors.append("No links data found")
            return report

        updated = []
        for link in links:
            link = dict(link) if isinstance(link, dict) else {}
            updated.append(link)
            title = link.get("link_title")
            category = link.get("link_category")
            if not title or not category or link.get("link_image"):
                continue

            was_cached = self._generator.is_cached(title, category)
            image_id = self._generator.find_or_generate_image(
                title,
                category,
                page_title=page.title,
                description=link.get("link_description", ""),
            )
            if image_id is None:
                report.failed += 1
                report.errors.append(f"Failed to generate image for: {title}")
                continue

            link["link_image"] = image_id
            if was_cached:
                report.cached += 1
            else:
                report.generated += 1

        self._host.update_field(page_id, "links", updated)
        logger.info(
            "links.images_generated",
            page_id=page_id,
            generated=report.generated,
            cached=report.cached,
            failed=report.failed,
        )
        return report


def build_image_generator(
    db: Session,
    http_client: httpx.Client,
    *,
    settings: Settings | None = None,
    storage: StorageClientBase | None = None,
) -> ImageGenerator:
    settings = settings or get_settings()
    return ImageGenerator(
        db,
        SqlContentHost(db, site_url=settings.site_url),
        create_provider_client(http_client, settings),
        storage or get_storage_client(settings),
        http_client,
        settings=settings,
    )
