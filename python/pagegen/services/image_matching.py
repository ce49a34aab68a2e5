"""Library image matching and alt text assignment.

find_matching_image walks a cascade and returns the first tier with hits:

    0. folder: each candidate phrase (potential_folders, focus_keyword,
       topic, category) as a single slug, library images filed in a folder
       first, then any image carrying the tag
    1. every extracted tag
    2. the first two tags
    3. the first tag
    4. DEFAULT_IMAGE_ID, if that image still exists

Tiers 1-3 prefer library images and fall back to any image. Within a tier
the image is picked at random.
"""

import hashlib
import json
import random
import re
import time
from dataclasses import dataclass, field

from pagegen.config import Settings, get_settings
from pagegen.logging import get_logger
from pagegen.services.host import ContentHost
from pagegen.services.llm import ContentProviderClient, ProviderError

logger = get_logger(__name__)

ALT_TEXT_MAX_LENGTH = 125
MIN_TAG_LENGTH = 3

AI_ALT_TEXT_META_KEY = "_ai_generated_alt_text"
AI_ALT_TEXT_AT_META_KEY = "_ai_alt_text_generated_at"
AI_ALT_TEXT_HASH_META_KEY = "_ai_alt_text_context_hash"

_SPLIT_RE = re.compile(r"[\s\-_]+")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class ImageContext:
    """What an image should depict, taken from the page being generated."""

    focus_keyword: str = ""
    topic: str = ""
    category: str = ""
    page_title: str = ""
    potential_folders: list[str] = field(default_factory=list)


def slugify(text: str) -> str:
    return _NON_SLUG_RE.sub("-", text.lower()).strip("-")


def extract_tags(context: ImageContext) -> list[str]:
    """Split focus keyword, topic and category into unique tag slugs of 3+ chars."""
    tags: list[str] = []
    for phrase in (context.focus_keyword, context.topic, context.category):
        if not phrase:
            continue
        for word in _SPLIT_RE.split(phrase):
            slug = slugify(word)
            if len(slug) >= MIN_TAG_LENGTH and slug not in tags:
                tags.append(slug)
    return tags


def folder_candidates(context: ImageContext) -> list[str]:
    phrases = [*context.potential_folders, context.focus_keyword, context.topic, context.category]
    seen: list[str] = []
    for phrase in phrases:
        if phrase and phrase not in seen:
            seen.append(phrase)
    return seen


def context_hash(context: ImageContext) -> str:
    payload = json.dumps({"focus_keyword": context.focus_keyword, "page_title": context.page_title})
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def tag_alt_text(tags: list[str], page_title: str = "") -> str:
    """Alt text built from image tags ("mens", "gold-ring" -> "Men's Gold ring")."""
    if not tags:
        return page_title.strip()

    parts = []
    for tag in tags:
        lowered = tag.lower()
        if lowered == "mens":
            parts.append("Men's")
        elif lowered == "womens":
            parts.append("Women's")
        else:
            parts.append(tag[:1].upper() + tag[1:])

    alt = " ".join(parts).replace("-", " ")
    if len(alt) > ALT_TEXT_MAX_LENGTH:
        alt = alt[:ALT_TEXT_MAX_LENGTH]
        last_space = alt.rfind(" ")
        if last_space > 0:
            alt = alt[:last_space]
    return alt.strip()


class ImageMatcher:
    """Finds library images for a page and writes their alt text."""

    def __init__(
        self,
        host: ContentHost,
        *,
        provider: ContentProviderClient | None = None,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ):
        self._host = host
        self._provider = provider
        self._settings = settings or get_settings()
        self._rng = rng or random.Random()

    # =========================================================================
    # Matching
    # =========================================================================

    def find_matching_image(self, context: ImageContext) -> int | None:
        tags = extract_tags(context)
        if not tags:
            logger.debug("image_match.attempt", tier=4, tags=[], found=0, selected=None)
            return self._default_image()

        selected = self._match_by_folder(context)
        if selected is not None:
            return selected

        for tier, subset in ((1, tags), (2, tags[:2]), (3, tags[:1])):
            if tier == 2 and len(tags) < 2:
                continue
            selected = self._attempt(tier, subset)
            if selected is not None:
                return selected

        default_id = self._default_image()
        logger.debug(
            "image_match.attempt",
            tier=4,
            tags=tags,
            found=1 if default_id else 0,
            selected=default_id,
        )
        return default_id

    def _match_by_folder(self, context: ImageContext) -> int | None:
        for phrase in folder_candidates(context):
            slug = slugify(phrase)
            if not slug:
                continue
            matches = self._host.find_images([slug], library_only=True, require_folder=True)
            if not matches:
                matches = self._host.find_images([slug], library_only=False)
            if matches:
                selected = self._rng.choice(matches)
                logger.debug(
                    "image_match.attempt", tier=0, tags=[slug], found=len(matches), selected=selected
                )
                return selected
        return None

    def _attempt(self, tier: int, tags: list[str]) -> int | None:
        matches = self._host.find_images(tags, library_only=True)
        if not matches:
            matches = self._host.find_images(tags, library_only=False)
        selected = self._rng.choice(matches) if matches else None
        logger.debug(
            "image_match.attempt", tier=tier, tags=tags, found=len(matches), selected=selected
        )
        return selected

    def _default_image(self) -> int | None:
        default_id = self._settings.default_image_id
        if default_id and self._host.image_exists(default_id):
            return default_id
        return None

    # =========================================================================
    # Alt text
    # =========================================================================

    def assign_image_with_metadata(self, image_id: int, page_id: int, context: ImageContext) -> bool:
        """Write alt text for an image chosen for `page_id` and clear caption/description.

        With USE_AI_ALT_TEXT the provider writes the alt text; on failure the
        tag-based text is used when AI_ALT_TEXT_FALLBACK is on, else it is left empty.

        Returns:
            False if the image no longer exists.
        """
        image = self._host.get_image(image_id)
        if image is None:
            return False

        if self._settings.use_ai_alt_text and self._provider is not None:
            try:
                alt_text = self._ai_alt_text(image_id, context)
            except ProviderError as e:
                logger.warning(
                    "image_alt_text.ai_failed",
                    image_id=image_id,
                    page_id=page_id,
                    error_code=e.code.value,
                )
                alt_text = (
                    tag_alt_text(image.tags, context.page_title)
                    if self._settings.ai_alt_text_fallback
                    else ""
                )
        else:
            alt_text = tag_alt_text(image.tags, context.page_title)

        self._host.update_image_text(image_id, alt_text=alt_text, caption="", description="")
        logger.info("image_alt_text.assigned", image_id=image_id, page_id=page_id)
        return True

    def _ai_alt_text(self, image_id: int, context: ImageContext) -> str:
        expected_hash = context_hash(context)
        cached = self._host.get_image_meta(image_id, AI_ALT_TEXT_META_KEY)
        if cached and self._host.get_image_meta(image_id, AI_ALT_TEXT_HASH_META_KEY) == expected_hash:
            return cached

        image = self._host.get_image(image_id)
        alt_text = self._provider.generate_alt_text(
            {
                "image_title": image.title if image else "",
                "tags": image.tags if image else [],
                "page_title": context.page_title,
                "focus_keyword": context.focus_keyword,
                "topic": context.topic,
            }
        )

        self._host.update_image_meta(image_id, AI_ALT_TEXT_META_KEY, alt_text)
        self._host.update_image_meta(image_id, AI_ALT_TEXT_AT_META_KEY, int(time.time()))
        self._host.update_image_meta(image_id, AI_ALT_TEXT_HASH_META_KEY, expected_hash)
        return alt_text

    def clear_alt_text_cache(self, image_id: int) -> None:
        for key in (AI_ALT_TEXT_META_KEY, AI_ALT_TEXT_AT_META_KEY, AI_ALT_TEXT_HASH_META_KEY):
            self._host.update_image_meta(image_id, key, None)
        logger.info("image_alt_text.cache_cleared", image_id=image_id)
