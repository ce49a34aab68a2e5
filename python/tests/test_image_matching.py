"""Tests for library image matching and alt text.

Verifies:
- Tag extraction (3+ char slugs, unique, in phrase order)
- Cascade: folder phrase, all tags, first two, first tag, default image
- Library images are preferred over loose attachments
- Tag-based alt text, AI alt text with context-hash caching, fallback on failure
"""

import json
import random

import pytest
import respx

from pagegen.services.image_matching import (
    AI_ALT_TEXT_HASH_META_KEY,
    AI_ALT_TEXT_META_KEY,
    ImageContext,
    ImageMatcher,
    context_hash,
    extract_tags,
    folder_candidates,
    tag_alt_text,
)
from pagegen.services.llm import ContentProviderClient, OpenAIAdapter
from tests.helpers import CHAT_URL, OPENAI_BASE_URL, chat_completion, create_image, make_settings


@pytest.fixture
def provider(http_client) -> ContentProviderClient:
    return ContentProviderClient(
        OpenAIAdapter(http_client, OPENAI_BASE_URL), "sk-test", sleep=lambda _: None
    )


def make_matcher(host, provider=None, **settings) -> ImageMatcher:
    return ImageMatcher(
        host, provider=provider, settings=make_settings(**settings), rng=random.Random(0)
    )


CONTEXT = ImageContext(
    focus_keyword="gold engagement rings",
    topic="Engagement Rings",
    category="",
    page_title="Best Gold Engagement Rings",
)


# =============================================================================
# Tags
# =============================================================================


class TestTags:
    def test_extract_tags(self):
        context = ImageContext(focus_keyword="14k gold-rings", topic="Rings for Men", category="a")
        assert extract_tags(context) == ["14k", "gold", "rings", "for", "men"]

    def test_folder_candidates_deduplicate(self):
        context = ImageContext(
            focus_keyword="gold rings", topic="gold rings", potential_folders=["Bridal"]
        )
        assert folder_candidates(context) == ["Bridal", "gold rings"]

    def test_tag_alt_text(self):
        assert tag_alt_text(["mens", "gold-ring"]) == "Men's Gold ring"
        assert tag_alt_text(["womens"]) == "Women's"
        assert tag_alt_text([], " Page Title ") == "Page Title"

    def test_tag_alt_text_caps_on_word(self):
        alt = tag_alt_text(["abcdefghij"] * 20)
        assert len(alt) <= 125
        assert alt.endswith("Abcdefghij")

    def test_context_hash_tracks_keyword_and_title(self):
        other = ImageContext(focus_keyword="silver rings", page_title=CONTEXT.page_title)
        assert context_hash(CONTEXT) == context_hash(
            ImageContext(focus_keyword=CONTEXT.focus_keyword, page_title=CONTEXT.page_title)
        )
        assert context_hash(CONTEXT) != context_hash(other)


# =============================================================================
# Cascade
# =============================================================================


class TestCascade:
    def test_folder_tier_first(self, db_session, host):
        create_image(db_session, tags=["gold", "engagement", "rings"])
        filed = create_image(db_session, tags=["engagement-rings"], folder="engagement-rings")

        assert make_matcher(host).find_matching_image(CONTEXT) == filed

    def test_all_tags(self, db_session, host):
        create_image(db_session, tags=["gold"])
        every = create_image(db_session, tags=["gold", "engagement", "rings"])

        assert make_matcher(host).find_matching_image(CONTEXT) == every

    def test_first_two_tags(self, db_session, host):
        two = create_image(db_session, tags=["gold", "engagement"])
        create_image(db_session, tags=["rings"])

        assert make_matcher(host).find_matching_image(CONTEXT) == two

    def test_first_tag(self, db_session, host):
        create_image(db_session, tags=["rings"])
        first = create_image(db_session, tags=["gold"])

        assert make_matcher(host).find_matching_image(CONTEXT) == first

    def test_library_preferred_over_attachments(self, db_session, host):
        create_image(db_session, tags=["gold"], is_library=False)
        library = create_image(db_session, tags=["gold"])

        assert make_matcher(host).find_matching_image(CONTEXT) == library

    def test_attachments_used_when_library_empty(self, db_session, host):
        attachment = create_image(db_session, tags=["gold"], is_library=False)

        assert make_matcher(host).find_matching_image(CONTEXT) == attachment

    def test_default_image_when_nothing_matches(self, db_session, host):
        default_id = create_image(db_session, tags=["placeholder"])

        matcher = make_matcher(host, DEFAULT_IMAGE_ID=default_id)

        assert matcher.find_matching_image(CONTEXT) == default_id
        assert matcher.find_matching_image(ImageContext()) == default_id

    def test_missing_default_image_returns_none(self, host):
        assert make_matcher(host, DEFAULT_IMAGE_ID=9999).find_matching_image(CONTEXT) is None


# =============================================================================
# Alt text
# =============================================================================


class TestAltText:
    def test_tag_alt_text_assigned_and_caption_cleared(self, db_session, host):
        image_id = create_image(db_session, tags=["mens", "gold-ring"])

        assert make_matcher(host).assign_image_with_metadata(image_id, 1, CONTEXT) is True

        assert host.get_image(image_id).alt_text == "Men's Gold ring"

    def test_missing_image(self, host):
        assert make_matcher(host).assign_image_with_metadata(9999, 1, CONTEXT) is False

    @respx.mock
    def test_ai_alt_text_is_cached_per_context(self, db_session, host, provider):
        route = respx.post(CHAT_URL).respond(200, json=chat_completion("Gold ring on velvet"))
        image_id = create_image(db_session, tags=["gold"])
        matcher = make_matcher(host, provider, USE_AI_ALT_TEXT=True)

        matcher.assign_image_with_metadata(image_id, 1, CONTEXT)
        matcher.assign_image_with_metadata(image_id, 2, CONTEXT)

        assert route.call_count == 1
        assert host.get_image(image_id).alt_text == "Gold ring on velvet"
        assert host.get_image_meta(image_id, AI_ALT_TEXT_HASH_META_KEY) == context_hash(CONTEXT)
        prompt = json.loads(route.calls.last.request.content)["messages"][-1]["content"]
        assert "Best Gold Engagement Rings" in prompt

        # A different page context asks again
        matcher.assign_image_with_metadata(
            image_id, 3, ImageContext(focus_keyword="silver", page_title="Silver")
        )
        assert route.call_count == 2

    @respx.mock
    def test_clear_alt_text_cache(self, db_session, host, provider):
        route = respx.post(CHAT_URL).respond(200, json=chat_completion("Gold ring"))
        image_id = create_image(db_session, tags=["gold"])
        matcher = make_matcher(host, provider, USE_AI_ALT_TEXT=True)

        matcher.assign_image_with_metadata(image_id, 1, CONTEXT)
        matcher.clear_alt_text_cache(image_id)

        assert host.get_image_meta(image_id, AI_ALT_TEXT_META_KEY) is None
        matcher.assign_image_with_metadata(image_id, 1, CONTEXT)
        assert route.call_count == 2

    @respx.mock
    def test_ai_failure_falls_back_to_tags(self, db_session, host, provider):
        respx.post(CHAT_URL).respond(401, json={"error": {"message": "bad key"}})
        image_id = create_image(db_session, tags=["gold"])

        make_matcher(host, provider, USE_AI_ALT_TEXT=True).assign_image_with_metadata(
            image_id, 1, CONTEXT
        )

        assert host.get_image(image_id).alt_text == "Gold"

    @respx.mock
    def test_ai_failure_without_fallback_leaves_empty(self, db_session, host, provider):
        respx.post(CHAT_URL).respond(401, json={"error": {"message": "bad key"}})
        image_id = create_image(db_session, tags=["gold"])

        make_matcher(
            host, provider, USE_AI_ALT_TEXT=True, AI_ALT_TEXT_FALLBACK=False
        ).assign_image_with_metadata(image_id, 1, CONTEXT)

        assert host.get_image(image_id).alt_text == ""
