"""Tests for AI image generation and its cache.

Verifies:
- A miss runs prompt -> image -> download -> Pillow check -> upload -> attach
- A hit on (title, category) reuses the image and counts the usage
- Any failing stage returns None and writes nothing
- Cost counters and stats
- Related link images skip links that already have one
"""

import httpx
import pytest
import respx

from pagegen.db.models import ImageCacheRecord
from pagegen.services.image_generation import (
    COST_PER_IMAGE,
    ImageGenerator,
    InvalidImageError,
    RelatedLinksImageService,
    image_context_hash,
    inspect_image,
)
from pagegen.services.llm import ContentProviderClient, OpenAIAdapter
from pagegen.storage import FakeStorageClient, build_image_path, get_image_extension
from tests.helpers import (
    CHAT_URL,
    IMAGES_URL,
    OPENAI_BASE_URL,
    chat_completion,
    create_page,
    image_generation_body,
    make_settings,
    png_bytes,
)

IMAGE_URL = "https://images.openai.test/img-1.png"


@pytest.fixture
def storage() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture
def generator(db_session, host, http_client, storage, settings) -> ImageGenerator:
    provider = ContentProviderClient(
        OpenAIAdapter(http_client, OPENAI_BASE_URL), "sk-test", sleep=lambda _: None
    )
    return ImageGenerator(db_session, host, provider, storage, http_client, settings=settings)


def mock_pipeline(image: bytes | None = None) -> dict[str, respx.Route]:
    return {
        "prompt": respx.post(CHAT_URL).respond(
            200, json=chat_completion("A gold ring on white marble")
        ),
        "image": respx.post(IMAGES_URL).respond(200, json=image_generation_body(IMAGE_URL)),
        "download": respx.get(IMAGE_URL).respond(
            200, content=image if image is not None else png_bytes()
        ),
    }


class TestHelpers:
    def test_context_hash_normalizes(self):
        assert image_context_hash(" Gold Rings ", "RINGS") == image_context_hash(
            "gold rings", "rings"
        )
        assert image_context_hash("a", "b") != image_context_hash("a", "c")

    def test_inspect_image(self):
        assert inspect_image(png_bytes()) == "image/png"
        with pytest.raises(InvalidImageError):
            inspect_image(b"not an image")

    def test_storage_paths(self, monkeypatch):
        monkeypatch.delenv("STORAGE_TEST_PREFIX", raising=False)
        assert build_image_path("abc", "png") == "generated/abc/original.png"

        monkeypatch.setenv("STORAGE_TEST_PREFIX", "test_runs/42")
        assert build_image_path("abc", "png") == "test_runs/42/generated/abc/original.png"

    def test_image_extension(self):
        assert get_image_extension("image/jpeg") == "jpg"
        with pytest.raises(ValueError):
            get_image_extension("application/pdf")


# =============================================================================
# Generation
# =============================================================================


class TestFindOrGenerate:
    @respx.mock
    def test_miss_generates_uploads_and_caches(self, generator, host, storage, db_session):
        routes = mock_pipeline()

        image_id = generator.find_or_generate_image(
            "Gold Rings", "Rings", page_title="Best Rings", description="Warm tones"
        )

        assert image_id is not None
        image = host.get_image(image_id)
        context_hash = image_context_hash("Gold Rings", "Rings")
        assert image.storage_path.endswith(f"generated/{context_hash}/original.png")
        assert image.tags == ["rings"]
        assert image.is_library is False
        assert storage.get_object(image.storage_path) == png_bytes()

        prompt_body = routes["prompt"].calls.last.request.content.decode()
        assert "Gold Rings" in prompt_body
        assert "Best Rings" in prompt_body
        assert "A gold ring on white marble" in routes["image"].calls.last.request.content.decode()

        record = db_session.query(ImageCacheRecord).one()
        assert record.attachment_id == image_id
        assert record.usage_count == 1
        assert generator.is_cached("gold rings", "rings") is True

    @respx.mock
    def test_hit_reuses_image_and_counts_usage(self, generator, db_session):
        routes = mock_pipeline()
        first = generator.find_or_generate_image("Gold Rings", "Rings")

        second = generator.find_or_generate_image("gold rings ", "rings")

        assert second == first
        assert routes["image"].call_count == 1
        db_session.expire_all()
        assert db_session.query(ImageCacheRecord).one().usage_count == 2

    @respx.mock
    def test_provider_failure_returns_none(self, generator, db_session):
        respx.post(CHAT_URL).respond(401, json={"error": {"message": "bad key"}})

        assert generator.find_or_generate_image("Gold Rings", "Rings") is None
        assert db_session.query(ImageCacheRecord).count() == 0

    @respx.mock
    def test_download_failure_returns_none(self, generator):
        respx.post(CHAT_URL).respond(200, json=chat_completion("A gold ring"))
        respx.post(IMAGES_URL).respond(200, json=image_generation_body(IMAGE_URL))
        respx.get(IMAGE_URL).mock(side_effect=httpx.ConnectError("gone"))

        assert generator.find_or_generate_image("Gold Rings", "Rings") is None

    @respx.mock
    def test_invalid_image_returns_none(self, generator, storage):
        mock_pipeline(image=b"<html>expired</html>")

        assert generator.find_or_generate_image("Gold Rings", "Rings") is None
        assert generator.get_cost_stats().total_generated == 0

    @respx.mock
    def test_oversized_image_returns_none(self, db_session, host, http_client, storage):
        provider = ContentProviderClient(
            OpenAIAdapter(http_client, OPENAI_BASE_URL), "sk-test", sleep=lambda _: None
        )
        small = ImageGenerator(
            db_session, host, provider, storage, http_client,
            settings=make_settings(MAX_IMAGE_BYTES=10),
        )
        mock_pipeline()

        assert small.find_or_generate_image("Gold Rings", "Rings") is None


class TestReporting:
    @respx.mock
    def test_cost_stats(self, generator):
        mock_pipeline()
        generator.find_or_generate_image("Gold Rings", "Rings")
        generator.find_or_generate_image("Gold Rings", "Rings")
        generator.find_or_generate_image("Gold Rings", "Rings")

        stats = generator.get_cost_stats()

        assert stats.total_generated == 1
        assert stats.total_cost == pytest.approx(COST_PER_IMAGE)
        assert stats.total_usages == 3
        assert stats.unique_cached == 1
        assert stats.estimated_savings == pytest.approx(2 * COST_PER_IMAGE)
        assert stats.to_dict()["cache_efficiency"] == pytest.approx(66.7)

    def test_empty_stats(self, generator):
        assert generator.get_cost_stats().to_dict() == {
            "total_cost": 0.0,
            "total_generated": 0,
            "unique_cached": 0,
            "total_usages": 0,
            "cache_efficiency": 0.0,
            "cost_per_image": 0.0,
            "estimated_savings": 0.0,
        }

    @respx.mock
    def test_clear_cache_and_most_used(self, generator):
        mock_pipeline()
        generator.find_or_generate_image("Gold Rings", "Rings")

        assert [r.title for r in generator.get_most_used_images()] == ["Gold Rings"]
        assert generator.clear_cache() == 1
        assert generator.is_cached("Gold Rings", "Rings") is False


# =============================================================================
# Related link images
# =============================================================================


class TestRelatedLinksImages:
    @respx.mock
    def test_fills_missing_link_images(self, generator, db_session, host):
        mock_pipeline()
        page_id = create_page(
            db_session,
            fields={
                "links": [
                    {"page_id": 2, "link_title": "Gold Rings", "link_category": "Rings"},
                    {"page_id": 3, "link_title": "Gold Rings", "link_category": "Rings"},
                    {"page_id": 4, "link_title": "Old", "link_category": "Misc", "link_image": 9},
                    {"page_id": 5, "link_title": "No category"},
                ]
            },
        )

        report = RelatedLinksImageService(host, generator).generate_images_for_page(page_id)

        assert (report.generated, report.cached, report.failed) == (1, 1, 0)
        links = host.get_field(page_id, "links")
        assert links[0]["link_image"] == links[1]["link_image"]
        assert links[2]["link_image"] == 9
        assert "link_image" not in links[3]

    @respx.mock
    def test_failures_are_reported(self, generator, db_session, host):
        respx.post(CHAT_URL).respond(500, json={"error": {"message": "down"}})
        page_id = create_page(
            db_session,
            fields={"links": [{"page_id": 2, "link_title": "Gold", "link_category": "Rings"}]},
        )

        report = RelatedLinksImageService(host, generator).generate_images_for_page(page_id)

        assert report.failed == 1
        assert report.errors == ["Failed to generate image for: Gold"]

    def test_page_without_links(self, generator, db_session, host):
        page_id = create_page(db_session)

        report = RelatedLinksImageService(host, generator).generate_images_for_page(page_id)

        assert report.errors == ["No links data found"]
