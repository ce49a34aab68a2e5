"""Tests for the SQL content host and post-generation collaborators.

Covers:
- SqlContentHost page fields, meta, status and permalinks
- Image lookup by tags, library and folder, and image meta/text updates
- MetaSeoIntegration copying generated SEO fields into meta keys
- TopicLinkRefresher scoring, limits and link image preservation
"""

import pytest

from pagegen.services.integrations import MetaSeoIntegration, TopicLinkRefresher
from tests.helpers import create_image, create_page

# =============================================================================
# Pages
# =============================================================================


class TestPages:
    def test_get_page_record(self, db_session, host):
        page_id = create_page(db_session, "Gold Rings", topics=["Rings", "Gold"])

        page = host.get_page(page_id)

        assert page.title == "Gold Rings"
        assert page.page_type == "seo-page"
        assert page.topics == ["Rings", "Gold"]
        assert host.get_topic_terms(page_id) == ["Rings", "Gold"]
        assert host.get_page(9999) is None

    def test_fields_and_meta(self, db_session, host):
        page_id = create_page(db_session)

        host.update_field(page_id, "hero_title", "Gold")
        host.update_meta(page_id, "_seo_block_order", ["hero"])

        assert host.get_field(page_id, "hero_title") == "Gold"
        assert host.get_fields(page_id) == {"hero_title": "Gold"}
        assert host.get_meta(page_id, "_seo_block_order") == ["hero"]
        assert host.get_meta(page_id, "missing", "dflt") == "dflt"
        assert host.get_field(9999, "hero_title", "x") == "x"

    def test_writes_to_missing_page_raise(self, host):
        with pytest.raises(LookupError):
            host.update_field(9999, "hero_title", "x")
        with pytest.raises(LookupError):
            host.set_page_status(9999, "publish")

    def test_status_and_permalink(self, db_session, host):
        page_id = create_page(db_session, slug="gold-rings")

        host.set_page_status(page_id, "publish")

        assert host.get_page(page_id).status == "publish"
        assert host.get_permalink(page_id) == "https://shop.test/gold-rings"

    def test_find_pages_only_generated_type_newest_first(self, db_session, host):
        first = create_page(db_session, "One", slug="one")
        create_page(db_session, "About", slug="about", page_type="page")
        third = create_page(db_session, "Three", slug="three")

        assert [p.id for p in host.find_pages()] == [third, first]
        assert [p.id for p in host.find_pages(exclude_id=third)] == [first]


# =============================================================================
# Images
# =============================================================================


class TestImages:
    def test_find_images_requires_every_tag(self, db_session, host):
        both = create_image(db_session, tags=["gold", "rings"])
        create_image(db_session, tags=["gold"])

        assert host.find_images(["gold", "rings"]) == [both]

    def test_library_and_folder_filters(self, db_session, host):
        library = create_image(db_session, tags=["gold"], folder="rings")
        loose = create_image(db_session, tags=["gold"])
        attachment = create_image(db_session, tags=["gold"], is_library=False)

        assert host.find_images(["gold"]) == [library, loose]
        assert host.find_images(["gold"], require_folder=True) == [library]
        assert attachment in host.find_images(["gold"], library_only=False)

    def test_image_meta_none_removes_key(self, db_session, host):
        image_id = create_image(db_session)

        host.update_image_meta(image_id, "usage_count", 2)
        assert host.get_image_meta(image_id, "usage_count") == 2

        host.update_image_meta(image_id, "usage_count", None)
        assert host.get_image_meta(image_id, "usage_count", 0) == 0

    def test_update_image_text(self, db_session, host):
        image_id = create_image(db_session)

        host.update_image_text(image_id, alt_text="Gold ring on velvet", caption="Ring")

        assert host.get_image(image_id).alt_text == "Gold ring on velvet"

    def test_create_image(self, host):
        image_id = host.create_image(
            title="Generated",
            storage_path="generated/abc/original.png",
            content_type="image/png",
            tags=["gold"],
        )

        record = host.get_image(image_id)
        assert host.image_exists(image_id)
        assert record.storage_path == "generated/abc/original.png"
        assert record.is_library is False
        assert host.image_exists(9999) is False


# =============================================================================
# SEO sync
# =============================================================================


class TestMetaSeoIntegration:
    def test_copies_fields_to_meta(self, db_session, host):
        page_id = create_page(
            db_session,
            "Gold Rings",
            fields={
                "seo_focus_keyword": "gold rings",
                "seo_title": "Gold Rings | Acme",
                "seo_meta_description": "All about gold rings.",
                "seo_canonical": "",
            },
        )

        assert MetaSeoIntegration(host).sync_page(page_id) is True

        assert host.get_meta(page_id, "_seo_focuskw") == "gold rings"
        assert host.get_meta(page_id, "_seo_title") == "Gold Rings | Acme"
        assert host.get_meta(page_id, "_seo_metadesc") == "All about gold rings."
        assert host.get_meta(page_id, "_seo_canonical") is None
        assert host.get_meta(page_id, "_seo_breadcrumbs_title") == "Gold Rings"

    def test_missing_page(self, host):
        assert MetaSeoIntegration(host).sync_page(9999) is False


# =============================================================================
# Related links
# =============================================================================


class TestTopicLinkRefresher:
    def test_scores_topics_and_title_words(self, db_session, host):
        source = create_page(db_session, "Gold Engagement Rings", topics=["Rings"])
        same_topic = create_page(db_session, "Silver Bands", slug="silver", topics=["Rings"])
        # "gold" + "engagement" + "rings" = 3, below the threshold
        words_only = create_page(
            db_session, "Gold Engagement Rings Guide", slug="guide", topics=["Guides"]
        )
        create_page(db_session, "Necklaces", slug="necklaces", topics=["Necklaces"])

        links = TopicLinkRefresher(host).find_related(source)

        assert [link["page_id"] for link in links] == [same_topic]
        assert links[0] == {
            "page_id": same_topic,
            "link_title": "Silver Bands",
            "link_category": "Rings",
            "link_url": "https://shop.test/silver",
        }
        assert words_only not in [link["page_id"] for link in links]

    def test_best_first_and_capped(self, db_session, host):
        source = create_page(db_session, "Gold Rings", topics=["Rings", "Gold"])
        ids = [
            create_page(db_session, f"Page {i}", slug=f"p{i}", topics=["Rings"]) for i in range(7)
        ]
        best = create_page(db_session, "Gold Rings Two", slug="best", topics=["Rings", "Gold"])

        links = TopicLinkRefresher(host).find_related(source)

        assert len(links) == 6
        assert links[0]["page_id"] == best
        assert ids[0] not in [link["page_id"] for link in links]

    def test_refresh_keeps_existing_link_images(self, db_session, host):
        related = create_page(db_session, "Silver Bands", slug="silver", topics=["Rings"])
        source = create_page(
            db_session,
            "Gold Rings",
            topics=["Rings"],
            fields={"links": [{"page_id": related, "link_image": 42}, {"page_id": 555}]},
        )

        count = TopicLinkRefresher(host).refresh_links(source)

        assert count == 1
        assert host.get_field(source, "links")[0]["link_image"] == 42
        assert isinstance(host.get_meta(source, "_related_links_timestamp"), int)
