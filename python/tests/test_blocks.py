"""Tests for the block registry and output parsers.

Covers:
- Registry lookups and the default block order
- Fence stripping and JSON decoding
- Every parser's required keys and the BlockParseError it raises
- Text, textarea and URL cleaning
"""

import json

import pytest

from pagegen.errors import BlockParseError, UnknownBlockTypeError
from pagegen.services.blocks import (
    BLOCK_TYPES,
    DEFAULT_BLOCK_ORDER,
    METADATA_BLOCK,
    get_block_type,
    get_factory_schema,
    is_known_block,
    parse_block_content,
)
from pagegen.services.blocks.parsers import (
    clean_text,
    clean_textarea,
    clean_url,
    decode_json,
    strip_fences,
)


def fenced(payload: dict) -> str:
    return "Here you go:\n```json\n" + json.dumps(payload) + "\n```\n"


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    def test_default_order_starts_with_metadata(self):
        assert DEFAULT_BLOCK_ORDER[0] == METADATA_BLOCK
        assert len(DEFAULT_BLOCK_ORDER) == 13
        assert set(DEFAULT_BLOCK_ORDER) == set(BLOCK_TYPES)

    def test_unknown_block_raises(self):
        assert is_known_block("hero") is True
        assert is_known_block("sidebar") is False
        with pytest.raises(UnknownBlockTypeError):
            get_block_type("sidebar")
        with pytest.raises(UnknownBlockTypeError):
            parse_block_content("sidebar", "{}")

    def test_image_slots(self):
        assert get_block_type("hero").image_slots == ("hero_image",)
        assert get_block_type("process").image_slots == ("step_image",)
        assert get_block_type("faqs").image_slots == ()

    def test_factory_schema_is_a_copy(self):
        schema = get_factory_schema("seo_metadata")
        schema["content_slots"]["seo_title"]["max_length"] = 5

        fresh = get_factory_schema("seo_metadata")
        assert fresh["content_slots"]["seo_title"]["max_length"] == 60
        assert get_factory_schema("sidebar") is None


# =============================================================================
# Decoding and cleaning
# =============================================================================


class TestDecoding:
    def test_strip_json_fence(self):
        assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strip_plain_fence(self):
        assert strip_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence_unchanged(self):
        assert strip_fences('{"a": 1}') == '{"a": 1}'

    def test_decode_rejects_non_objects(self):
        assert decode_json("[1, 2]") is None
        assert decode_json("not json") is None
        assert decode_json(fenced({"a": 1})) == {"a": 1}


class TestCleaning:
    def test_clean_text_strips_tags_and_collapses_whitespace(self):
        assert clean_text("<b>Gold</b>\n  rings ") == "Gold rings"
        assert clean_text(None) == ""

    def test_clean_textarea_keeps_lines(self):
        assert clean_textarea("<p>line  one</p>\n  line two  ") == "line one\nline two"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("https://shop.test/rings", "https://shop.test/rings"),
            ("/contact", "/contact"),
            ("javascript:alert(1)", ""),
            (None, ""),
        ],
    )
    def test_clean_url(self, value, expected):
        assert clean_url(value) == expected


# =============================================================================
# Parsers
# =============================================================================


class TestParsers:
    def test_seo_metadata(self):
        fields = parse_block_content(
            "seo_metadata",
            fenced(
                {
                    "focus_keyword": "gold engagement rings",
                    "seo_title": "Best Gold Engagement Rings",
                    "meta_description": "Compare gold engagement rings.",
                }
            ),
        )

        assert fields["seo_focus_keyword"] == "gold engagement rings"
        assert fields["seo_title"] == "Best Gold Engagement Rings"
        assert fields["seo_canonical"] == ""

    def test_hero(self):
        fields = parse_block_content(
            "hero", json.dumps({"headline": "Gold Rings", "subheadline": "Made to last"})
        )

        assert fields == {
            "hero_title": "Gold Rings",
            "hero_subtitle": "Made to last",
            "hero_summary": "",
        }

    def test_serp_answer_accepts_plain_text(self):
        fields = parse_block_content("serp_answer", "  Gold rings are durable and timeless.  ")

        assert fields["answer_paragraph"] == "Gold rings are durable and timeless."
        assert fields["answer_bullets"] == []

    def test_serp_answer_json(self):
        fields = parse_block_content(
            "serp_answer",
            json.dumps(
                {"heading": "Quick answer", "answer": "Yes.", "bullets": ["Durable", "Classic"]}
            ),
        )

        assert fields["answer_heading"] == "Quick answer"
        assert fields["answer_paragraph"] == "Yes."
        assert fields["answer_bullets"] == [{"bullet_text": "Durable"}, {"bullet_text": "Classic"}]

    def test_comparison_builds_rows_from_factors(self):
        fields = parse_block_content(
            "comparison",
            json.dumps(
                {
                    "introduction": "Gold versus platinum.",
                    "factors": ["Price", "Weight", "Color"],
                    "options": [
                        {"name": "Gold", "values": ["Lower", "Lighter", "Warm"]},
                        {"name": "Platinum", "values": ["Higher", "Heavier"]},
                    ],
                }
            ),
        )

        assert fields["comparison_left_label"] == "Gold"
        assert fields["comparison_right_label"] == "Platinum"
        assert fields["comparison_rows"][0] == {
            "attribute": "Price",
            "left_text": "Lower",
            "right_text": "Higher",
        }
        assert fields["comparison_rows"][2]["right_text"] == ""

    def test_list_parsers_skip_incomplete_rows(self):
        fields = parse_block_content(
            "faqs",
            json.dumps(
                {
                    "faqs": [
                        {"question": "Is gold durable?", "answer": "Yes."},
                        {"question": "No answer here"},
                    ]
                }
            ),
        )

        assert fields["faq_items"] == [{"question": "Is gold durable?", "answer": "Yes."}]

    def test_care_warranty(self):
        fields = parse_block_content(
            "care_warranty",
            json.dumps(
                {
                    "care": {"heading": "Care", "tips": ["Polish monthly"]},
                    "warranty": {"heading": "Warranty", "information": "Lifetime."},
                }
            ),
        )

        assert fields["care_bullets"] == [{"bullet": "Polish monthly"}]
        assert fields["warranty_text"] == "Lifetime."

    def test_cta_drops_unsafe_urls(self):
        fields = parse_block_content(
            "cta",
            json.dumps(
                {
                    "heading": "Visit us",
                    "body": "Book a consultation.",
                    "primary_url": "/book",
                    "secondary_url": "ftp://old",
                }
            ),
        )

        assert fields["cta_primary_url"] == "/book"
        assert fields["cta_secondary_url"] == ""

    @pytest.mark.parametrize(
        "block_type,payload,message",
        [
            ("seo_metadata", {"seo_title": "x"}, "Invalid SEO metadata format"),
            ("hero", {"headline": "x"}, "Invalid hero content format"),
            ("product_criteria", {"criteria": "x"}, "Invalid product criteria format"),
            ("materials", {"introduction": "x"}, "Invalid materials format"),
            ("process", {"steps": []}, "Invalid process format"),
            ("comparison", {"introduction": "x", "factors": []}, "Invalid comparison format"),
            ("product_showcase", {"products": []}, "Invalid product showcase format"),
            ("size_fit", {"tips": []}, "Invalid size & fit format"),
            ("care_warranty", {"care": {}}, "Invalid care & warranty format"),
            ("ethics", {"aspects": []}, "Invalid ethics format"),
            ("faqs", {"items": []}, "Invalid FAQs format"),
            ("cta", {"heading": "x"}, "Invalid CTA format"),
        ],
    )
    def test_missing_keys_raise(self, block_type, payload, message):
        with pytest.raises(BlockParseError, match=message):
            parse_block_content(block_type, json.dumps(payload))

    def test_non_json_raises_for_structured_blocks(self):
        with pytest.raises(BlockParseError):
            parse_block_content("hero", "Just some prose about rings.")
