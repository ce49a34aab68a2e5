"""Tests for block rule resolution and profile versioning.

Verifies:
- Static schema -> current profile -> template override layering
- Dicts merge recursively, lists and scalars replace
- Resolved rules are cached and dropped on every profile change
- Versions are append-only; revert and reset create new versions
- Seeding only covers blocks without a profile
"""

import pytest

from pagegen.db.models import BlockRuleProfile
from pagegen.services.block_rules import BlockRuleService, deep_merge
from pagegen.services.blocks import BLOCK_TYPES


@pytest.fixture
def rules(db_session) -> BlockRuleService:
    return BlockRuleService(db_session)


class TestDeepMerge:
    def test_nested_dicts_merge(self):
        base = {"a": {"b": 1, "c": 2}, "d": 3}
        assert deep_merge(base, {"a": {"c": 20}}) == {"a": {"b": 1, "c": 20}, "d": 3}

    def test_lists_and_scalars_replace(self):
        base = {"patterns": ["x", "y"], "limit": 10}
        merged = deep_merge(base, {"patterns": ["z"], "limit": None})
        assert merged == {"patterns": ["z"], "limit": None}

    def test_base_is_not_mutated(self):
        base = {"a": {"b": 1}}
        deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 1}}


# =============================================================================
# Resolution
# =============================================================================


class TestResolution:
    def test_factory_schema_when_no_profile(self, rules):
        slots = rules.get_resolved_slot_schema("seo_metadata")

        assert slots["seo_title"]["max_length"] == 60
        assert slots["seo_meta_description"]["validation"]["min_length"] == 70

    def test_unknown_block_resolves_empty(self, rules):
        assert rules.get_resolved_slot_schema("sidebar") == {}
        assert rules.get_resolved_image_specs("sidebar") == []

    def test_profile_overrides_factory(self, rules):
        rules.update_profile(
            "seo_metadata", {"content_slots": {"seo_title": {"max_length": 70}}}
        )

        slots = rules.get_resolved_slot_schema("seo_metadata")
        assert slots["seo_title"]["max_length"] == 70
        assert slots["seo_title"]["required"] is True

    def test_template_override_wins(self, rules):
        rules.update_profile("hero", {"content_slots": {"hero_title": {"max_length": 80}}})
        rules.set_template_override(
            "landing", "hero", {"content_slots": {"hero_title": {"max_length": 50}}}
        )

        assert rules.get_resolved_slot_schema("hero")["hero_title"]["max_length"] == 80
        assert rules.get_resolved_slot_schema("hero", "landing")["hero_title"]["max_length"] == 50

    def test_override_replaces_list(self, rules):
        rules.update_profile(
            "cta",
            {"content_slots": {"cta_text": {"validation": {"forbidden_patterns": ["act now"]}}}},
        )

        validation = rules.get_resolved_slot_schema("cta")["cta_text"]["validation"]
        assert validation["forbidden_patterns"] == ["act now"]
        assert validation["min_length"] == 0

    def test_image_specs(self, rules):
        specs = rules.get_resolved_image_specs("hero")
        assert specs[0]["desktop"] == [1600, 900]
        assert specs[0]["required"] is True


class TestCaching:
    def test_results_are_cached(self, rules, db_session):
        first = rules.get_resolved_rules("hero")

        # A row written behind the service's back is not seen until the cache drops
        db_session.add(
            BlockRuleProfile(
                block_id="hero",
                version=1,
                schema_json={"content_slots": {"hero_title": {"max_length": 10}}},
                source="edited",
                is_current=True,
            )
        )
        db_session.commit()

        assert rules.get_resolved_rules("hero") is first
        rules.clear_cache()
        assert rules.get_resolved_slot_schema("hero")["hero_title"]["max_length"] == 10

    def test_update_drops_cached_entries_for_block(self, rules):
        rules.get_resolved_rules("hero")
        rules.get_resolved_rules("hero", "landing")
        cta = rules.get_resolved_rules("cta")

        rules.update_profile("hero", {"content_slots": {"hero_title": {"max_length": 90}}})

        assert rules.get_resolved_slot_schema("hero")["hero_title"]["max_length"] == 90
        assert rules.get_resolved_slot_schema("hero", "landing")["hero_title"]["max_length"] == 90
        assert rules.get_resolved_rules("cta") is cta


# =============================================================================
# Versioning
# =============================================================================


class TestVersioning:
    def test_versions_increment_and_one_is_current(self, rules):
        rules.update_profile("hero", {"content_slots": {}}, created_by="editor")
        second = rules.update_profile("hero", {"content_slots": {}}, created_by="editor")

        history = rules.get_version_history("hero")
        assert [p.version for p in history] == [2, 1]
        assert [p.is_current for p in history] == [True, False]
        assert second.source == "edited"
        assert second.created_by == "editor"

    def test_revert_copies_old_schema_into_new_version(self, rules):
        rules.update_profile("hero", {"content_slots": {"hero_title": {"max_length": 40}}})
        rules.update_profile("hero", {"content_slots": {"hero_title": {"max_length": 120}}})

        reverted = rules.revert_profile("hero", 1)

        assert reverted.version == 3
        assert reverted.source == "revert"
        assert rules.get_resolved_slot_schema("hero")["hero_title"]["max_length"] == 40

    def test_revert_missing_version_returns_none(self, rules):
        assert rules.revert_profile("hero", 7) is None

    def test_reset_to_factory(self, rules):
        rules.update_profile("hero", {"content_slots": {"hero_title": {"max_length": 40}}})

        profile = rules.reset_to_factory("hero")

        assert profile.source == "config"
        assert profile.version == 2
        assert rules.get_resolved_slot_schema("hero")["hero_title"]["max_length"] == 100
        assert rules.reset_to_factory("sidebar") is None

    def test_seed_skips_blocks_with_profiles(self, rules):
        rules.update_profile("hero", {"content_slots": {}})

        created = rules.seed_from_config()

        assert created == len(BLOCK_TYPES) - 1
        assert len(rules.get_all_current_profiles()) == len(BLOCK_TYPES)
        assert rules.seed_from_config() == 0
