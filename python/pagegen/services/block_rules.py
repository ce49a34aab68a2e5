"""Block rule resolution and profile versioning.

Rules for a block are resolved by layering, each layer deep-merged over the
previous one:

    static schema (blocks.schemas) -> current stored profile -> template override

Dicts merge recursively; lists and scalars in the override replace the base
value. Resolved rules are memoized per (block, template) for the lifetime of
the service; every profile mutation drops the block's cached entries.

Profiles are versioned. Editing, reverting or resetting a block inserts a
new version and marks it current; old versions are never rewritten.
"""

from copy import deepcopy
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from pagegen.db.models import BlockRuleProfile, ProfileSource, TemplateBlockOverride
from pagegen.db.session import transaction
from pagegen.logging import get_logger
from pagegen.services.blocks import BLOCK_TYPES
from pagegen.services.blocks.schemas import get_factory_schema, schema

logger = get_logger(__name__)


def deep_merge(base: dict, override: dict) -> dict:
    """Merge `override` into a copy of `base`.

    Nested dicts are merged recursively; any other override value (list,
    scalar, None) replaces the base value.
    """
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _empty_schema() -> dict:
    return schema({})


class BlockRuleService:
    """Resolves and versions block rule profiles."""

    def __init__(self, db: Session):
        self._db = db
        self._cache: dict[tuple[str, str | None], dict] = {}

    # =========================================================================
    # Resolution
    # =========================================================================

    def get_resolved_rules(self, block_id: str, template_id: str | None = None) -> dict:
        """Fully resolved rules for a block, optionally with a template override."""
        cache_key = (block_id, template_id)
        if cache_key in self._cache:
            return self._cache[cache_key]

        rules = self._factory_schema(block_id)

        profile = self._current_profile(block_id)
        if profile is not None and profile.schema_json:
            rules = deep_merge(rules, profile.schema_json)

        if template_id:
            override = self._db.scalar(
                select(TemplateBlockOverride).where(
                    TemplateBlockOverride.template_id == template_id,
                    TemplateBlockOverride.block_id == block_id,
                )
            )
            if override is not None and override.override_json:
                rules = deep_merge(rules, override.override_json)

        self._cache[cache_key] = rules
        return rules

    def get_resolved_slot_schema(self, block_id: str, template_id: str | None = None) -> dict:
        return self.get_resolved_rules(block_id, template_id).get("content_slots", {})

    def get_resolved_image_specs(self, block_id: str, template_id: str | None = None) -> list:
        return self.get_resolved_rules(block_id, template_id).get("images", [])

    # =========================================================================
    # Profiles
    # =========================================================================

    def update_profile(
        self, block_id: str, schema_json: dict, created_by: str | None = None
    ) -> BlockRuleProfile:
        """Store an edited schema as the new current version."""
        profile = self._save_new_version(
            block_id, schema_json, ProfileSource.edited.value, created_by
        )
        logger.info("block_rules.profile_updated", block_id=block_id, version=profile.version)
        return profile

    def revert_profile(
        self, block_id: str, version: int, created_by: str | None = None
    ) -> BlockRuleProfile | None:
        """Copy an old version's schema into a new current version.

        Returns None if the block has no such version.
        """
        target = self._db.scalar(
            select(BlockRuleProfile).where(
                BlockRuleProfile.block_id == block_id,
                BlockRuleProfile.version == version,
            )
        )
        if target is None:
            return None

        profile = self._save_new_version(
            block_id, target.schema_json, ProfileSource.revert.value, created_by
        )
        logger.info(
            "block_rules.profile_reverted",
            block_id=block_id,
            reverted_to=version,
            version=profile.version,
        )
        return profile

    def reset_to_factory(
        self, block_id: str, created_by: str | None = None
    ) -> BlockRuleProfile | None:
        """Store the static schema as the new current version (None for unknown blocks)."""
        factory = get_factory_schema(block_id)
        if factory is None:
            return None
        return self._save_new_version(block_id, factory, ProfileSource.config.value, created_by)

    def get_version_history(self, block_id: str) -> list[BlockRuleProfile]:
        """All versions for a block, newest first."""
        return list(
            self._db.scalars(
                select(BlockRuleProfile)
                .where(BlockRuleProfile.block_id == block_id)
                .order_by(BlockRuleProfile.version.desc())
            )
        )

    def get_all_current_profiles(self) -> list[BlockRuleProfile]:
        return list(
            self._db.scalars(
                select(BlockRuleProfile)
                .where(BlockRuleProfile.is_current.is_(True))
                .order_by(BlockRuleProfile.block_id)
            )
        )

    def seed_from_config(self) -> int:
        """Create a version 1 profile from the static schema for every block without one.

        Returns:
            Number of profiles created.
        """
        count = 0
        for block_id in BLOCK_TYPES:
            if self._current_profile(block_id) is not None:
                continue
            self._save_new_version(
                block_id, self._factory_schema(block_id), ProfileSource.config.value, None
            )
            count += 1

        if count:
            logger.info("block_rules.seeded", count=count)
        return count

    def set_template_override(self, template_id: str, block_id: str, override_json: dict) -> None:
        existing = self._db.scalar(
            select(TemplateBlockOverride).where(
                TemplateBlockOverride.template_id == template_id,
                TemplateBlockOverride.block_id == block_id,
            )
        )
        if existing is None:
            self._db.add(
                TemplateBlockOverride(
                    template_id=template_id, block_id=block_id, override_json=override_json
                )
            )
        else:
            existing.override_json = override_json
        self._db.flush()
        self._db.commit()
        self._drop_block(block_id)

    def clear_cache(self) -> None:
        self._cache.clear()

    # =========================================================================
    # Internals
    # =========================================================================

    def _factory_schema(self, block_id: str) -> dict:
        return get_factory_schema(block_id) or _empty_schema()

    def _current_profile(self, block_id: str) -> BlockRuleProfile | None:
        return self._db.scalar(
            select(BlockRuleProfile).where(
                BlockRuleProfile.block_id == block_id,
                BlockRuleProfile.is_current.is_(True),
            )
        )

    def _save_new_version(
        self, block_id: str, schema_json: dict[str, Any], source: str, created_by: str | None
    ) -> BlockRuleProfile:
        max_version = self._db.scalar(
            select(func.coalesce(func.max(BlockRuleProfile.version), 0)).where(
                BlockRuleProfile.block_id == block_id
            )
        )
        profile = BlockRuleProfile(
            block_id=block_id,
            version=int(max_version) + 1,
            schema_json=deepcopy(schema_json),
            source=source,
            is_current=True,
            created_by=created_by,
        )
        with transaction(self._db):
            self._db.execute(
                update(BlockRuleProfile)
                .where(BlockRuleProfile.block_id == block_id)
                .values(is_current=False)
            )
            self._db.add(profile)
        self._drop_block(block_id)
        return profile

    def _drop_block(self, block_id: str) -> None:
        for key in [k for k in self._cache if k[0] == block_id]:
            del self._cache[key]
