"""Generation pipeline schema - pages, images, queue, logs, image cache, block rules

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates the host reference tables (pages, images) and the pipeline tables:
generation_queue_items, generation_queue_state, generation_logs,
generation_counters, image_cache, block_rule_profiles,
template_block_overrides.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=None if nullable else sa.text("now()"),
        nullable=nullable,
    )


def upgrade() -> None:
    # ==========================================================================
    # pages table (host reference)
    # ==========================================================================
    op.create_table(
        "pages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("page_type", sa.Text(), server_default="seo-page", nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), server_default="draft", nullable=False),
        sa.Column("topics", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("fields", postgresql.JSONB(), server_default="{}", nullable=False),
        sa.Column("meta", postgresql.JSONB(), server_default="{}", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug", name="uq_pages_slug"),
    )

    # ==========================================================================
    # images table (media library)
    # ==========================================================================
    op.create_table(
        "images",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("storage_path", sa.Text(), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("content_type", sa.Text(), nullable=True),
        sa.Column("tags", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("folder", sa.Text(), nullable=True),
        sa.Column("is_library", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("alt_text", sa.Text(), nullable=True),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("meta", postgresql.JSONB(), server_default="{}", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    # Tag lookups use jsonb containment (tags @> '["gold", "rings"]')
    op.create_index(
        "ix_images_tags", "images", ["tags"], postgresql_using="gin"
    )

    # ==========================================================================
    # generation_queue_items table
    # ==========================================================================
    op.create_table(
        "generation_queue_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("page_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        _timestamp("scheduled_at"),
        _timestamp("queued_at"),
        _timestamp("updated_at", nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("block_selection", postgresql.JSONB(), nullable=True),
        sa.Column("trigger_id", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), server_default="0", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_generation_queue_items_status",
        ),
    )
    # At most one pending item per page
    op.create_index(
        "uq_generation_queue_items_pending_page",
        "generation_queue_items",
        ["page_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        "ix_generation_queue_items_status_scheduled",
        "generation_queue_items",
        ["status", "scheduled_at"],
    )

    # ==========================================================================
    # generation_queue_state table (single row: pause flag + rate gate)
    # ==========================================================================
    op.create_table(
        "generation_queue_state",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("paused", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("last_generation_at", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("id = 1", name="ck_generation_queue_state_singleton"),
    )
    op.execute("INSERT INTO generation_queue_state (id, paused) VALUES (1, false)")

    # ==========================================================================
    # generation_logs table (append-only)
    # ==========================================================================
    op.create_table(
        "generation_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("page_id", sa.Integer(), nullable=False),
        sa.Column("block_type", sa.Text(), nullable=False),
        sa.Column("prompt_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("completion_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_tokens", sa.Integer(), server_default="0", nullable=False),
        sa.Column("cost", sa.Numeric(10, 6), server_default="0", nullable=False),
        sa.Column("model", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('success', 'failed')", name="ck_generation_logs_status"),
    )
    op.create_index("ix_generation_logs_page_id", "generation_logs", ["page_id"])
    op.create_index("ix_generation_logs_created_at", "generation_logs", ["created_at"])

    # ==========================================================================
    # generation_counters table
    # ==========================================================================
    op.create_table(
        "generation_counters",
        sa.Column("key", sa.Text(), nullable=False),
        sa.Column("value", sa.Float(), server_default="0", nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    # ==========================================================================
    # image_cache table
    # ==========================================================================
    op.create_table(
        "image_cache",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("context_hash", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("generation_prompt", sa.Text(), nullable=True),
        sa.Column("attachment_id", sa.Integer(), nullable=False),
        sa.Column("usage_count", sa.Integer(), server_default="1", nullable=False),
        _timestamp("created_at"),
        _timestamp("last_used"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("context_hash", name="uq_image_cache_context_hash"),
    )

    # ==========================================================================
    # block_rule_profiles table (versioned)
    # ==========================================================================
    op.create_table(
        "block_rule_profiles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("block_id", sa.Text(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("schema_json", postgresql.JSONB(), nullable=False),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("is_current", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_by", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("block_id", "version", name="uq_block_rule_profiles_block_version"),
        sa.CheckConstraint(
            "source IN ('config', 'edited', 'revert')",
            name="ck_block_rule_profiles_source",
        ),
    )
    # One current version per block
    op.create_index(
        "uix_block_rule_profiles_current",
        "block_rule_profiles",
        ["block_id"],
        unique=True,
        postgresql_where=sa.text("is_current"),
    )

    # ==========================================================================
    # template_block_overrides table
    # ==========================================================================
    op.create_table(
        "template_block_overrides",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("template_id", sa.Text(), nullable=False),
        sa.Column("block_id", sa.Text(), nullable=False),
        sa.Column("override_json", postgresql.JSONB(), nullable=False),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("template_id", "block_id", name="uq_template_block_overrides"),
    )


def downgrade() -> None:
    op.drop_table("template_block_overrides")
    op.drop_index("uix_block_rule_profiles_current", table_name="block_rule_profiles")
    op.drop_table("block_rule_profiles")
    op.drop_table("image_cache")
    op.drop_table("generation_counters")
    op.drop_index("ix_generation_logs_created_at", table_name="generation_logs")
    op.drop_index("ix_generation_logs_page_id", table_name="generation_logs")
    op.drop_table("generation_logs")
    op.drop_table("generation_queue_state")
    op.drop_index(
        "ix_generation_queue_items_status_scheduled", table_name="generation_queue_items"
    )
    op.drop_index("uq_generation_queue_items_pending_page", table_name="generation_queue_items")
    op.drop_table("generation_queue_items")
    op.drop_index("ix_images_tags", table_name="images")
    op.drop_table("images")
    op.drop_table("pages")
