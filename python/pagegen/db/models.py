"""SQLAlchemy ORM models for pagegen.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Status columns are Text with CHECK constraints mirroring the Python enums.

Two groups of tables:
- Host reference tables (pages, images): the content store the pipeline
  reads from and writes generated fields into.
- Pipeline tables: queue items and queue state, generation logs, the
  generated-image cache, block rule profiles and overrides, counters.
"""

from datetime import UTC, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC.

    SQLite drops tzinfo on read; values are normalized to UTC on write and
    tagged as UTC on read so comparisons with aware datetimes work everywhere.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
            if dialect.name == "sqlite":
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class QueueStatus(str, PyEnum):
    """Queue item lifecycle states.

    States:
        pending: Waiting for its scheduled trigger
        processing: Orchestrator is generating blocks
        completed: Every block succeeded
        failed: At least one block failed, or the page was invalid
    """

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class LogStatus(str, PyEnum):
    """Outcome recorded for one provider call."""

    success = "success"
    failed = "failed"


class ProfileSource(str, PyEnum):
    """How a block rule profile version came to exist."""

    config = "config"
    edited = "edited"
    revert = "revert"


# =============================================================================
# Host reference tables
# =============================================================================


class Page(Base):
    """A catalog page whose content fields are generated block by block."""

    __tablename__ = "pages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_type: Mapped[str] = mapped_column(Text, server_default="seo-page", nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, server_default="draft", nullable=False)
    topics: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    fields: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    meta: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (UniqueConstraint("slug", name="uq_pages_slug"),)


class Image(Base):
    """An image in the media library (uploaded or AI-generated)."""

    __tablename__ = "images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    folder: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_library: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )
    alt_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )


# =============================================================================
# Work queue
# =============================================================================


class GenerationQueueItem(Base):
    """One page waiting for (or done with) background generation.

    At most one pending row per page, enforced by a partial unique index.
    """

    __tablename__ = "generation_queue_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        Text, default=QueueStatus.pending.value, server_default="pending", nullable=False
    )
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    queued_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    block_selection: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    trigger_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_generation_queue_items_status",
        ),
        Index(
            "uq_generation_queue_items_pending_page",
            "page_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("ix_generation_queue_items_status_scheduled", "status", "scheduled_at"),
    )


class GenerationQueueState(Base):
    """Single-row store for the pause flag and the global rate gate (id = 1)."""

    __tablename__ = "generation_queue_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    paused: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    # Epoch seconds of the last admitted generation
    last_generation_at: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (CheckConstraint("id = 1", name="ck_generation_queue_state_singleton"),)


# =============================================================================
# Cost tracking
# =============================================================================


class GenerationLog(Base):
    """Append-only record of one provider call."""

    __tablename__ = "generation_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_id: Mapped[int] = mapped_column(Integer, nullable=False)
    block_type: Mapped[str] = mapped_column(Text, nullable=False)
    prompt_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completion_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cost: Mapped[float] = mapped_column(Numeric(10, 6, asdecimal=False), default=0, nullable=False)
    model: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("status IN ('success', 'failed')", name="ck_generation_logs_status"),
        Index("ix_generation_logs_page_id", "page_id"),
        Index("ix_generation_logs_created_at", "created_at"),
    )


class GenerationCounter(Base):
    """Named numeric counter (image generation cost and count)."""

    __tablename__ = "generation_counters"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)


# =============================================================================
# Images
# =============================================================================


class ImageCacheRecord(Base):
    """Generated image keyed by the (title, category) context hash."""

    __tablename__ = "image_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    context_hash: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    generation_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachment_id: Mapped[int] = mapped_column(Integer, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    last_used: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (UniqueConstraint("context_hash", name="uq_image_cache_context_hash"),)


# =============================================================================
# Block rules
# =============================================================================


class BlockRuleProfile(Base):
    """One version of the stored rule profile for a block.

    Exactly one version per block is current. Editing or reverting creates a
    new version; history is never rewritten.
    """

    __tablename__ = "block_rule_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    block_id: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    schema_json: Mapped[dict] = mapped_column(JSONType, nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    is_current: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    created_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("block_id", "version", name="uq_block_rule_profiles_block_version"),
        CheckConstraint(
            "source IN ('config', 'edited', 'revert')",
            name="ck_block_rule_profiles_source",
        ),
    )


class TemplateBlockOverride(Base):
    """Per-template override merged over the current profile."""

    __tablename__ = "template_block_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[str] = mapped_column(Text, nullable=False)
    block_id: Mapped[str] = mapped_column(Text, nullable=False)
    override_json: Mapped[dict] = mapped_column(JSONType, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("template_id", "block_id", name="uq_template_block_overrides"),
    )
