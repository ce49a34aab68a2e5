"""Queue request and response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pagegen.services.blocks import is_known_block


def check_block_names(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    unknown = [b for b in value if not is_known_block(b)]
    if unknown:
        raise ValueError(f"Unknown block types: {', '.join(unknown)}")
    return value


class EnqueueRequest(BaseModel):
    """Queue one page. `index` staggers it within a batch."""

    page_id: int = Field(..., gt=0)
    index: int = Field(default=0, ge=0)
    block_selection: list[str] | None = Field(default=None, min_length=1)

    @field_validator("block_selection")
    @classmethod
    def validate_block_selection(cls, v: list[str] | None) -> list[str] | None:
        return check_block_names(v)


class QueueItemOut(BaseModel):
    id: int
    page_id: int
    status: str  # pending | processing | completed | failed
    scheduled_at: datetime
    queued_at: datetime
    updated_at: datetime | None = None
    error: str | None = None
    block_selection: list[str] | None = None
    retry_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class QueueStatsOut(BaseModel):
    pending: int
    processing: int
    completed: int
    failed: int
    total: int
    estimated_completion: datetime | None = None
    paused: bool
