"""Bulk generation and validation schemas."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from pagegen.schemas.queue import check_block_names


class GenerateRequest(BaseModel):
    """Generate a page's blocks now, on behalf of `user_id`."""

    user_id: str = Field(..., min_length=1, max_length=128)
    block_types: list[str] | None = Field(default=None, min_length=1)

    @field_validator("block_types")
    @classmethod
    def validate_block_types(cls, v: list[str] | None) -> list[str] | None:
        return check_block_names(v)


class ValidationRequest(BaseModel):
    """Slot values per block, validated in `block_order`."""

    slot_content: dict[str, dict[str, Any]]
    block_order: list[str]
    template_id: str | None = None
    focus_keyword: str | None = None
