"""Interactive generation, validation and cost routes.

- POST /pages/{page_id}/generate: Bulk-generate a page's blocks now
  (429 E_RATE_LIMITED when the user already runs 3 bulk generations)
- GET /pages/{page_id}/progress?user_id=: Latest bulk progress snapshot
- POST /validation: Validate slot content against the resolved block rules
- GET /costs/summary: Month-to-date cost, budget, success rate, image stats

Bulk generation is synchronous: the response arrives once every block has
run, and the admin UI polls /progress meanwhile.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from pagegen.api.deps import (
    get_cost_tracker,
    get_generation_service,
    get_image_generator,
    get_validation_service,
)
from pagegen.config import get_settings
from pagegen.errors import NotFoundError
from pagegen.responses import success_response
from pagegen.schemas.generation import GenerateRequest, ValidationRequest
from pagegen.services.cost_tracking import CostTracker
from pagegen.services.generation import GenerationService
from pagegen.services.image_generation import ImageGenerator
from pagegen.services.validation import ValidationService

router = APIRouter()


@router.post("/pages/{page_id}/generate")
def generate_page(
    page_id: int,
    body: GenerateRequest,
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> dict:
    """Run every requested block for the page.

    Errors:
        E_PAGE_NOT_FOUND (404): Page missing or not a generated page
        E_RATE_LIMITED (429): Too many concurrent bulk generations for the user
    """
    result = service.generate_all_blocks(page_id, body.user_id, body.block_types)
    return success_response(result.to_dict())


@router.get("/pages/{page_id}/progress")
def generation_progress(
    page_id: int,
    user_id: Annotated[str, Query(min_length=1)],
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> dict:
    progress = service.get_progress(page_id, user_id)
    if progress is None:
        raise NotFoundError(message="No generation in progress")
    return success_response(progress)


@router.post("/validation")
def validate_content(
    body: ValidationRequest,
    validation: Annotated[ValidationService, Depends(get_validation_service)],
) -> dict:
    result = validation.validate_page(
        body.slot_content, body.block_order, body.template_id, body.focus_keyword
    )
    return success_response(result.to_dict())


@router.get("/costs/summary")
def cost_summary(
    costs: Annotated[CostTracker, Depends(get_cost_tracker)],
    images: Annotated[ImageGenerator, Depends(get_image_generator)],
) -> dict:
    settings = get_settings()
    current = costs.get_current_month_cost()
    budget = settings.monthly_budget
    return success_response(
        {
            "month_cost": round(current, 6),
            "monthly_budget": budget,
            "budget_used_percent": round(current / budget * 100, 1) if budget > 0 else None,
            "success_rate": costs.get_success_rate(),
            "images": images.get_cost_stats().to_dict(),
        }
    )


