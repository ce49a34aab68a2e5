"""FastAPI dependencies for route handlers.

Shared resources (the sync httpx client, Redis, the trigger scheduler) are
created once at startup and stored on app.state; services are built per
request over the request's database session.
"""

from typing import Annotated

import httpx
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from pagegen.db.session import get_db
from pagegen.services.block_rules import BlockRuleService
from pagegen.services.cost_tracking import CostTracker
from pagegen.services.generation import GenerationService, build_generation_service
from pagegen.services.image_generation import ImageGenerator, build_image_generator
from pagegen.services.rate_limit import get_bulk_limiter
from pagegen.services.scheduler import Scheduler
from pagegen.services.validation import ValidationService
from pagegen.services.work_queue import WorkQueue

__all__ = [
    "get_db",
    "get_http_client",
    "get_redis_client",
    "get_scheduler",
    "get_work_queue",
    "get_generation_service",
    "get_cost_tracker",
    "get_validation_service",
    "get_image_generator",
]


def get_http_client(request: Request) -> httpx.Client:
    """Shared httpx client (connection pooling for provider calls)."""
    return request.app.state.http_client


def get_redis_client(request: Request):
    """Shared Redis client, or None when Redis is not configured."""
    return getattr(request.app.state, "redis_client", None)


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler


def get_work_queue(
    db: Annotated[Session, Depends(get_db)],
    scheduler: Annotated[Scheduler, Depends(get_scheduler)],
) -> WorkQueue:
    return WorkQueue(db, scheduler)


def get_generation_service(
    db: Annotated[Session, Depends(get_db)],
    http_client: Annotated[httpx.Client, Depends(get_http_client)],
    scheduler: Annotated[Scheduler, Depends(get_scheduler)],
    redis_client=Depends(get_redis_client),
) -> GenerationService:
    return build_generation_service(
        db,
        http_client,
        scheduler=scheduler,
        redis_client=redis_client,
        limiter=get_bulk_limiter(),
    )


def get_cost_tracker(
    db: Annotated[Session, Depends(get_db)],
    redis_client=Depends(get_redis_client),
) -> CostTracker:
    return CostTracker(db, redis_client=redis_client)


def get_validation_service(db: Annotated[Session, Depends(get_db)]) -> ValidationService:
    return ValidationService(BlockRuleService(db))


def get_image_generator(
    db: Annotated[Session, Depends(get_db)],
    http_client: Annotated[httpx.Client, Depends(get_http_client)],
) -> ImageGenerator:
    return build_image_generator(db, http_client)
