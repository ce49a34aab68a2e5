"""Celery task that fills AI images on a page's related links.

Armed by the orchestrator after a queued job completes (when
ENABLE_LINK_IMAGE_GENERATION is on). Runs on the default queue, outside the
generation rate gate; every image goes through the context-hash cache, so
links shared across pages are rendered once.
"""

import httpx

from pagegen.celery import celery_app
from pagegen.config import get_settings
from pagegen.db.session import get_session_factory
from pagegen.logging import clear_task_context, configure_task_logging, get_logger
from pagegen.services.host import SqlContentHost
from pagegen.services.image_generation import RelatedLinksImageService, build_image_generator

logger = get_logger(__name__)

HTTP_TIMEOUT = httpx.Timeout(120.0, connect=10.0)


def fill_link_images(
    db, http_client: httpx.Client, page_id: int, *, settings=None, storage=None
) -> dict:
    """Run the related-link image pass for one page. Returns the report counts."""
    settings = settings or get_settings()
    host = SqlContentHost(db, site_url=settings.site_url)
    generator = build_image_generator(db, http_client, settings=settings, storage=storage)
    report = RelatedLinksImageService(host, generator).generate_images_for_page(page_id)
    return {
        "generated": report.generated,
        "cached": report.cached,
        "failed": report.failed,
        "errors": list(report.errors),
    }


@celery_app.task(bind=True, max_retries=0, name="generate_related_link_images")
def generate_related_link_images(self, page_id: int, request_id: str | None = None) -> dict:
    configure_task_logging(
        request_id=request_id,
        task_name="generate_related_link_images",
        task_id=self.request.id,
        page_id=page_id,
    )

    db = get_session_factory()()
    http_client = httpx.Client(timeout=HTTP_TIMEOUT)
    try:
        result = fill_link_images(db, http_client, page_id)
        logger.info(
            "generate_related_link_images_completed",
            page_id=page_id,
            generated=result["generated"],
            cached=result["cached"],
            failed=result["failed"],
        )
        return result
    finally:
        http_client.close()
        db.close()
        clear_task_context()
