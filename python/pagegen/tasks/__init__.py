"""Celery tasks for pagegen.

Tasks are explicitly imported here to register them with Celery.
No autodiscovery - all tasks must be imported in this module.

Usage in worker:
    from pagegen.tasks import process_queued_page

Triggers are armed by the work queue through the scheduler:
    celery_app.send_task("process_queued_page", args=[page_id], eta=scheduled_at)
"""

from pagegen.tasks.generate_page import process_queued_page
from pagegen.tasks.link_images import generate_related_link_images
from pagegen.tasks.maintenance import cleanup_generation_history

__all__ = ["process_queued_page", "generate_related_link_images", "cleanup_generation_history"]
