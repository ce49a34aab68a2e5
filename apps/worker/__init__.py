"""Worker package: `celery -A apps.worker worker` finds celery_app here."""

from apps.worker.main import celery_app

__all__ = ["celery_app"]
