"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from pagegen.schemas.generation import GenerateRequest, ValidationRequest
from pagegen.schemas.queue import EnqueueRequest, QueueItemOut, QueueStatsOut

__all__ = [
    # Queue
    "EnqueueRequest",
    "QueueItemOut",
    "QueueStatsOut",
    # Generation
    "GenerateRequest",
    "ValidationRequest",
]
