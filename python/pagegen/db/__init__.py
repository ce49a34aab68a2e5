"""Database module for pagegen.

Provides engine creation, session factories, the transaction helper and the ORM models.
"""

from pagegen.db.engine import create_db_engine, get_engine
from pagegen.db.models import (
    Base,
    BlockRuleProfile,
    GenerationCounter,
    GenerationLog,
    GenerationQueueItem,
    GenerationQueueState,
    Image,
    ImageCacheRecord,
    LogStatus,
    Page,
    ProfileSource,
    QueueStatus,
    TemplateBlockOverride,
)
from pagegen.db.session import get_db, get_session_factory, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "get_session_factory",
    "transaction",
    # Base
    "Base",
    # Enums
    "QueueStatus",
    "LogStatus",
    "ProfileSource",
    # Host models
    "Page",
    "Image",
    # Pipeline models
    "GenerationQueueItem",
    "GenerationQueueState",
    "GenerationLog",
    "GenerationCounter",
    "ImageCacheRecord",
    "BlockRuleProfile",
    "TemplateBlockOverride",
]
