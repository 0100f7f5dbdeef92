"""
Database Models

Import models from this module to ensure they're registered with SQLAlchemy:

    from wikifaq.models import QueueEntry, FaqFile, FaqRecord
"""

from wikifaq.models.faq import (
    FaqFile,
    FaqRecord,
    FaqVector,
    QueueEntry,
    QueueSource,
    QueueStatus,
)

__all__ = [
    "QueueEntry",
    "FaqFile",
    "FaqRecord",
    "FaqVector",
    # Enums
    "QueueStatus",
    "QueueSource",
]
