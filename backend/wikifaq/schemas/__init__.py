"""
Pydantic schemas for LLM payloads and API request/response validation.
"""

from wikifaq.schemas.faq import (
    FaqItem,
    FirstPassResult,
    PageContent,
    SecondPassResult,
)
from wikifaq.schemas.pipeline import (
    EnqueuePageRequest,
    PipelineRunRequest,
    PipelineRunResponse,
    QueueEntryResponse,
    QueueStatsResponse,
)

__all__ = [
    # Generation
    "PageContent",
    "FaqItem",
    "FirstPassResult",
    "SecondPassResult",
    # API
    "PipelineRunRequest",
    "PipelineRunResponse",
    "EnqueuePageRequest",
    "QueueEntryResponse",
    "QueueStatsResponse",
]
