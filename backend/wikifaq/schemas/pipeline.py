"""
Pydantic schemas for the pipeline API endpoints.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


# ========================================
# Request Schemas
# ========================================


class PipelineRunRequest(BaseModel):
    """Request schema for triggering an orchestrator run."""

    batch_size: Optional[int] = Field(
        None,
        ge=1,
        le=10_000,
        description="Pending rows to read for this run (defaults to PIPELINE_BATCH_SIZE)",
    )


class EnqueuePageRequest(BaseModel):
    """Request schema for adding a Wikipedia page to the queue."""

    title: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Wikipedia page title",
        examples=["Albert Einstein", "Photosynthesis"],
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        return v


# ========================================
# Response Schemas
# ========================================


class PipelineRunResponse(BaseModel):
    """Response schema for a queued orchestrator run."""

    message: str
    task_id: str


class QueueEntryResponse(BaseModel):
    """Response schema for an enqueue request."""

    id: int
    title: str
    slug: str
    url: str
    status: str
    source: str
    created: bool = Field(..., description="False when the slug was already queued")


class QueueStatsResponse(BaseModel):
    """Row counts per queue status."""

    counts: Dict[str, int]
    total: int
