"""
Pipeline API endpoints.

Thin trigger surface over the queue: enqueue a page, inspect queue counts,
and hand an orchestrator run to the Celery worker.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from wikifaq.api.deps import get_queue
from wikifaq.models.faq import QueueSource
from wikifaq.schemas.pipeline import (
    EnqueuePageRequest,
    PipelineRunRequest,
    PipelineRunResponse,
    QueueEntryResponse,
    QueueStatsResponse,
)
from wikifaq.services.queue import ProcessingQueue
from wikifaq.tasks.pipeline_tasks import process_pending_pages

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pipeline", tags=["Pipeline"])


@router.post("/runs", response_model=PipelineRunResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_run(request: PipelineRunRequest) -> PipelineRunResponse:
    """Queue one orchestrator batch on the worker."""
    task = process_pending_pages.apply_async(args=[request.batch_size], countdown=1)
    logger.info(f"Queued pipeline run {task.id} (batch_size={request.batch_size})")
    return PipelineRunResponse(
        message="Pipeline run queued",
        task_id=task.id,
    )


@router.post("/queue", response_model=QueueEntryResponse)
async def enqueue_page(
    request: EnqueuePageRequest,
    queue: ProcessingQueue = Depends(get_queue),
) -> QueueEntryResponse:
    """Add a Wikipedia page to the processing queue (idempotent by slug)."""
    try:
        entry, created = await queue.enqueue(request.title, source=QueueSource.SEED)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    return QueueEntryResponse(
        id=entry.id,
        title=entry.title,
        slug=entry.slug,
        url=entry.url,
        status=str(entry.status),
        source=str(entry.source),
        created=created,
    )


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def queue_stats(queue: ProcessingQueue = Depends(get_queue)) -> QueueStatsResponse:
    """Row counts per queue status."""
    counts = await queue.stats()
    return QueueStatsResponse(counts=counts, total=sum(counts.values()))
