"""
Celery tasks for the FAQ pipeline.

This module contains background tasks for:
- Processing pending queue rows in waves (beat-scheduled poll)
- Processing a single queue row
- Seeding the queue from Wikipedia's most-read pages
- Vector consistency repair (flag sweep, blank slugs, slug renames)

Each task runs its coroutine with ``run_async`` on a fresh event loop, so it
builds its own ServiceContainer (engines and HTTP clients are bound to the
loop that created them) and closes it before returning.
"""

import asyncio
import concurrent.futures
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from celery import Task

from wikifaq.core.config import get_settings
from wikifaq.services.container import ServiceContainer
from wikifaq.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ========================================
# Async Helper
# ========================================

def run_async(coro):
    """
    Run a coroutine from synchronous task code.

    - Celery worker (no running loop): asyncio.run()
    - Inside a running loop (tests, eager mode): on a helper thread
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


async def with_container(work: Callable[[ServiceContainer], Awaitable[T]]) -> T:
    container = await ServiceContainer.create(get_settings())
    try:
        return await work(container)
    finally:
        await container.aclose()


# ========================================
# Base Task Class
# ========================================

class PipelineTask(Task):
    """
    Base task for pipeline jobs.

    Page-level failures are recorded on the queue row, not raised, so
    autoretry only fires for infrastructure errors (database, broker).
    """

    autoretry_for = (Exception,)
    retry_kwargs = {'max_retries': 3}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True


# ========================================
# Queue Processing
# ========================================

@celery_app.task(
    base=PipelineTask,
    name='pipeline.process_pending_pages',
    bind=True,
)
def process_pending_pages(self, batch_size: Optional[int] = None) -> Dict[str, Any]:
    """Run one orchestrator batch over pending queue rows."""
    logger.info(f"Processing pending pages (batch_size={batch_size})")

    async def _process(container: ServiceContainer):
        return await container.orchestrator.run_batch(batch_size)

    report = run_async(with_container(_process))
    return {'success': True, **report.as_dict()}


@celery_app.task(
    base=PipelineTask,
    name='pipeline.process_page',
    bind=True,
)
def process_page(self, entry_id: int) -> Dict[str, Any]:
    """Claim and process a single queue row."""

    async def _process(container: ServiceContainer):
        return await container.orchestrator.process_entry(entry_id)

    status = run_async(with_container(_process))
    return {'success': status == 'completed', 'entry_id': entry_id, 'status': status}


@celery_app.task(
    base=PipelineTask,
    name='pipeline.seed_top_pages',
    bind=True,
)
def seed_top_pages(self, target: int = 50) -> Dict[str, Any]:
    """Enqueue up to ``target`` new pages from yesterday's most-read list."""

    async def _seed(container: ServiceContainer):
        return await container.seeds.seed_top_pages(target)

    created = run_async(with_container(_seed))
    return {'success': True, 'seeded': len(created), 'slugs': [entry.slug for entry in created]}


# ========================================
# Consistency Repair
# ========================================

@celery_app.task(
    base=PipelineTask,
    name='pipeline.repair_vector_flags',
    bind=True,
)
def repair_vector_flags(self, reindex_missing: Optional[bool] = None) -> Dict[str, Any]:
    """Flag records the vector index already holds; optionally re-index the rest."""
    settings = get_settings()
    reindex = settings.REPAIR_REINDEX_MISSING if reindex_missing is None else reindex_missing

    async def _sweep(container: ServiceContainer):
        return await container.repair.sweep_vector_flags(reindex_missing=reindex)

    report = run_async(with_container(_sweep))
    return {'success': True, **report.as_dict()}


@celery_app.task(
    base=PipelineTask,
    name='pipeline.fix_blank_vector_slugs',
    bind=True,
)
def fix_blank_vector_slugs(self) -> Dict[str, Any]:

    async def _fix(container: ServiceContainer):
        return await container.repair.fix_blank_slugs()

    fixed = run_async(with_container(_fix))
    return {'success': True, 'fixed': fixed}


@celery_app.task(
    base=PipelineTask,
    name='pipeline.propagate_slug_change',
    bind=True,
)
def propagate_slug_change(self, old_slug: str, new_slug: str) -> Dict[str, Any]:

    async def _propagate(container: ServiceContainer):
        return await container.repair.propagate_slug_change(old_slug, new_slug)

    updated = run_async(with_container(_propagate))
    return {'success': True, 'old_slug': old_slug, 'new_slug': new_slug, 'updated': updated}


@celery_app.task(
    base=PipelineTask,
    name='pipeline.recanonicalize_slugs',
    bind=True,
)
def recanonicalize_slugs(self, limit: Optional[int] = None) -> Dict[str, Any]:
    """Move queue rows, FAQ files and vectors to Wikipedia's canonical slugs."""

    async def _recanonicalize(container: ServiceContainer):
        return await container.repair.recanonicalize_slugs(limit)

    report = run_async(with_container(_recanonicalize))
    return {'success': True, **report.as_dict()}
