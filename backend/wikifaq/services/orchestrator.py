"""
Batch orchestrator.

Reads pending queue rows and runs them through the PagePipeline in waves of
at most WORKER_CONCURRENCY pages, pausing WAVE_DELAY_SECONDS between waves.
Each page claims its row first, so two orchestrators reading overlapping
batches never process the same page twice. A page that raises is marked
failed on its own; the rest of its wave carries on.

A single page is a batch of one: ``process_entry`` goes through the same
claim/run/fail path as ``run_batch``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from wikifaq.models.faq import QueueEntry
from wikifaq.services.pipeline import PagePipeline
from wikifaq.services.queue import ProcessingQueue

logger = logging.getLogger(__name__)

COMPLETED = "completed"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class BatchReport:
    read: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    waves: int = 0
    requeued: int = 0

    def record(self, status: str) -> None:
        if status == COMPLETED:
            self.completed += 1
        elif status == FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def as_dict(self) -> dict:
        return {
            "read": self.read,
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "waves": self.waves,
            "requeued": self.requeued,
        }


class BatchOrchestrator:
    """
    Concurrency-limited driver for the page pipeline.

    Usage:
    ------
    orchestrator = BatchOrchestrator(queue, pipeline, concurrency=50)
    report = await orchestrator.run_batch(500)
    """

    def __init__(
        self,
        queue: ProcessingQueue,
        pipeline: PagePipeline,
        concurrency: int = 50,
        batch_size: int = 500,
        wave_delay: float = 1.0,
        requeue_failed: bool = False,
        max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.queue = queue
        self.pipeline = pipeline
        self.concurrency = concurrency
        self.batch_size = batch_size
        self.wave_delay = wave_delay
        self.requeue_failed = requeue_failed
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def _run_one(self, entry: QueueEntry) -> str:
        """Claim, process and settle one page. Never raises for page errors."""
        claimed = await self.queue.claim(entry.id)
        if claimed is None:
            return SKIPPED

        try:
            outcome = await self.pipeline.process(claimed)
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            logger.exception(f"Unexpected error processing '{claimed.title}'")
            try:
                await self.queue.fail(claimed.id, reason)
            except Exception as record_error:
                logger.error(f"Could not record failure for entry {claimed.id}: {record_error}")
            return FAILED

        return COMPLETED if outcome.success else FAILED

    async def _run_guarded(self, entry: QueueEntry) -> str:
        # The claim itself can fail (database hiccup); keep that inside this page too
        try:
            return await self._run_one(entry)
        except Exception as e:
            logger.error(f"Could not run entry {entry.id}: {type(e).__name__}: {e}")
            return FAILED

    async def run_batch(self, batch_size: Optional[int] = None) -> BatchReport:
        """Process up to ``batch_size`` pending pages in waves."""
        report = BatchReport()

        if self.requeue_failed:
            report.requeued = await self.queue.requeue_failed(self.max_attempts)

        entries = await self.queue.pending(batch_size or self.batch_size)
        report.read = len(entries)
        if not entries:
            logger.info("No pending pages")
            return report

        logger.info(f"Processing {len(entries)} pending pages, {self.concurrency} at a time")

        for start in range(0, len(entries), self.concurrency):
            if start:
                await self._sleep(self.wave_delay)

            wave = entries[start:start + self.concurrency]
            results = await asyncio.gather(*(self._run_guarded(entry) for entry in wave))
            for status in results:
                report.record(status)
            report.waves += 1

            logger.info(
                f"Wave {report.waves} done: {results.count(COMPLETED)} completed, "
                f"{results.count(FAILED)} failed, {results.count(SKIPPED)} skipped"
            )

        logger.info(f"Batch finished: {report.as_dict()}")
        return report

    async def process_entry(self, entry_id: int) -> str:
        """Single-page path (a batch of one)."""
        entry = await self.queue.repository.get_queue_entry(entry_id)
        if entry is None:
            logger.warning(f"Queue entry {entry_id} does not exist")
            return SKIPPED
        return await self._run_guarded(entry)

    async def poll_forever(
        self,
        interval: float,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Run a batch every ``interval`` seconds until ``stop_event`` is set."""
        stop_event = stop_event or asyncio.Event()
        logger.info(f"Polling for pending pages every {interval}s")

        while not stop_event.is_set():
            try:
                await self.run_batch()
            except Exception as e:
                logger.error(f"Batch run failed: {type(e).__name__}: {e}", exc_info=True)

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Poller stopped")
