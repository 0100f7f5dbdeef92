"""
Processing queue state machine.

    pending ──claim──▶ processing ──complete──▶ completed
                           │
                           └──────fail───────▶ failed

Every edge is a conditional UPDATE on the expected current status, so two
workers can never both move the same row. The only way out of ``failed``
is ``requeue_failed``, an explicit policy that is off by default.
"""

import logging
from typing import Dict, List, Optional, Tuple

from wikifaq.core.exceptions import InvalidTransitionError, QueueEntryNotFoundError
from wikifaq.db.base import utcnow
from wikifaq.models.faq import QueueEntry, QueueSource, QueueStatus
from wikifaq.services.repository import FaqRepository
from wikifaq.services.wikipedia import format_slug, page_url

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[QueueStatus, frozenset] = {
    QueueStatus.PENDING: frozenset({QueueStatus.PROCESSING}),
    QueueStatus.PROCESSING: frozenset({QueueStatus.COMPLETED, QueueStatus.FAILED}),
    QueueStatus.COMPLETED: frozenset(),
    QueueStatus.FAILED: frozenset(),
}


def can_transition(current: QueueStatus, target: QueueStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class ProcessingQueue:
    """
    Work queue of Wikipedia pages.

    Usage:
    ------
    queue = ProcessingQueue(repository)
    entry, created = await queue.enqueue("Albert Einstein")

    claimed = await queue.claim(entry.id)
    if claimed:
        ...
        await queue.complete(entry.id)
    """

    def __init__(self, repository: FaqRepository, base_url: str = "https://en.wikipedia.org"):
        self.repository = repository
        self.base_url = base_url

    async def enqueue(
        self,
        title: str,
        source: QueueSource = QueueSource.SEED,
        url: Optional[str] = None,
        human_readable_name: Optional[str] = None,
    ) -> Tuple[QueueEntry, bool]:
        """
        Add a page unless its slug is already queued (in any status).

        Raises:
            ValueError: If the title yields an empty slug
        """
        title = title.strip()
        slug = format_slug(title)
        if not slug:
            raise ValueError(f"Title '{title}' does not produce a usable slug")

        entry, created = await self.repository.insert_queue_entry(
            title=title,
            slug=slug,
            url=url or page_url(title, self.base_url),
            source=source,
            human_readable_name=human_readable_name,
        )
        if created:
            logger.info(f"Queued '{title}' ({slug}) from {source}")
        return entry, created

    async def pending(self, limit: int) -> List[QueueEntry]:
        return await self.repository.read_pending_queue(limit)

    async def claim(self, entry_id: int) -> Optional[QueueEntry]:
        """Claim a pending row; None if it was not pending any more."""
        entry = await self.repository.claim_queue_entry(entry_id)
        if entry is None:
            logger.info(f"Queue entry {entry_id} was not pending, skipping")
        return entry

    async def complete(self, entry_id: int) -> None:
        await self._finish(entry_id, QueueStatus.COMPLETED, error_message=None)

    async def fail(self, entry_id: int, reason: str) -> None:
        if not reason or not reason.strip():
            raise ValueError("A failure reason is required")
        await self._finish(entry_id, QueueStatus.FAILED, error_message=reason)

    async def _finish(self, entry_id: int, target: QueueStatus, error_message: Optional[str]) -> None:
        moved = await self.repository.transition_queue_status(
            entry_id,
            QueueStatus.PROCESSING,
            target,
            error_message=error_message,
            processed_at=utcnow(),
        )
        if moved:
            return

        entry = await self.repository.get_queue_entry(entry_id)
        if entry is None:
            raise QueueEntryNotFoundError(f"Queue entry {entry_id} does not exist")
        raise InvalidTransitionError(entry_id, str(entry.status), str(target))

    async def requeue_failed(self, max_attempts: int) -> int:
        """Policy reset: failed rows with attempts < max_attempts go back to pending."""
        count = await self.repository.requeue_failed(max_attempts)
        if count:
            logger.info(f"Requeued {count} failed entries (max_attempts={max_attempts})")
        return count

    async def stats(self) -> Dict[str, int]:
        return await self.repository.queue_stats()
