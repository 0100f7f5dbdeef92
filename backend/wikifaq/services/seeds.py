"""
Seed discovery from Wikipedia's most-read pages.
"""

import logging
from datetime import date
from typing import List, Optional

from wikifaq.models.faq import QueueEntry, QueueSource
from wikifaq.services.queue import ProcessingQueue
from wikifaq.services.wikipedia import WikipediaClient

logger = logging.getLogger(__name__)


class SeedService:
    """Enqueue top-viewed articles with source=seed."""

    def __init__(self, queue: ProcessingQueue, wikipedia: WikipediaClient):
        self.queue = queue
        self.wikipedia = wikipedia

    async def seed_top_pages(self, target: int, day: Optional[date] = None) -> List[QueueEntry]:
        """
        Walk the top-pages list until ``target`` new rows exist or it runs out.

        Titles that are already queued do not count towards the target.
        """
        titles = await self.wikipedia.top_pages(day)
        created: List[QueueEntry] = []

        for raw_title in titles:
            if len(created) >= target:
                break
            title = raw_title.replace("_", " ")
            try:
                entry, was_created = await self.queue.enqueue(title, source=QueueSource.SEED)
            except ValueError as e:
                logger.warning(f"Skipping seed '{raw_title}': {e}")
                continue
            if was_created:
                created.append(entry)

        logger.info(f"Seeded {len(created)} pages from {len(titles)} top titles")
        return created
