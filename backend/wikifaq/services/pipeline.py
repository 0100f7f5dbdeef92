"""
Per-page FAQ pipeline.

Runs one claimed queue entry through the fixed sequence:

    validate URL → fetch page → first pass → persist → enqueue cross-links
    → second pass (unused images only) → persist → enqueue cross-links
    → index every record → mark completed

Expected failures (bad URL, missing page, first-pass exhaustion, no display
name) mark the entry failed with a reason and return normally. Anything
else raises, and the orchestrator records it as the page's failure.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from wikifaq.models.faq import FaqRecord, QueueEntry
from wikifaq.schemas.faq import FaqItem, PageContent
from wikifaq.services.cross_links import CrossLinkResolver, collect_references
from wikifaq.services.generator import FaqGenerator, GenerationFailed, claim_media
from wikifaq.services.indexer import VectorIndexer
from wikifaq.services.queue import ProcessingQueue
from wikifaq.services.repository import FaqRepository
from wikifaq.services.wikipedia import WikipediaClient, is_wikipedia_url

logger = logging.getLogger(__name__)

MALFORMED_URL = "Malformed source URL"
NO_CONTENT = "No content found"
NO_NAME = "No human-readable name found"
FIRST_PASS_FAILED = "First pass generation failed"


@dataclass
class PageOutcome:
    """What happened to one page."""

    entry_id: int
    slug: str
    success: bool
    reason: Optional[str] = None
    first_pass_count: int = 0
    second_pass_count: int = 0
    indexed_count: int = 0
    discovered_count: int = 0

    @property
    def record_count(self) -> int:
        return self.first_pass_count + self.second_pass_count


class PagePipeline:
    """Turns one claimed queue entry into stored, indexed FAQs."""

    def __init__(
        self,
        queue: ProcessingQueue,
        repository: FaqRepository,
        wikipedia: WikipediaClient,
        generator: FaqGenerator,
        cross_links: CrossLinkResolver,
        indexer: VectorIndexer,
    ):
        self.queue = queue
        self.repository = repository
        self.wikipedia = wikipedia
        self.generator = generator
        self.cross_links = cross_links
        self.indexer = indexer

    async def _fail(self, entry: QueueEntry, reason: str, **counts: int) -> PageOutcome:
        logger.warning(f"Page '{entry.title}' failed: {reason}")
        await self.queue.fail(entry.id, reason)
        return PageOutcome(entry_id=entry.id, slug=entry.slug, success=False, reason=reason, **counts)

    async def _persist(
        self,
        faq_file_id: int,
        faqs: List[FaqItem],
        entry: QueueEntry,
        name: str,
        last_updated: Optional[str],
    ) -> List[FaqRecord]:
        return await self.repository.insert_faq_records(
            faq_file_id,
            faqs,
            url=entry.url,
            title=entry.title,
            human_readable_name=name,
            last_updated=last_updated,
        )

    async def process(self, entry: QueueEntry) -> PageOutcome:
        """Process a queue entry that has already been claimed."""
        if not is_wikipedia_url(entry.url):
            return await self._fail(entry, MALFORMED_URL)

        page: Optional[PageContent] = await self.wikipedia.fetch_page(entry.title)
        if page is None:
            return await self._fail(entry, NO_CONTENT)

        # First pass
        first = await self.generator.generate_first_pass(
            entry.title, page.html, page.last_updated, page.images
        )
        if isinstance(first, GenerationFailed):
            return await self._fail(entry, f"{FIRST_PASS_FAILED}: {first.error}")

        name = entry.human_readable_name or first.human_readable_name
        if not name:
            return await self._fail(entry, NO_NAME)

        last_updated = page.last_updated or first.last_updated
        used_images: Set[str] = set()
        first_faqs = claim_media(first.faqs, used_images)

        faq_file_id = await self.repository.upsert_faq_file(entry.slug, name)
        records = await self._persist(faq_file_id, first_faqs, entry, name, last_updated)

        discovered = await self.cross_links.resolve_and_enqueue(
            collect_references(first_faqs), exclude_slug=entry.slug
        )

        # Second pass, conditioned on everything the first pass produced
        available = [url for url in page.images if url not in used_images]
        extra = await self.generator.generate_second_pass(
            entry.title,
            page.html,
            first_faqs,
            available,
            used_images=[url for url in page.images if url in used_images],
        )
        extra_faqs = claim_media(extra, used_images)
        records += await self._persist(faq_file_id, extra_faqs, entry, name, last_updated)

        discovered += await self.cross_links.resolve_and_enqueue(
            collect_references(extra_faqs), exclude_slug=entry.slug
        )

        report = await self.indexer.index_records(records, entry.slug)

        await self.queue.complete(entry.id)
        logger.info(
            f"Completed '{entry.title}': {len(first_faqs)} + {len(extra_faqs)} FAQs, "
            f"{len(report.indexed_ids)} indexed, {len(discovered)} new pages"
        )
        return PageOutcome(
            entry_id=entry.id,
            slug=entry.slug,
            success=True,
            first_pass_count=len(first_faqs),
            second_pass_count=len(extra_faqs),
            indexed_count=len(report.indexed_ids),
            discovered_count=len(discovered),
        )
