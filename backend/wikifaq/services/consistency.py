"""
Consistency repair between the relational store and the vector index.

The two stores are only eventually consistent: a record can reach the vector
index without its flag being set (flag update failed after the upsert), or
not reach it at all (upsert failed). These jobs converge them:

- sweep_vector_flags: flag records the index already holds, and optionally
  re-index the ones it does not
- propagate_slug_change: rewrite ``slug`` in vector metadata after a page is
  renamed
- fix_blank_slugs: fill in vectors whose metadata slug is empty from the
  owning FAQ file
- recanonicalize_slugs: re-resolve queue titles through Wikipedia search and
  move the queue row, its FAQ file and (for completed pages) its vectors to
  the canonical slug

All four are idempotent and safe to rerun after an interruption.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from wikifaq.models.faq import FaqRecord, QueueStatus
from wikifaq.services.indexer import VectorIndexer, chunked
from wikifaq.services.repository import FaqRepository
from wikifaq.services.vector_store import VectorStore
from wikifaq.services.wikipedia import WikipediaClient, format_slug, page_url

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    scanned: int = 0
    confirmed: int = 0
    missing_ids: List[int] = field(default_factory=list)
    reindexed: int = 0

    def as_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "confirmed": self.confirmed,
            "missing": len(self.missing_ids),
            "reindexed": self.reindexed,
        }


@dataclass
class RecanonicalizeReport:
    checked: int = 0
    renamed: List[str] = field(default_factory=list)
    unresolved: int = 0
    vectors_updated: int = 0

    def as_dict(self) -> dict:
        return {
            "checked": self.checked,
            "renamed": len(self.renamed),
            "unresolved": self.unresolved,
            "vectors_updated": self.vectors_updated,
        }


class ConsistencyRepair:
    """Repair jobs over the FAQ records and the vector store."""

    def __init__(
        self,
        repository: FaqRepository,
        store: VectorStore,
        indexer: Optional[VectorIndexer] = None,
        page_size: int = 1000,
        fetch_batch_size: int = 100,
        query_top_k: int = 1000,
        wikipedia: Optional[WikipediaClient] = None,
        base_url: str = "https://en.wikipedia.org",
    ):
        self.repository = repository
        self.store = store
        self.indexer = indexer
        self.wikipedia = wikipedia
        self.base_url = base_url
        self.page_size = page_size
        self.fetch_batch_size = fetch_batch_size
        self.query_top_k = query_top_k

    # ========================================
    # Flag Sweep
    # ========================================

    async def sweep_vector_flags(self, reindex_missing: bool = False) -> SweepReport:
        """
        Walk every record with vector_upsert_success=false.

        Pages by id (keyset) so the scan always moves forward, even when
        some records are genuinely absent from the index.
        """
        report = SweepReport()
        after_id = 0

        while True:
            ids = await self.repository.list_unflagged_record_ids(self.page_size, after_id)
            if not ids:
                break
            after_id = ids[-1]
            report.scanned += len(ids)

            for batch in chunked(ids, self.fetch_batch_size):
                present = await self.store.fetch([str(record_id) for record_id in batch])
                found = [record_id for record_id in batch if str(record_id) in present]
                if found:
                    report.confirmed += await self.repository.mark_vector_success(found)
                report.missing_ids.extend(record_id for record_id in batch if str(record_id) not in present)

            logger.info(f"Flag sweep at id {after_id}: {report.confirmed} confirmed so far")

        if reindex_missing and report.missing_ids:
            report.reindexed = await self._reindex(report.missing_ids)

        logger.info(f"Flag sweep finished: {report.as_dict()}")
        return report

    async def _reindex(self, record_ids: List[int]) -> int:
        if self.indexer is None:
            logger.warning("Re-index requested but no indexer configured")
            return 0

        by_slug: Dict[str, List[FaqRecord]] = defaultdict(list)
        for batch in chunked(record_ids, self.page_size):
            for record in await self.repository.get_records(batch):
                by_slug[record.faq_file.slug].append(record)

        reindexed = 0
        for slug, records in by_slug.items():
            report = await self.indexer.index_records(records, slug)
            reindexed += len(report.indexed_ids)
        return reindexed

    # ========================================
    # Slug Metadata
    # ========================================

    async def propagate_slug_change(self, old_slug: str, new_slug: str) -> int:
        """Point every vector with metadata slug ``old_slug`` at ``new_slug``."""
        if old_slug == new_slug:
            return 0

        updated: set = set()
        while True:
            matches = await self.store.query_by_metadata("slug", old_slug, self.query_top_k)
            fresh = [match for match in matches if match.id not in updated]
            if not fresh:
                break
            for match in fresh:
                await self.store.update_metadata(match.id, {"slug": new_slug})
                updated.add(match.id)
            if len(matches) < self.query_top_k:
                break

        logger.info(f"Moved {len(updated)} vectors from slug '{old_slug}' to '{new_slug}'")
        return len(updated)

    async def fix_blank_slugs(self) -> int:
        """Fill empty metadata slugs from the record's FAQ file."""
        matches = await self.store.query_by_metadata("slug", "", self.query_top_k)
        fixed = 0

        for match in matches:
            try:
                record_id = int(match.id)
            except ValueError:
                logger.warning(f"Vector id '{match.id}' is not a record id, skipping")
                continue

            slug = await self.repository.get_slug_for_record(record_id)
            if not slug:
                logger.warning(f"No FAQ file found for record {record_id}")
                continue

            await self.store.update_metadata(match.id, {"slug": slug})
            fixed += 1

        logger.info(f"Fixed {fixed}/{len(matches)} vectors with a blank slug")
        return fixed

    # ========================================
    # Canonical Titles
    # ========================================

    async def recanonicalize_slugs(self, limit: Optional[int] = None) -> RecanonicalizeReport:
        """
        Re-resolve queue titles to Wikipedia's canonical title.

        A page queued under a variant title ("Einstein", "Albert einstein")
        gets the slug of the best search hit. The queue row and its FAQ file
        move together; vectors follow only once the page is completed, since
        earlier rows have none yet. Rows being processed are skipped, and a
        canonical slug that another row already owns is left alone.
        """
        report = RecanonicalizeReport()
        if self.wikipedia is None:
            logger.warning("Slug re-canonicalisation requested but no Wikipedia client configured")
            return report

        statuses = (QueueStatus.PENDING, QueueStatus.COMPLETED, QueueStatus.FAILED)
        after_id = 0

        while limit is None or report.checked < limit:
            page_size = self.page_size if limit is None else min(self.page_size, limit - report.checked)
            entries = await self.repository.list_queue_entries(statuses, page_size, after_id)
            if not entries:
                break
            after_id = entries[-1].id

            for entry in entries:
                report.checked += 1
                canonical = await self.wikipedia.search_title(entry.title)
                if not canonical:
                    report.unresolved += 1
                    continue

                new_slug = format_slug(canonical)
                if not new_slug or new_slug == entry.slug:
                    continue
                if await self.repository.get_queue_entry_by_slug(new_slug) is not None:
                    logger.info(f"'{entry.slug}' resolves to '{new_slug}', which is already queued")
                    continue

                old_slug = entry.slug
                renamed = await self.repository.rename_queue_slug(
                    entry, canonical, new_slug, page_url(canonical, self.base_url)
                )
                if not renamed:
                    continue
                report.renamed.append(new_slug)
                logger.info(f"Renamed '{old_slug}' to '{new_slug}' ({entry.status})")

                if entry.status == QueueStatus.COMPLETED:
                    report.vectors_updated += await self.propagate_slug_change(old_slug, new_slug)

        logger.info(f"Slug re-canonicalisation finished: {report.as_dict()}")
        return report
