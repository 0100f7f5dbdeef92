"""
Persistence layer for the FAQ pipeline.

Every method opens its own short-lived session from the factory, so
concurrently processed pages never share a session or a transaction.
Database errors (SQLAlchemyError) propagate; retrying them is not this
layer's job.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from wikifaq.models.faq import (
    CROSS_LINK_SEPARATOR,
    FaqFile,
    FaqRecord,
    QueueEntry,
    QueueSource,
    QueueStatus,
)
from wikifaq.schemas.faq import FaqItem

logger = logging.getLogger(__name__)

_REQUIRED_RECORD_FIELDS = ("faq_file_id", "url", "title", "question", "answer")


class FaqRepository:
    """
    Data access for queue rows, FAQ files and FAQ records.

    Example:
        >>> repo = FaqRepository(session_factory)
        >>> file_id = await repo.upsert_faq_file("albert-einstein", "Albert Einstein")
        >>> records = await repo.insert_faq_records(file_id, faqs, url=..., title=..., ...)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ========================================
    # Processing Queue
    # ========================================

    async def get_queue_entry(self, entry_id: int) -> Optional[QueueEntry]:
        async with self.session_factory() as session:
            return await session.get(QueueEntry, entry_id)

    async def get_queue_entry_by_slug(self, slug: str) -> Optional[QueueEntry]:
        async with self.session_factory() as session:
            result = await session.execute(select(QueueEntry).where(QueueEntry.slug == slug))
            return result.scalar_one_or_none()

    async def insert_queue_entry(
        self,
        title: str,
        slug: str,
        url: str,
        source: QueueSource,
        human_readable_name: Optional[str] = None,
    ) -> Tuple[QueueEntry, bool]:
        """
        Insert a pending row unless the slug is already queued.

        Returns:
            (entry, created); created is False when a row for the slug
            already existed, including when a concurrent insert won.
        """
        existing = await self.get_queue_entry_by_slug(slug)
        if existing is not None:
            return existing, False

        entry = QueueEntry(
            title=title,
            slug=slug,
            url=url,
            human_readable_name=human_readable_name,
            status=QueueStatus.PENDING,
            attempts=0,
            source=source,
        )
        async with self.session_factory() as session:
            session.add(entry)
            try:
                await session.commit()
                return entry, True
            except IntegrityError:
                await session.rollback()

        logger.debug(f"Concurrent enqueue for slug '{slug}', reading the winner")
        winner = await self.get_queue_entry_by_slug(slug)
        if winner is None:
            # Unique violation with no surviving row means the error was not the slug
            raise RuntimeError(f"Queue insert for '{slug}' failed and no row exists")
        return winner, False

    async def read_pending_queue(self, limit: int) -> List[QueueEntry]:
        """Pending rows, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(QueueEntry)
                .where(QueueEntry.status == QueueStatus.PENDING)
                .order_by(QueueEntry.created_at, QueueEntry.id)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def claim_queue_entry(self, entry_id: int) -> Optional[QueueEntry]:
        """
        Atomically move a pending row to processing and bump attempts.

        One conditional UPDATE; a row count of zero means the row was not
        pending any more (another worker claimed it first).
        """
        async with self.session_factory() as session:
            result = await session.execute(
                update(QueueEntry)
                .where(QueueEntry.id == entry_id, QueueEntry.status == QueueStatus.PENDING)
                .values(status=QueueStatus.PROCESSING, attempts=QueueEntry.attempts + 1)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            if result.rowcount != 1:
                return None
            return await session.get(QueueEntry, entry_id, populate_existing=True)

    async def transition_queue_status(
        self,
        entry_id: int,
        expected: QueueStatus,
        target: QueueStatus,
        **values: Any,
    ) -> bool:
        """Set ``target`` (plus extra columns) only if the row is in ``expected``."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(QueueEntry)
                .where(QueueEntry.id == entry_id, QueueEntry.status == expected)
                .values(status=target, **values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    async def requeue_failed(self, max_attempts: int) -> int:
        """Reset failed rows with attempts left back to pending."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(QueueEntry)
                .where(
                    QueueEntry.status == QueueStatus.FAILED,
                    QueueEntry.attempts < max_attempts,
                )
                .values(status=QueueStatus.PENDING, processed_at=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount or 0

    async def list_queue_entries(
        self,
        statuses: Sequence[QueueStatus],
        limit: int,
        after_id: int = 0,
    ) -> List[QueueEntry]:
        """Rows in any of ``statuses``, keyset-paginated by id."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(QueueEntry)
                .where(QueueEntry.status.in_(list(statuses)), QueueEntry.id > after_id)
                .order_by(QueueEntry.id)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def rename_queue_slug(
        self,
        entry: QueueEntry,
        title: str,
        slug: str,
        url: str,
    ) -> bool:
        """
        Move a queue row and its FAQ file to a new slug in one transaction.

        The queue row is only touched while it still has the slug and status
        it was read with, so a row claimed in the meantime is left alone.
        Returns False when the row moved on or the new slug is already taken.
        """
        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    update(QueueEntry)
                    .where(
                        QueueEntry.id == entry.id,
                        QueueEntry.slug == entry.slug,
                        QueueEntry.status == entry.status,
                    )
                    .values(title=title, slug=slug, url=url)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await session.rollback()
                    return False
                await session.execute(
                    update(FaqFile)
                    .where(FaqFile.slug == entry.slug)
                    .values(slug=slug)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                return True
            except IntegrityError:
                await session.rollback()
                logger.warning(f"Slug '{slug}' already taken, keeping '{entry.slug}'")
                return False

    async def queue_stats(self) -> Dict[str, int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(QueueEntry.status, func.count(QueueEntry.id)).group_by(QueueEntry.status)
            )
            counts = {str(status): 0 for status in QueueStatus}
            for status, count in result.all():
                counts[str(status)] = count
            return counts

    # ========================================
    # FAQ Files
    # ========================================

    async def get_faq_file_by_slug(self, slug: str) -> Optional[FaqFile]:
        async with self.session_factory() as session:
            result = await session.execute(select(FaqFile).where(FaqFile.slug == slug))
            return result.scalar_one_or_none()

    async def upsert_faq_file(self, slug: str, human_readable_name: str) -> int:
        """Id of the FaqFile for ``slug``, creating it on first use."""
        existing = await self.get_faq_file_by_slug(slug)
        if existing is not None:
            return existing.id

        async with self.session_factory() as session:
            faq_file = FaqFile(slug=slug, human_readable_name=human_readable_name)
            session.add(faq_file)
            try:
                await session.commit()
                logger.info(f"Created faq file {faq_file.id} for '{slug}'")
                return faq_file.id
            except IntegrityError:
                await session.rollback()

        winner = await self.get_faq_file_by_slug(slug)
        if winner is None:
            raise RuntimeError(f"FAQ file insert for '{slug}' failed and no row exists")
        return winner.id

    # ========================================
    # FAQ Records
    # ========================================

    @staticmethod
    def _build_record(fields: Dict[str, Any]) -> FaqRecord:
        missing = [name for name in _REQUIRED_RECORD_FIELDS if not fields.get(name)]
        if missing:
            raise ValueError(f"FAQ record missing required fields: {', '.join(missing)}")
        return FaqRecord(**fields)

    @staticmethod
    def record_fields_from_item(
        faq: FaqItem,
        *,
        faq_file_id: int,
        url: str,
        title: str,
        human_readable_name: Optional[str],
        last_updated: Optional[str],
    ) -> Dict[str, Any]:
        """Column values for one generated FAQ."""
        return {
            "faq_file_id": faq_file_id,
            "url": url,
            "title": title,
            "human_readable_name": human_readable_name,
            "last_updated": last_updated,
            "subheader": faq.subheader,
            "question": faq.question,
            "answer": faq.answer,
            "cross_link": CROSS_LINK_SEPARATOR.join(faq.cross_links) or None,
            "media_link": faq.media_links[0] if faq.media_links else None,
            "vector_upsert_success": False,
        }

    async def insert_faq_record(self, **fields: Any) -> FaqRecord:
        record = self._build_record(fields)
        async with self.session_factory() as session:
            session.add(record)
            await session.commit()
            return record

    async def insert_faq_records(
        self,
        faq_file_id: int,
        faqs: Sequence[FaqItem],
        *,
        url: str,
        title: str,
        human_readable_name: Optional[str],
        last_updated: Optional[str],
    ) -> List[FaqRecord]:
        """Insert one pass worth of FAQs in a single transaction."""
        if not faqs:
            return []

        records = [
            self._build_record(self.record_fields_from_item(
                faq,
                faq_file_id=faq_file_id,
                url=url,
                title=title,
                human_readable_name=human_readable_name,
                last_updated=last_updated,
            ))
            for faq in faqs
        ]
        async with self.session_factory() as session:
            session.add_all(records)
            await session.commit()
        return records

    async def mark_vector_success(self, record_ids: Sequence[int]) -> int:
        if not record_ids:
            return 0
        async with self.session_factory() as session:
            result = await session.execute(
                update(FaqRecord)
                .where(FaqRecord.id.in_(list(record_ids)))
                .values(vector_upsert_success=True)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount or 0

    async def list_unflagged_record_ids(self, limit: int, after_id: int = 0) -> List[int]:
        """Ids of records not yet confirmed in the vector index, keyset-paginated."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(FaqRecord.id)
                .where(FaqRecord.vector_upsert_success.is_(False), FaqRecord.id > after_id)
                .order_by(FaqRecord.id)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_records(self, record_ids: Sequence[int]) -> List[FaqRecord]:
        """Records with their FaqFile loaded (for the slug)."""
        if not record_ids:
            return []
        async with self.session_factory() as session:
            result = await session.execute(
                select(FaqRecord)
                .options(selectinload(FaqRecord.faq_file))
                .where(FaqRecord.id.in_(list(record_ids)))
                .order_by(FaqRecord.id)
            )
            return list(result.scalars().all())

    async def get_slug_for_record(self, record_id: int) -> Optional[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(FaqFile.slug)
                .join(FaqRecord, FaqRecord.faq_file_id == FaqFile.id)
                .where(FaqRecord.id == record_id)
            )
            return result.scalar_one_or_none()

    async def count_records_for_file(self, faq_file_id: int) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(FaqRecord.id)).where(FaqRecord.faq_file_id == faq_file_id)
            )
            return result.scalar() or 0
