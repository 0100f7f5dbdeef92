"""
Vector indexer.

Embeds a page's FAQ records and upserts them into the vector store in
batches (VECTOR_UPSERT_BATCH_SIZE, 50 by default). After each batch the
records' ``vector_upsert_success`` flags are set. Both steps are
best-effort: a record whose upsert or flag update fails keeps flag=false
and the consistency sweep picks it up later.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from sqlalchemy.exc import SQLAlchemyError

from wikifaq.models.faq import FaqRecord
from wikifaq.services.processors.embedder import EmbeddingService
from wikifaq.services.repository import FaqRepository
from wikifaq.services.vector_store import VectorRecord, VectorStore

logger = logging.getLogger(__name__)


def build_embedding_text(record: FaqRecord) -> str:
    """Text that gets embedded for one FAQ record."""
    related = ", ".join(record.cross_links)
    return (
        f"Page Title: {record.human_readable_name or record.title}\n"
        f"Subcategory: {record.subheader or 'General'}\n"
        f"Question: {record.question}\n"
        f"Answer: {record.answer}\n"
        f"Related Pages: {related}"
    )


def build_vector_metadata(record: FaqRecord, slug: str) -> Dict[str, Any]:
    """Metadata stored next to the vector. Pinecone rejects nulls, so blanks are ''."""
    return {
        "faq_file_id": str(record.faq_file_id),
        "slug": slug or "",
        "question": record.question,
        "answer": record.answer,
        "url": record.url or "",
        "human_readable_name": record.human_readable_name or "",
        "last_updated": record.last_updated or "",
        "subheader": record.subheader or "",
        "cross_link": record.cross_links,
        "media_link": record.media_link or "",
    }


def chunked(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


@dataclass
class IndexReport:
    indexed_ids: List[int] = field(default_factory=list)
    failed_ids: List[int] = field(default_factory=list)
    upsert_calls: int = 0

    @property
    def complete(self) -> bool:
        return not self.failed_ids


class VectorIndexer:
    """
    Embed + upsert + flag.

    Usage:
    ------
    indexer = VectorIndexer(embedder, store, repository)
    report = await indexer.index_records(records, slug="albert-einstein")
    """

    def __init__(
        self,
        embedder: EmbeddingService,
        store: VectorStore,
        repository: FaqRepository,
        batch_size: int = 50,
    ):
        self.embedder = embedder
        self.store = store
        self.repository = repository
        self.batch_size = batch_size

    async def index_records(self, records: Sequence[FaqRecord], slug: str) -> IndexReport:
        report = IndexReport()
        if not records:
            return report

        try:
            embeddings = await self.embedder.embed_texts_batch(
                [build_embedding_text(record) for record in records]
            )
        except Exception as e:
            logger.error(f"Embedding failed for '{slug}' ({len(records)} records): {e}", exc_info=True)
            report.failed_ids = [record.id for record in records]
            return report

        vectors = [
            VectorRecord(
                id=str(record.id),
                values=embedding,
                metadata=build_vector_metadata(record, slug),
            )
            for record, embedding in zip(records, embeddings)
        ]

        for batch in chunked(vectors, self.batch_size):
            ids = [int(vector.id) for vector in batch]
            try:
                await self.store.upsert(batch)
            except Exception as e:
                logger.error(f"Vector upsert failed for '{slug}' ids {ids[0]}..{ids[-1]}: {e}")
                report.failed_ids.extend(ids)
                continue
            finally:
                report.upsert_calls += 1

            report.indexed_ids.extend(ids)
            try:
                await self.repository.mark_vector_success(ids)
            except SQLAlchemyError as e:
                logger.warning(f"Upserted but could not flag ids for '{slug}', repair will catch up: {e}")

        logger.info(
            f"Indexed {len(report.indexed_ids)}/{len(records)} records for '{slug}' "
            f"in {report.upsert_calls} upsert calls"
        )
        return report
