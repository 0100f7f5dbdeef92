"""
Vector store backends.

Both backends hold records shaped as
``{id: str(faq_record_id), values: [...], metadata: {...}}`` and support the
four operations the pipeline and repair jobs need:

- upsert(records)
- fetch(ids) -> ids that exist
- query_by_metadata(field, value, top_k) -> matches
- update_metadata(id, patch)

VECTOR_DB_TYPE selects the backend: "pinecone" (managed index, the
default) or "pgvector" (faq_vectors table in the same Postgres database).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from pinecone import Pinecone
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wikifaq.core.config import Settings
from wikifaq.core.exceptions import ConfigurationError, VectorStoreError
from wikifaq.models.faq import FaqVector

logger = logging.getLogger(__name__)


@dataclass
class VectorRecord:
    id: str
    values: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class VectorStore(ABC):
    """Interface shared by the vector backends."""

    dimension: int

    @abstractmethod
    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        ...

    @abstractmethod
    async def fetch(self, ids: Sequence[str]) -> Set[str]:
        ...

    @abstractmethod
    async def query_by_metadata(self, field_name: str, value: Any, top_k: int) -> List[VectorMatch]:
        ...

    @abstractmethod
    async def update_metadata(self, vector_id: str, patch: Dict[str, Any]) -> None:
        ...

    async def aclose(self) -> None:
        return None


# ========================================
# Pinecone
# ========================================

def _field(obj: Any, name: str) -> Any:
    # SDK responses are objects in recent releases and dicts in older ones
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class PineconeVectorStore(VectorStore):
    """
    Pinecone index.

    The SDK is synchronous, so every call runs in a worker thread.
    """

    def __init__(self, settings: Settings, index: Any = None):
        self.dimension = settings.EMBEDDING_DIMENSION
        self.namespace = settings.PINECONE_NAMESPACE

        if index is None:
            if not settings.PINECONE_API_KEY:
                raise ConfigurationError("PINECONE_API_KEY is required when VECTOR_DB_TYPE=pinecone")
            client = Pinecone(api_key=settings.PINECONE_API_KEY)
            index = client.Index(settings.PINECONE_INDEX_NAME)
            logger.info(f"Connected to Pinecone index '{settings.PINECONE_INDEX_NAME}'")
        self.index = index

    async def _call(self, method: str, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(getattr(self.index, method), namespace=self.namespace, **kwargs)
        except Exception as e:
            raise VectorStoreError(f"Pinecone {method} failed: {e}") from e

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if not records:
            return
        await self._call(
            "upsert",
            vectors=[{"id": r.id, "values": r.values, "metadata": r.metadata} for r in records],
        )

    async def fetch(self, ids: Sequence[str]) -> Set[str]:
        if not ids:
            return set()
        response = await self._call("fetch", ids=list(ids))
        return set((_field(response, "vectors") or {}).keys())

    async def query_by_metadata(self, field_name: str, value: Any, top_k: int) -> List[VectorMatch]:
        # Cosine indexes reject an all-zero query vector
        probe = [0.0] * self.dimension
        probe[0] = 1e-6
        response = await self._call(
            "query",
            vector=probe,
            top_k=top_k,
            filter={field_name: {"$eq": value}},
            include_metadata=True,
            include_values=False,
        )
        return [
            VectorMatch(id=_field(m, "id"), metadata=dict(_field(m, "metadata") or {}))
            for m in _field(response, "matches") or []
        ]

    async def update_metadata(self, vector_id: str, patch: Dict[str, Any]) -> None:
        await self._call("update", id=vector_id, set_metadata=patch)


# ========================================
# pgvector
# ========================================

class PgVectorStore(VectorStore):
    """faq_vectors table in Postgres, keyed by record id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], dimension: int):
        self.session_factory = session_factory
        self.dimension = dimension

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if not records:
            return
        rows = [
            {
                "id": r.id,
                "embedding": r.values,
                "metadata": r.metadata,
                "slug": r.metadata.get("slug"),
            }
            for r in records
        ]
        stmt = pg_insert(FaqVector.__table__).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "embedding": stmt.excluded.embedding,
                "metadata": stmt.excluded.metadata,
                "slug": stmt.excluded.slug,
            },
        )
        try:
            async with self.session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except Exception as e:
            raise VectorStoreError(f"pgvector upsert failed: {e}") from e

    async def fetch(self, ids: Sequence[str]) -> Set[str]:
        if not ids:
            return set()
        async with self.session_factory() as session:
            result = await session.execute(select(FaqVector.id).where(FaqVector.id.in_(list(ids))))
            return set(result.scalars().all())

    async def query_by_metadata(self, field_name: str, value: Any, top_k: int) -> List[VectorMatch]:
        if field_name == "slug":
            condition = FaqVector.slug == value
        else:
            condition = FaqVector.vector_metadata[field_name].as_string() == str(value)

        async with self.session_factory() as session:
            result = await session.execute(
                select(FaqVector).where(condition).order_by(FaqVector.id).limit(top_k)
            )
            return [VectorMatch(id=row.id, metadata=dict(row.vector_metadata or {}))
                    for row in result.scalars().all()]

    async def update_metadata(self, vector_id: str, patch: Dict[str, Any]) -> None:
        async with self.session_factory() as session:
            row = await session.get(FaqVector, vector_id)
            if row is None:
                raise VectorStoreError(f"Vector {vector_id} does not exist")
            row.vector_metadata = {**(row.vector_metadata or {}), **patch}
            if "slug" in patch:
                row.slug = patch["slug"]
            await session.commit()


def build_vector_store(
    settings: Settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> VectorStore:
    """Vector backend selected by VECTOR_DB_TYPE."""
    if settings.VECTOR_DB_TYPE == "pgvector":
        if session_factory is None:
            raise ConfigurationError("A session factory is required for the pgvector backend")
        return PgVectorStore(session_factory, settings.EMBEDDING_DIMENSION)
    return PineconeVectorStore(settings)
