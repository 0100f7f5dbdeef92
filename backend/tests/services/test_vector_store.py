"""
Tests for the vector store backends.

Pinecone is exercised against a mocked index object; the pgvector backend's
read and metadata paths run on the SQLite test database (its upsert uses
PostgreSQL's ON CONFLICT and is left to a real Postgres).
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from wikifaq.core.exceptions import ConfigurationError, VectorStoreError
from wikifaq.models.faq import FaqVector
from wikifaq.services.vector_store import (
    PgVectorStore,
    PineconeVectorStore,
    VectorRecord,
    build_vector_store,
)


# ========================================
# Pinecone
# ========================================

class TestPineconeVectorStore:

    @pytest.fixture
    def index(self):
        return MagicMock()

    @pytest.fixture
    def store(self, settings, index):
        settings.PINECONE_NAMESPACE = "faqs"
        return PineconeVectorStore(settings, index=index)

    async def test_upsert_sends_records(self, store, index):
        await store.upsert([VectorRecord("1", [0.1, 0.2, 0.3, 0.4], {"slug": "ulm"})])

        index.upsert.assert_called_once_with(
            namespace="faqs",
            vectors=[{"id": "1", "values": [0.1, 0.2, 0.3, 0.4], "metadata": {"slug": "ulm"}}],
        )

    async def test_fetch_returns_present_ids(self, store, index):
        index.fetch.return_value = SimpleNamespace(vectors={"1": object(), "3": object()})

        assert await store.fetch(["1", "2", "3"]) == {"1", "3"}

    async def test_fetch_accepts_dict_response(self, store, index):
        index.fetch.return_value = {"vectors": {"2": {}}}

        assert await store.fetch(["2"]) == {"2"}

    async def test_query_by_metadata_uses_filter_and_probe(self, store, index):
        index.query.return_value = {"matches": [{"id": "5", "metadata": {"slug": "ulm"}}]}

        matches = await store.query_by_metadata("slug", "ulm", top_k=1000)

        assert [(m.id, m.metadata) for m in matches] == [("5", {"slug": "ulm"})]
        kwargs = index.query.call_args.kwargs
        assert kwargs["filter"] == {"slug": {"$eq": "ulm"}}
        assert kwargs["top_k"] == 1000
        assert any(kwargs["vector"])
        assert len(kwargs["vector"]) == store.dimension

    async def test_update_metadata(self, store, index):
        await store.update_metadata("5", {"slug": "new"})

        index.update.assert_called_once_with(namespace="faqs", id="5", set_metadata={"slug": "new"})

    async def test_sdk_errors_wrapped(self, store, index):
        index.upsert.side_effect = RuntimeError("503 Service Unavailable")

        with pytest.raises(VectorStoreError):
            await store.upsert([VectorRecord("1", [0.0] * 4)])

    def test_requires_api_key(self, settings):
        settings.PINECONE_API_KEY = None
        with pytest.raises(ConfigurationError):
            PineconeVectorStore(settings)


# ========================================
# pgvector
# ========================================

class TestPgVectorStore:

    @pytest.fixture
    async def store(self, session_factory):
        async with session_factory() as session:
            session.add_all([
                FaqVector(id="1", embedding=[0.0] * 4, vector_metadata={"slug": "old", "question": "Q1"}, slug="old"),
                FaqVector(id="2", embedding=[0.0] * 4, vector_metadata={"slug": "old", "question": "Q2"}, slug="old"),
                FaqVector(id="3", embedding=[0.0] * 4, vector_metadata={"slug": "", "question": "Q3"}, slug=""),
            ])
            await session.commit()
        return PgVectorStore(session_factory, dimension=4)

    async def test_fetch(self, store):
        assert await store.fetch(["1", "3", "99"]) == {"1", "3"}

    async def test_query_by_slug(self, store):
        matches = await store.query_by_metadata("slug", "old", top_k=10)
        assert [m.id for m in matches] == ["1", "2"]

        limited = await store.query_by_metadata("slug", "old", top_k=1)
        assert [m.id for m in limited] == ["1"]

    async def test_update_metadata_merges(self, store):
        await store.update_metadata("1", {"slug": "new"})

        matches = await store.query_by_metadata("slug", "new", top_k=10)
        assert [m.id for m in matches] == ["1"]
        assert matches[0].metadata == {"slug": "new", "question": "Q1"}

    async def test_update_missing_vector(self, store):
        with pytest.raises(VectorStoreError):
            await store.update_metadata("99", {"slug": "x"})


class TestBuildVectorStore:

    def test_pgvector_needs_session_factory(self, settings):
        settings.VECTOR_DB_TYPE = "pgvector"
        with pytest.raises(ConfigurationError):
            build_vector_store(settings)

    def test_pgvector(self, settings, session_factory):
        settings.VECTOR_DB_TYPE = "pgvector"
        assert isinstance(build_vector_store(settings, session_factory), PgVectorStore)
