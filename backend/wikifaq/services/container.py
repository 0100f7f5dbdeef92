"""
Service container.

Builds every pipeline component once per process from a Settings object and
owns their shutdown. Components that need external credentials (Anthropic,
Pinecone, the embedding model) are built on first access, so the API
process can serve queue endpoints without them.

Usage:
------
container = await ServiceContainer.create(settings)
try:
    report = await container.orchestrator.run_batch()
finally:
    await container.aclose()
"""

import logging
from functools import cached_property
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from wikifaq.core.config import Settings, get_settings
from wikifaq.core.rate_limit import build_rate_limiter
from wikifaq.db.redis import create_redis
from wikifaq.db.session import close_db, create_engine, create_session_factory, init_db
from wikifaq.services.consistency import ConsistencyRepair
from wikifaq.services.cross_links import CrossLinkResolver
from wikifaq.services.generator import FaqGenerator
from wikifaq.services.indexer import VectorIndexer
from wikifaq.services.orchestrator import BatchOrchestrator
from wikifaq.services.pipeline import PagePipeline
from wikifaq.services.processors.embedder import EmbeddingService
from wikifaq.services.queue import ProcessingQueue
from wikifaq.services.repository import FaqRepository
from wikifaq.services.seeds import SeedService
from wikifaq.services.vector_store import VectorStore, build_vector_store
from wikifaq.services.wikipedia import WikipediaClient

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Process-wide wiring of the FAQ pipeline."""

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        redis: Optional[Redis] = None,
    ):
        self.settings = settings
        self.engine = engine
        self.session_factory = session_factory
        self.redis = redis

    @classmethod
    async def create(
        cls,
        settings: Optional[Settings] = None,
        create_tables: Optional[bool] = None,
    ) -> "ServiceContainer":
        settings = settings or get_settings()
        engine = create_engine(settings)
        await init_db(
            engine,
            create_tables=settings.is_development if create_tables is None else create_tables,
        )

        redis = None
        if settings.LLM_RATE_LIMIT_ENABLED and settings.LLM_RATE_LIMIT_BACKEND == "redis":
            redis = await create_redis(settings.REDIS_URL)

        return cls(settings, engine, create_session_factory(engine), redis)

    # ========================================
    # Storage & Queue
    # ========================================

    @cached_property
    def repository(self) -> FaqRepository:
        return FaqRepository(self.session_factory)

    @cached_property
    def queue(self) -> ProcessingQueue:
        return ProcessingQueue(self.repository, base_url=self.settings.WIKIPEDIA_BASE_URL)

    @cached_property
    def wikipedia(self) -> WikipediaClient:
        return WikipediaClient(self.settings)

    # ========================================
    # Generation & Indexing
    # ========================================

    @cached_property
    def generator(self) -> FaqGenerator:
        return FaqGenerator(
            self.settings,
            rate_limiter=build_rate_limiter(self.settings, self.redis),
        )

    @cached_property
    def embedder(self) -> EmbeddingService:
        return EmbeddingService(self.settings)

    @cached_property
    def vector_store(self) -> VectorStore:
        return build_vector_store(self.settings, self.session_factory)

    @cached_property
    def indexer(self) -> VectorIndexer:
        return VectorIndexer(
            self.embedder,
            self.vector_store,
            self.repository,
            batch_size=self.settings.VECTOR_UPSERT_BATCH_SIZE,
        )

    @cached_property
    def cross_links(self) -> CrossLinkResolver:
        return CrossLinkResolver(
            self.queue,
            self.wikipedia,
            search_enabled=self.settings.CROSS_LINK_SEARCH_ENABLED,
        )

    # ========================================
    # Orchestration
    # ========================================

    @cached_property
    def pipeline(self) -> PagePipeline:
        return PagePipeline(
            self.queue,
            self.repository,
            self.wikipedia,
            self.generator,
            self.cross_links,
            self.indexer,
        )

    @cached_property
    def orchestrator(self) -> BatchOrchestrator:
        return BatchOrchestrator(
            self.queue,
            self.pipeline,
            concurrency=self.settings.WORKER_CONCURRENCY,
            batch_size=self.settings.PIPELINE_BATCH_SIZE,
            wave_delay=self.settings.WAVE_DELAY_SECONDS,
            requeue_failed=self.settings.QUEUE_AUTO_REQUEUE_FAILED,
            max_attempts=self.settings.QUEUE_MAX_ATTEMPTS,
        )

    @cached_property
    def repair(self) -> ConsistencyRepair:
        return ConsistencyRepair(
            self.repository,
            self.vector_store,
            indexer=self.indexer,
            page_size=self.settings.REPAIR_PAGE_SIZE,
            fetch_batch_size=self.settings.REPAIR_FETCH_BATCH_SIZE,
            query_top_k=self.settings.VECTOR_QUERY_TOP_K,
            wikipedia=self.wikipedia,
            base_url=self.queue.base_url,
        )

    @cached_property
    def seeds(self) -> SeedService:
        return SeedService(self.queue, self.wikipedia)

    # ========================================
    # Shutdown
    # ========================================

    async def aclose(self) -> None:
        """Close whatever was actually built, then the engine."""
        built = self.__dict__
        if "wikipedia" in built:
            await self.wikipedia.aclose()
        if "embedder" in built:
            await self.embedder.shutdown()
        if "vector_store" in built:
            await self.vector_store.aclose()
        if self.redis is not None:
            await self.redis.aclose()
        await close_db(self.engine)
        logger.info("Service container closed")
