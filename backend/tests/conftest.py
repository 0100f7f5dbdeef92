"""
Pytest configuration and fixtures.

This file is automatically discovered by pytest and provides
shared fixtures for all test modules.

Tests run against a throwaway SQLite database (aiosqlite) created per test,
with in-memory fakes for Wikipedia, the embedding model and the vector
store. Nothing here touches the network.

References:
-----------
- Pytest Fixtures: https://docs.pytest.org/en/stable/fixture.html
- FastAPI Testing: https://fastapi.tiangolo.com/tutorial/testing/
"""

import os

# Settings requires DATABASE_URL; modules that read settings at import time
# (the Celery app) need it before they are collected.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from wikifaq.core.config import Settings
from wikifaq.core.retry import RetryPolicy
from wikifaq.db.session import close_db, create_engine, create_session_factory, init_db
from wikifaq.services.queue import ProcessingQueue
from wikifaq.services.repository import FaqRepository
from tests.fakes import FakeEmbedder, FakeWikipediaClient, InMemoryVectorStore, RecordingSleep


# ================================
# Settings
# ================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    """Test settings pointing at a per-test SQLite file."""
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'wikifaq.db'}",
        APP_ENV="test",
        DEBUG=False,
        ANTHROPIC_API_KEY="test-key",
        VECTOR_DB_TYPE="pgvector",
        EMBEDDING_DIMENSION=4,
        WAVE_DELAY_SECONDS=0,
        LLM_RATE_LIMIT_ENABLED=False,
        LOG_FORMAT="text",
    )


# ================================
# Database Fixtures
# ================================

@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """
    Engine with every table created.

    A file database (rather than ``sqlite://`` in memory) lets each
    repository session open its own connection and still see the same data.
    """
    engine = create_engine(settings)
    await init_db(engine, create_tables=True)

    yield engine

    await close_db(engine)


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def repository(session_factory) -> FaqRepository:
    return FaqRepository(session_factory)


@pytest.fixture
def queue(repository: FaqRepository) -> ProcessingQueue:
    return ProcessingQueue(repository, base_url="https://en.wikipedia.org")


# ================================
# Fakes
# ================================

@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def wikipedia() -> FakeWikipediaClient:
    return FakeWikipediaClient()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retry_policy(sleep: RecordingSleep) -> RetryPolicy:
    """Default 3 attempts with 1s/2s/4s backoff, without actually sleeping."""
    return RetryPolicy(max_attempts=3, base_delay=1.0, sleep=sleep)


# ================================
# Pytest Hooks
# ================================

def pytest_addoption(parser):
    """Add custom pytest options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests that require network access and real API keys"
    )


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires network and API keys)"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(reason="needs --run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)
