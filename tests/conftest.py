"""
Shared test fixtures for the documentation assistant test suite.

Provides: in-memory SQLite session factory, in-memory vector store,
deterministic embedding service, scripted language model
Dependencies: pytest, pytest-asyncio, sqlalchemy, aiosqlite
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.exceptions import LanguageModelError
from database.session import Base
from fakes import FakeEmbeddingService, InMemoryVectorStore, ScriptedLanguageModel


# ============= Fixtures =============

@pytest.fixture
async def session_factory():
    """
    In-memory SQLite database with all tables created.

    Yields:
        async_sessionmaker: Factory passed to the SQL repositories
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    """Provide an empty in-memory vector store."""
    return InMemoryVectorStore()


@pytest.fixture
def embedding_service() -> FakeEmbeddingService:
    """Provide the deterministic embedding service."""
    return FakeEmbeddingService()


@pytest.fixture
def llm() -> ScriptedLanguageModel:
    """Provide a scripted language model with no queued responses."""
    return ScriptedLanguageModel()


@pytest.fixture
def failing_llm() -> ScriptedLanguageModel:
    """Provide a language model whose every call fails."""
    return ScriptedLanguageModel(default=LanguageModelError("model offline"))
