# database/session.py

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import settings
from utils.common import utc_now

logger = logging.getLogger(settings.LOGGER_NAME)

# Setup SQLAlchemy async engine and session maker
async_engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_pre_ping=True  # Check connection health before using
)
AsyncSessionLocal = async_sessionmaker(async_engine, expire_on_commit=False)
Base = declarative_base()

# ============= Models =============

class DocChunkMetaEntity(Base):
    __tablename__ = "doc_chunk_meta"
    id = Column(Integer, primary_key=True, autoincrement=True)
    # Column keeps its historical name; it holds the vector record id
    vector_id = Column("qdrant_id", String, nullable=False, index=True)
    url = Column(String, nullable=False)
    title = Column(String, nullable=False, default="")
    source = Column(String, nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utc_now)


class DynamicDocPageEntity(Base):
    __tablename__ = "dynamic_doc_pages"
    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(String, unique=True, index=True, nullable=False)
    source_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False, default="")
    content_hash = Column(String, nullable=False)
    is_indexed = Column(Boolean, nullable=False, default=False)
    indexed_at = Column(DateTime, nullable=True)
    discovered_by = Column(String, nullable=True)
    query_that_found = Column(Text, nullable=True)
    access_count = Column(Integer, nullable=False, default=0)
    last_accessed_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)
    chunks_count = Column(Integer, nullable=False, default=0)


class DocSourceEntity(Base):
    __tablename__ = "doc_sources"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    keywords = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    official_url = Column(String, nullable=True)
    ecosystem_id = Column(String, nullable=True, index=True)
    total_chunks = Column(Integer, nullable=False, default=0)
    last_scraped = Column(DateTime, nullable=True)


class DocEcosystemEntity(Base):
    __tablename__ = "doc_ecosystems"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    aliases = Column(JSON, nullable=False, default=list)
    keywords = Column(JSON, nullable=False, default=list)
    keyword_groups = Column(JSON, nullable=False, default=dict)
    description_embedding = Column(JSON, nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)


class ContextSwitchEntity(Base):
    __tablename__ = "context_switches"
    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String, nullable=False, index=True)
    from_source = Column(String, nullable=True)
    to_source = Column(String, nullable=False)
    query = Column(Text, nullable=False, default="")
    is_explicit = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)


# ============= Session Factory =============

@asynccontextmanager
async def get_session(
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a new database session with proper cleanup.

    Used by background work (indexing, the page queue) where request-scoped
    sessions are unavailable. Rolls back on errors and always closes.
    """
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
