# infrastructure/repositories.py
"""Database repository implementations"""
import logging
from datetime import datetime
from typing import List, Optional, Dict

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.interfaces import (
    IChunkMetadataRepository, IContextSwitchRepository, IDocSourceRepository,
    IDynamicPageRepository, IEcosystemRepository,
)
from core.domain import ChunkMetadata, ContextSwitch, DocSourceMetadata, DynamicPage, Ecosystem
from database.session import (
    AsyncSessionLocal, ContextSwitchEntity, DocChunkMetaEntity, DocEcosystemEntity,
    DocSourceEntity, DynamicDocPageEntity, get_session,
)
from config import settings
from utils.common import utc_now

logger = logging.getLogger(settings.LOGGER_NAME)


class SQLChunkMetadataRepository(IChunkMetadataRepository):
    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self._session_factory = session_factory

    async def insert(self, row: ChunkMetadata) -> None:
        async with get_session(self._session_factory) as session:
            session.add(DocChunkMetaEntity(
                vector_id=row.vector_id,
                url=row.url,
                title=row.title,
                source=row.source,
                chunk_index=row.chunk_index,
            ))
            await session.commit()

    async def delete_by_source(self, source: str) -> int:
        async with get_session(self._session_factory) as session:
            result = await session.execute(
                delete(DocChunkMetaEntity).where(DocChunkMetaEntity.source == source)
            )
            await session.commit()
            return result.rowcount or 0

    async def count_by_source(self, source: str) -> int:
        async with get_session(self._session_factory) as session:
            result = await session.execute(
                select(func.count()).select_from(DocChunkMetaEntity)
                .where(DocChunkMetaEntity.source == source)
            )
            return int(result.scalar_one())


class SQLDynamicPageRepository(IDynamicPageRepository):
    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self._session_factory = session_factory

    def _to_domain(self, db_page: Optional[DynamicDocPageEntity]) -> Optional[DynamicPage]:
        """Converts an SQLAlchemy entity to a domain model."""
        if db_page is None:
            return None
        return DynamicPage(
            url=db_page.url,  # type: ignore
            source_id=db_page.source_id,  # type: ignore
            title=db_page.title,  # type: ignore
            content_hash=db_page.content_hash,  # type: ignore
            is_indexed=bool(db_page.is_indexed),
            indexed_at=db_page.indexed_at,  # type: ignore
            discovered_by=db_page.discovered_by,  # type: ignore
            query_that_found=db_page.query_that_found,  # type: ignore
            access_count=db_page.access_count or 0,  # type: ignore
            last_accessed_at=db_page.last_accessed_at,  # type: ignore
            expires_at=db_page.expires_at,  # type: ignore
            chunks_count=db_page.chunks_count or 0,  # type: ignore
        )

    async def get_by_url(self, url: str) -> Optional[DynamicPage]:
        async with get_session(self._session_factory) as session:
            result = await session.execute(
                select(DynamicDocPageEntity).where(DynamicDocPageEntity.url == url)
            )
            return self._to_domain(result.scalar_one_or_none())

    async def touch(self, url: str, expires_at: Optional[datetime] = None) -> None:
        values = {
            "access_count": DynamicDocPageEntity.access_count + 1,
            "last_accessed_at": utc_now(),
        }
        if expires_at is not None:
            values["expires_at"] = expires_at
        async with get_session(self._session_factory) as session:
            await session.execute(
                update(DynamicDocPageEntity)
                .where(DynamicDocPageEntity.url == url)
                .values(**values)
            )
            await session.commit()

    async def upsert(self, page: DynamicPage) -> None:
        async with get_session(self._session_factory) as session:
            result = await session.execute(
                select(DynamicDocPageEntity).where(DynamicDocPageEntity.url == page.url)
            )
            db_page = result.scalar_one_or_none()
            if db_page is None:
                db_page = DynamicDocPageEntity(url=page.url)
                session.add(db_page)

            db_page.source_id = page.source_id
            db_page.title = page.title
            db_page.content_hash = page.content_hash
            db_page.is_indexed = page.is_indexed
            db_page.indexed_at = page.indexed_at
            db_page.discovered_by = page.discovered_by
            db_page.query_that_found = page.query_that_found
            db_page.access_count = page.access_count
            db_page.last_accessed_at = page.last_accessed_at
            db_page.expires_at = page.expires_at
            db_page.chunks_count = page.chunks_count
            await session.commit()

    async def delete_expired(self, now: datetime) -> List[str]:
        async with get_session(self._session_factory) as session:
            result = await session.execute(
                select(DynamicDocPageEntity.url).where(DynamicDocPageEntity.expires_at < now)
            )
            urls = [row[0] for row in result]
            if urls:
                await session.execute(
                    delete(DynamicDocPageEntity).where(DynamicDocPageEntity.url.in_(urls))
                )
                await session.commit()
                logger.debug(f"Deleted {len(urls)} expired dynamic page rows")
            return urls


class SQLDocSourceRepository(IDocSourceRepository):
    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self._session_factory = session_factory

    def _to_domain(self, db_source: DocSourceEntity) -> DocSourceMetadata:
        return DocSourceMetadata(
            id=db_source.id,  # type: ignore
            name=db_source.name,  # type: ignore
            description=db_source.description or "",  # type: ignore
            keywords=list(db_source.keywords or []),
            is_active=bool(db_source.is_active),
            official_url=db_source.official_url,  # type: ignore
            ecosystem_id=db_source.ecosystem_id,  # type: ignore
        )

    async def list_active(self) -> List[DocSourceMetadata]:
        async with get_session(self._session_factory) as session:
            result = await session.execute(
                select(DocSourceEntity)
                .where(DocSourceEntity.is_active.is_(True))
                .order_by(DocSourceEntity.id)
            )
            return [self._to_domain(s) for s in result.scalars().all()]

    async def upsert(self, source: DocSourceMetadata) -> None:
        async with get_session(self._session_factory) as session:
            db_source = await session.get(DocSourceEntity, source.id)
            if db_source is None:
                db_source = DocSourceEntity(id=source.id)
                session.add(db_source)
            db_source.name = source.name
            db_source.description = source.description
            db_source.keywords = list(source.keywords)
            db_source.is_active = source.is_active
            db_source.official_url = source.official_url
            db_source.ecosystem_id = source.ecosystem_id
            await session.commit()

    async def update_stats(self, source_id: str, total_chunks: int) -> bool:
        async with get_session(self._session_factory) as session:
            result = await session.execute(
                update(DocSourceEntity)
                .where(DocSourceEntity.id == source_id)
                .values(total_chunks=total_chunks, last_scraped=utc_now())
            )
            await session.commit()
            updated = (result.rowcount or 0) > 0
            if not updated:
                logger.warning(f"update_stats: unknown doc source '{source_id}'")
            return updated


class SQLContextSwitchRepository(IContextSwitchRepository):
    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self._session_factory = session_factory

    async def add(self, switch: ContextSwitch) -> None:
        async with get_session(self._session_factory) as session:
            session.add(ContextSwitchEntity(
                conversation_id=switch.conversation_id,
                from_source=switch.from_source,
                to_source=switch.to_source,
                query=switch.query,
                is_explicit=switch.is_explicit,
                created_at=switch.timestamp or utc_now(),
            ))
            await session.commit()

    async def list_for_conversation(self, conversation_id: str) -> List[ContextSwitch]:
        async with get_session(self._session_factory) as session:
            result = await session.execute(
                select(ContextSwitchEntity)
                .where(ContextSwitchEntity.conversation_id == conversation_id)
                .order_by(ContextSwitchEntity.created_at, ContextSwitchEntity.id)
            )
            return [
                ContextSwitch(
                    conversation_id=row.conversation_id,  # type: ignore
                    from_source=row.from_source,  # type: ignore
                    to_source=row.to_source,  # type: ignore
                    query=row.query,  # type: ignore
                    timestamp=row.created_at,  # type: ignore
                    is_explicit=bool(row.is_explicit),
                )
                for row in result.scalars().all()
            ]


class SQLEcosystemRepository(IEcosystemRepository):
    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self._session_factory = session_factory

    async def list_active(self) -> List[Ecosystem]:
        async with get_session(self._session_factory) as session:
            result = await session.execute(
                select(DocEcosystemEntity)
                .where(DocEcosystemEntity.is_active.is_(True))
                .order_by(DocEcosystemEntity.priority.desc(), DocEcosystemEntity.id)
            )
            return [
                Ecosystem(
                    id=e.id,  # type: ignore
                    name=e.name,  # type: ignore
                    description=e.description or "",  # type: ignore
                    aliases=list(e.aliases or []),
                    keywords=list(e.keywords or []),
                    keyword_groups=dict(e.keyword_groups or {}),
                    priority=e.priority or 0,  # type: ignore
                    description_embedding=e.description_embedding,  # type: ignore
                )
                for e in result.scalars().all()
            ]

    async def sources_by_ecosystem(self) -> Dict[str, List[str]]:
        async with get_session(self._session_factory) as session:
            result = await session.execute(
                select(DocSourceEntity.id, DocSourceEntity.ecosystem_id)
                .where(DocSourceEntity.ecosystem_id.is_not(None))
                .where(DocSourceEntity.is_active.is_(True))
                .order_by(DocSourceEntity.id)
            )
            mapping: Dict[str, List[str]] = {}
            for source_id, ecosystem_id in result:
                mapping.setdefault(ecosystem_id, []).append(source_id)
            return mapping

    async def upsert(self, ecosystem: Ecosystem) -> None:
        async with get_session(self._session_factory) as session:
            db_eco = await session.get(DocEcosystemEntity, ecosystem.id)
            if db_eco is None:
                db_eco = DocEcosystemEntity(id=ecosystem.id)
                session.add(db_eco)
            db_eco.name = ecosystem.name
            db_eco.description = ecosystem.description
            db_eco.aliases = list(ecosystem.aliases)
            db_eco.keywords = list(ecosystem.keywords)
            db_eco.keyword_groups = dict(ecosystem.keyword_groups)
            db_eco.description_embedding = ecosystem.description_embedding
            db_eco.priority = ecosystem.priority
            await session.commit()
