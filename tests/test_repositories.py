"""
Test suite for the SQL repositories.

Runs every repository against an in-memory SQLite database.
"""

from datetime import datetime, timedelta

import pytest

from core.domain import ChunkMetadata, ContextSwitch, DocSourceMetadata, DynamicPage, Ecosystem
from infrastructure.repositories import (
    SQLChunkMetadataRepository, SQLContextSwitchRepository, SQLDocSourceRepository,
    SQLDynamicPageRepository, SQLEcosystemRepository,
)


def page(url: str, expires_at=None) -> DynamicPage:
    return DynamicPage(url=url, source_id="nextjs", title="Page", content_hash="abc", expires_at=expires_at)


class TestChunkMetadataRepository:
    """Test suite for SQLChunkMetadataRepository."""

    @pytest.mark.asyncio
    async def test_should_count_and_delete_per_source(self, session_factory):
        # Arrange
        repo = SQLChunkMetadataRepository(session_factory)
        await repo.insert(ChunkMetadata("v1", "https://a", "A", "nextjs", 0))
        await repo.insert(ChunkMetadata("v2", "https://a", "A", "nextjs", 1))
        await repo.insert(ChunkMetadata("v3", "https://b", "B", "react", 0))

        # Act
        deleted = await repo.delete_by_source("nextjs")

        # Assert
        assert deleted == 2
        assert await repo.count_by_source("nextjs") == 0
        assert await repo.count_by_source("react") == 1


class TestDynamicPageRepository:
    """Test suite for SQLDynamicPageRepository."""

    @pytest.mark.asyncio
    async def test_upsert_should_insert_then_update(self, session_factory):
        repo = SQLDynamicPageRepository(session_factory)

        await repo.upsert(page("https://a"))
        updated = page("https://a")
        updated.is_indexed = True
        updated.chunks_count = 4
        await repo.upsert(updated)

        stored = await repo.get_by_url("https://a")
        assert stored.is_indexed is True
        assert stored.chunks_count == 4

    @pytest.mark.asyncio
    async def test_missing_page_should_be_none(self, session_factory):
        assert await SQLDynamicPageRepository(session_factory).get_by_url("https://missing") is None

    @pytest.mark.asyncio
    async def test_touch_should_count_access_and_extend_expiry(self, session_factory):
        repo = SQLDynamicPageRepository(session_factory)
        await repo.upsert(page("https://a"))
        expires = datetime(2030, 1, 1)

        await repo.touch("https://a", expires_at=expires)
        await repo.touch("https://a")

        stored = await repo.get_by_url("https://a")
        assert stored.access_count == 2
        assert stored.last_accessed_at is not None
        assert stored.expires_at == expires

    @pytest.mark.asyncio
    async def test_delete_expired_should_only_remove_past_rows(self, session_factory):
        repo = SQLDynamicPageRepository(session_factory)
        now = datetime(2026, 6, 1)
        await repo.upsert(page("https://old", expires_at=now - timedelta(days=1)))
        await repo.upsert(page("https://fresh", expires_at=now + timedelta(days=1)))
        await repo.upsert(page("https://forever"))

        removed = await repo.delete_expired(now)

        assert removed == ["https://old"]
        assert await repo.get_by_url("https://fresh") is not None
        assert await repo.get_by_url("https://forever") is not None


class TestDocSourceRepository:
    """Test suite for SQLDocSourceRepository."""

    @pytest.mark.asyncio
    async def test_list_active_should_skip_inactive_sources(self, session_factory):
        repo = SQLDocSourceRepository(session_factory)
        await repo.upsert(DocSourceMetadata(id="react", name="React", keywords=["hooks"]))
        await repo.upsert(DocSourceMetadata(id="nextjs", name="Next.js"))
        await repo.upsert(DocSourceMetadata(id="old", name="Old", is_active=False))

        sources = await repo.list_active()

        assert [s.id for s in sources] == ["nextjs", "react"]
        assert sources[1].keywords == ["hooks"]

    @pytest.mark.asyncio
    async def test_update_stats_should_report_unknown_sources(self, session_factory):
        repo = SQLDocSourceRepository(session_factory)
        await repo.upsert(DocSourceMetadata(id="nextjs", name="Next.js"))

        assert await repo.update_stats("nextjs", 120) is True
        assert await repo.update_stats("missing", 5) is False


class TestContextSwitchRepository:
    """Test suite for SQLContextSwitchRepository."""

    @pytest.mark.asyncio
    async def test_should_list_switches_oldest_first_per_conversation(self, session_factory):
        repo = SQLContextSwitchRepository(session_factory)
        await repo.add(ContextSwitch("c1", "nextjs", "react", "q2", timestamp=datetime(2026, 1, 2)))
        await repo.add(ContextSwitch("c1", None, "nextjs", "q1", timestamp=datetime(2026, 1, 1)))
        await repo.add(ContextSwitch("c2", None, "fastapi", "q", is_explicit=True))

        history = await repo.list_for_conversation("c1")

        assert [s.to_source for s in history] == ["nextjs", "react"]
        assert history[0].from_source is None
        assert (await repo.list_for_conversation("c2"))[0].is_explicit is True


class TestEcosystemRepository:
    """Test suite for SQLEcosystemRepository."""

    @pytest.mark.asyncio
    async def test_should_order_by_priority_and_group_sources(self, session_factory):
        # Arrange
        repo = SQLEcosystemRepository(session_factory)
        sources = SQLDocSourceRepository(session_factory)
        await repo.upsert(Ecosystem(id="python", name="Python", priority=1))
        await repo.upsert(Ecosystem(
            id="frontend", name="Frontend", priority=5,
            keyword_groups={"styling": ["css"]}, description_embedding=[0.1, 0.2],
        ))
        await sources.upsert(DocSourceMetadata(id="react", name="React", ecosystem_id="frontend"))
        await sources.upsert(DocSourceMetadata(id="nextjs", name="Next.js", ecosystem_id="frontend"))
        await sources.upsert(DocSourceMetadata(id="fastapi", name="FastAPI", ecosystem_id="python"))
        await sources.upsert(DocSourceMetadata(id="loose", name="Loose"))

        # Act
        ecosystems = await repo.list_active()
        mapping = await repo.sources_by_ecosystem()

        # Assert
        assert [e.id for e in ecosystems] == ["frontend", "python"]
        assert ecosystems[0].keyword_groups == {"styling": ["css"]}
        assert ecosystems[0].description_embedding == [0.1, 0.2]
        assert mapping == {"frontend": ["nextjs", "react"], "python": ["fastapi"]}
