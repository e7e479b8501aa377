"""
Test suite for the incremental index queue.

Covers hash-based deduplication, single page indexing, the single consumer
guarantee, failure isolation and expiry cleanup.
"""

import asyncio
from datetime import timedelta

import pytest

from core.domain import DynamicPage, PageToIndex, VectorRecord
from core.enums import IndexAction
from fakes import FakeEmbeddingService
from infrastructure.repositories import SQLDynamicPageRepository
from services.chunking import page_identity
from services.index_queue import IncrementalIndexQueue
from utils.common import get_content_hash, utc_now

PAGE_BODY = "\n\n".join([
    "Incremental static regeneration lets you update static pages after the build without a redeploy.",
    "Pages are regenerated in the background when a request arrives after the revalidation window.",
])


def make_page(url: str = "https://nextjs.org/docs/isr", content: str = PAGE_BODY) -> PageToIndex:
    return PageToIndex(
        url=url,
        title="ISR",
        content=content,
        source="nextjs",
        content_hash=get_content_hash(content),
        discovered_by="online_search",
        query_that_found="how does isr work",
    )


@pytest.fixture
def page_repo(session_factory) -> SQLDynamicPageRepository:
    """Dynamic page repository on the in-memory database."""
    return SQLDynamicPageRepository(session_factory)


@pytest.fixture
def index_queue(vector_store, embedding_service, page_repo) -> IncrementalIndexQueue:
    """Queue without inter-page delay."""
    return IncrementalIndexQueue(vector_store, embedding_service, page_repo, page_delay=0, ttl_days=60)


class TestShouldIndex:
    """Test suite for hash-based deduplication."""

    @pytest.mark.asyncio
    async def test_should_walk_new_skip_update(self, index_queue, page_repo):
        # Arrange
        page = make_page()

        # Act / Assert
        assert await index_queue.should_index(page.url, page.content_hash) == IndexAction.NEW

        await index_queue.index_page(page)
        assert await index_queue.should_index(page.url, page.content_hash) == IndexAction.SKIP

        assert await index_queue.should_index(page.url, get_content_hash("changed")) == IndexAction.UPDATE

    @pytest.mark.asyncio
    async def test_skip_should_bump_access_and_refresh_expiry(self, index_queue, page_repo):
        page = make_page()
        await index_queue.index_page(page)
        before = await page_repo.get_by_url(page.url)

        await index_queue.should_index(page.url, page.content_hash)

        after = await page_repo.get_by_url(page.url)
        assert after.access_count == before.access_count + 1
        assert after.expires_at >= before.expires_at

    @pytest.mark.asyncio
    async def test_store_errors_should_mean_new(self, vector_store, embedding_service):
        class BrokenRepo(SQLDynamicPageRepository):
            async def get_by_url(self, url):
                raise RuntimeError("db offline")

        queue = IncrementalIndexQueue(vector_store, embedding_service, BrokenRepo(), page_delay=0)

        assert await queue.should_index("https://x", "hash") == IndexAction.NEW


class TestIndexPage:
    """Test suite for IncrementalIndexQueue.index_page."""

    @pytest.mark.asyncio
    async def test_should_store_chunks_and_page_row(self, index_queue, vector_store, page_repo):
        # Arrange
        page = make_page()

        # Act
        result = await index_queue.index_page(page)

        # Assert
        assert result.success is True
        assert result.chunks_indexed == 1
        record = vector_store.records[page_identity(page.url, 0)]
        assert record.payload["is_dynamic"] is True
        assert record.payload["source"] == "nextjs"
        assert record.payload["chunk_index"] == 0

        stored = await page_repo.get_by_url(page.url)
        assert stored.is_indexed is True
        assert stored.chunks_count == 1
        assert stored.access_count == 1
        assert stored.expires_at - stored.indexed_at == timedelta(days=60)

    @pytest.mark.asyncio
    async def test_reindexing_changed_page_should_overwrite_records(self, index_queue, vector_store):
        page = make_page()
        await index_queue.index_page(page)

        changed = make_page(content=PAGE_BODY.replace("background", "foreground"))
        await index_queue.index_page(changed)

        assert await vector_store.count() == 1
        assert "foreground" in vector_store.records[page_identity(page.url, 0)].payload["content"]

    @pytest.mark.asyncio
    async def test_embedding_failure_should_return_unsuccessful_result(self, vector_store, page_repo):
        queue = IncrementalIndexQueue(vector_store, FakeEmbeddingService(fail_on="regenerated"), page_repo, page_delay=0)

        result = await queue.index_page(make_page())

        assert result.success is False
        assert result.error
        assert await page_repo.get_by_url(make_page().url) is None


class TestQueueProcessing:
    """Test suite for the single consumer drain loop."""

    @pytest.mark.asyncio
    async def test_status_should_report_pending_pages(self, index_queue):
        await index_queue.queue([make_page(f"https://nextjs.org/docs/{i}") for i in range(3)])

        status = index_queue.status()

        assert status == {"pending": 3, "is_processing": True}
        await index_queue.join()
        assert index_queue.status() == {"pending": 0, "is_processing": False}

    @pytest.mark.asyncio
    async def test_should_run_a_single_consumer(self, index_queue, vector_store):
        # Arrange / Act
        await index_queue.queue([make_page("https://nextjs.org/docs/a")])
        first_worker = index_queue._worker
        await index_queue.queue([make_page("https://nextjs.org/docs/b")])

        # Assert
        assert index_queue._worker is first_worker
        await index_queue.join()
        assert {p["url"] for p in vector_store.payloads(is_dynamic=True)} == {
            "https://nextjs.org/docs/a", "https://nextjs.org/docs/b",
        }

    @pytest.mark.asyncio
    async def test_should_start_new_consumer_after_drain(self, index_queue):
        await index_queue.queue([make_page("https://nextjs.org/docs/a")])
        first_worker = index_queue._worker
        await index_queue.join()

        await index_queue.queue([make_page("https://nextjs.org/docs/b")])

        assert index_queue._worker is not first_worker
        await index_queue.join()

    @pytest.mark.asyncio
    async def test_failed_page_should_not_stop_the_queue(self, vector_store, page_repo):
        queue = IncrementalIndexQueue(vector_store, FakeEmbeddingService(fail_on="POISON"), page_repo, page_delay=0)
        poison = make_page("https://nextjs.org/docs/poison", content=PAGE_BODY + "\n\nPOISON paragraph that is long enough to be kept.")

        await queue.queue([poison, make_page("https://nextjs.org/docs/ok")])
        await queue.join()

        assert {p["url"] for p in vector_store.payloads()} == {"https://nextjs.org/docs/ok"}

    @pytest.mark.asyncio
    async def test_full_bounded_queue_should_drop_instead_of_waiting(self, vector_store, embedding_service, page_repo):
        # Arrange
        queue = IncrementalIndexQueue(vector_store, embedding_service, page_repo, page_delay=0, max_pending=2)
        pages = [make_page(f"https://nextjs.org/docs/{i}") for i in range(3)]

        # Act
        accepted = await asyncio.wait_for(queue.queue(pages), timeout=2)
        await queue.join()

        # Assert
        assert accepted == 2
        assert {p["url"] for p in vector_store.payloads()} == {
            "https://nextjs.org/docs/0", "https://nextjs.org/docs/1",
        }

    @pytest.mark.asyncio
    async def test_shutdown_should_cancel_consumer(self, index_queue):
        await index_queue.queue([make_page(f"https://nextjs.org/docs/{i}") for i in range(2)])

        await index_queue.shutdown()

        assert index_queue.status()["is_processing"] is False


class TestCleanupExpired:
    """Test suite for expiry cleanup."""

    @pytest.mark.asyncio
    async def test_should_remove_expired_rows_and_vectors(self, index_queue, vector_store, page_repo):
        # Arrange
        now = utc_now()
        await page_repo.upsert(DynamicPage(
            url="https://old", source_id="nextjs", title="old", content_hash="h",
            is_indexed=True, expires_at=now - timedelta(days=1),
        ))
        await page_repo.upsert(DynamicPage(
            url="https://fresh", source_id="nextjs", title="fresh", content_hash="h",
            is_indexed=True, expires_at=now + timedelta(days=1),
        ))
        for url in ("https://old", "https://fresh"):
            vector_store.records[url] = VectorRecord(url, [1.0], {"url": url, "is_dynamic": True, "content": "x"})

        # Act
        removed = await index_queue.cleanup_expired()

        # Assert
        assert removed == 1
        assert await page_repo.get_by_url("https://old") is None
        assert list(vector_store.records) == ["https://fresh"]
