# services/index_queue.py
"""Background indexing of pages discovered while answering queries"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from core.domain import DynamicPage, PageIndexResult, PageToIndex, VectorRecord
from core.enums import IndexAction
from core.interfaces import IDynamicPageRepository, IEmbeddingService, IVectorStore
from services.chunking import page_identity, split_into_chunks
from config import settings
from utils.common import utc_now

logger = logging.getLogger(settings.LOGGER_NAME)


class IncrementalIndexQueue:
    """
    FIFO of pages plus a single consumer task.

    `queue()` starts the consumer only when none is running; the check and the
    task creation happen without yielding to the event loop, so at most one
    drain loop exists at a time.
    """

    def __init__(
        self,
        vector_store: IVectorStore,
        embedding_service: IEmbeddingService,
        page_repo: IDynamicPageRepository,
        page_delay: float = settings.QUEUE_PAGE_DELAY_SECONDS,
        ttl_days: int = settings.PAGE_TTL_DAYS,
        max_pending: int = settings.QUEUE_MAX_PENDING,
    ):
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.page_repo = page_repo
        self.page_delay = page_delay
        self.ttl_days = ttl_days
        self._pending: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._worker: Optional[asyncio.Task] = None

    # ============= Queue =============

    async def queue(self, pages: List[PageToIndex]) -> int:
        """
        Append pages and make sure the consumer is running.

        Never waits for room: callers sit inside chat requests, so when the
        queue is bounded and full the remaining pages are dropped and logged.
        Returns the number of pages accepted.
        """
        self._ensure_worker()
        accepted = 0
        for page in pages:
            try:
                self._pending.put_nowait(page)
                accepted += 1
            except asyncio.QueueFull:
                logger.warning(f"[AutoIndex] Queue full, dropping {page.url}")
        logger.info(f"[AutoIndex] Queued {accepted}/{len(pages)} pages for indexing")
        return accepted

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain(), name="incremental-index-queue")

    async def _drain(self) -> None:
        logger.info("[AutoIndex] Starting queue processing...")
        while True:
            try:
                page = self._pending.get_nowait()
            except asyncio.QueueEmpty:
                break

            try:
                result = await self.index_page(page)
                if result.success:
                    logger.info(f"[AutoIndex] Successfully indexed: {page.url}")
                else:
                    logger.error(f"[AutoIndex] Failed to index {page.url}: {result.error}")
            except Exception as e:
                logger.exception(f"[AutoIndex] Failed to index {page.url}: {e}")
            finally:
                self._pending.task_done()

            # Small delay between pages to stay under provider rate limits
            await asyncio.sleep(self.page_delay)
        logger.info("[AutoIndex] Queue processing complete")

    def status(self) -> Dict[str, object]:
        return {
            "pending": self._pending.qsize(),
            "is_processing": self._worker is not None and not self._worker.done(),
        }

    async def join(self) -> None:
        """Wait until every queued page has been processed."""
        await self._pending.join()
        if self._worker is not None:
            await self._worker

    async def shutdown(self) -> None:
        """Cancel the consumer; pages still pending are dropped."""
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        logger.info(f"[AutoIndex] Queue shut down with {self._pending.qsize()} pages pending")

    # ============= Deduplication =============

    def _expiry(self, now: datetime) -> datetime:
        return now + timedelta(days=self.ttl_days)

    async def should_index(self, url: str, content_hash: str) -> IndexAction:
        """Compare a page's hash with the stored one; unchanged pages only get their access bumped."""
        try:
            stored = await self.page_repo.get_by_url(url)
            if stored is None:
                return IndexAction.NEW

            if stored.content_hash == content_hash:
                await self.page_repo.touch(url, expires_at=self._expiry(utc_now()))
                return IndexAction.SKIP

            return IndexAction.UPDATE
        except Exception as e:
            logger.error(f"[AutoIndex] should_index error for {url}: {e}")
            return IndexAction.NEW

    async def is_indexed(self, url: str) -> bool:
        stored = await self.page_repo.get_by_url(url)
        return bool(stored and stored.is_indexed)

    async def cleanup_expired(self) -> int:
        """Remove vectors and rows of pages past their expiry."""
        urls = await self.page_repo.delete_expired(utc_now())
        for url in urls:
            try:
                await self.vector_store.delete_by_filter({"url": url, "is_dynamic": True})
            except Exception as e:
                logger.error(f"[AutoIndex] Failed to delete vectors for expired page {url}: {e}")
        if urls:
            logger.info(f"[AutoIndex] Removed {len(urls)} expired pages")
        return len(urls)

    # ============= Indexing =============

    async def index_page(self, page: PageToIndex) -> PageIndexResult:
        """Chunk, embed and store one page, then record its hash and expiry."""
        started = utc_now()
        try:
            chunks = split_into_chunks(page.content)
            logger.info(f"[AutoIndex] Split {page.url} into {len(chunks)} chunks")

            await self.vector_store.ensure_collection(self.embedding_service.dimension, "cosine")

            indexed_at = utc_now()
            records = []
            for i, chunk in enumerate(chunks):
                vector = await self.embedding_service.embed(chunk)
                records.append(VectorRecord(
                    id=page_identity(page.url, i),
                    vector=vector,
                    payload={
                        "content": chunk,
                        "url": page.url,
                        "title": page.title,
                        "source": page.source,
                        "chunk_index": i,
                        "is_dynamic": True,
                        "indexed_at": indexed_at.isoformat(),
                    },
                ))

            await self.vector_store.upsert(records)

            try:
                await self.page_repo.upsert(DynamicPage(
                    url=page.url,
                    source_id=page.source,
                    title=page.title,
                    content_hash=page.content_hash,
                    is_indexed=True,
                    indexed_at=indexed_at,
                    discovered_by=page.discovered_by,
                    query_that_found=page.query_that_found,
                    access_count=1,
                    last_accessed_at=indexed_at,
                    expires_at=self._expiry(indexed_at),
                    chunks_count=len(chunks),
                ))
            except Exception as e:
                logger.error(f"[AutoIndex] Page row upsert failed for {page.url}: {e}")

            elapsed = (utc_now() - started).total_seconds() * 1000
            logger.info(f"[AutoIndex] Indexed {len(chunks)} chunks in {elapsed:.0f}ms")
            return PageIndexResult(success=True, chunks_indexed=len(chunks))

        except Exception as e:
            logger.error(f"[AutoIndex] index_page error for {page.url}: {e}")
            return PageIndexResult(success=False, chunks_indexed=0, error=str(e))
