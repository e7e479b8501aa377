# services/indexing_service.py
"""Full re-index of one documentation source into the vector store"""
import asyncio
import logging
from typing import List

from core.domain import ChunkMetadata, ChunkOutcome, ChunkPayload, DocumentChunk, IndexStats, VectorRecord
from core.enums import ErrorCode
from core.interfaces import (
    IChunkMetadataRepository, IDocSourceRepository, IEmbeddingService, IVectorStore,
)
from services.chunking import compute_identity, effective_order, load_chunks_file, split_oversized
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


class IndexingPipeline:
    """
    Turns scraper chunks into vector records.

    Re-indexing a source deletes its previous records first; identities are
    deterministic, so running the same input twice yields the same record set.
    """

    def __init__(
        self,
        vector_store: IVectorStore,
        embedding_service: IEmbeddingService,
        chunk_repo: IChunkMetadataRepository,
        source_repo: IDocSourceRepository,
        batch_size: int = settings.INDEX_BATCH_SIZE,
        batch_delay: float = settings.INDEX_BATCH_DELAY_SECONDS,
        max_bytes: int = settings.MAX_CHUNK_BYTES,
        metadata_retries: int = settings.METADATA_MAX_RETRIES,
        metadata_retry_delay: float = settings.METADATA_RETRY_DELAY_SECONDS,
    ):
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.chunk_repo = chunk_repo
        self.source_repo = source_repo
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.max_bytes = max_bytes
        self.metadata_retries = metadata_retries
        self.metadata_retry_delay = metadata_retry_delay

    async def index_source(self, source_id: str, chunks: List[DocumentChunk]) -> IndexStats:
        """
        Index every chunk of `source_id`.

        Raises CollectionSetupError if the collection cannot be created.
        Per-chunk failures are counted in the returned stats, never raised.
        """
        logger.info(f"[Indexer] Indexing {len(chunks)} chunks for '{source_id}'")

        # Fatal: nothing can be written without a collection
        await self.vector_store.ensure_collection(self.embedding_service.dimension, "cosine")

        await self._clear_source(source_id)

        stats = IndexStats()
        for start in range(0, len(chunks), self.batch_size):
            batch = chunks[start:start + self.batch_size]
            results = await asyncio.gather(*(self._index_chunk(chunk) for chunk in batch))

            for outcomes, was_split in results:
                if was_split:
                    stats.split_count += 1
                for outcome in outcomes:
                    stats.record(outcome)

            done = min(start + self.batch_size, len(chunks))
            logger.info(
                f"[Indexer] {source_id}: {done}/{len(chunks)} chunks processed "
                f"({stats.success_count} ok, {stats.error_count} failed)"
            )
            if done < len(chunks) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        try:
            await self.source_repo.update_stats(source_id, stats.success_count)
        except Exception as e:
            logger.error(f"[Indexer] Failed to update stats for '{source_id}': {e}")

        logger.info(
            f"[Indexer] Finished '{source_id}': {stats.success_count} indexed, "
            f"{stats.error_count} errors, {stats.split_count} split"
        )
        return stats

    async def index_source_file(self, source_id: str, path: str) -> IndexStats:
        """Load a `<source>-chunks.json` artifact and index it."""
        chunks = await asyncio.to_thread(load_chunks_file, path, source_id)
        return await self.index_source(source_id, chunks)

    async def _clear_source(self, source_id: str) -> None:
        """Delete old vectors and metadata rows; failures are logged, not raised."""
        try:
            await self.vector_store.delete_by_filter({"source": source_id})
        except Exception as e:
            logger.error(f"[Indexer] Failed to delete old vectors for '{source_id}': {e}")

        try:
            removed = await self.chunk_repo.delete_by_source(source_id)
            logger.info(f"[Indexer] Removed {removed} metadata rows for '{source_id}'")
        except Exception as e:
            logger.error(f"[Indexer] Failed to delete old metadata for '{source_id}': {e}")

    async def _index_chunk(self, chunk: DocumentChunk):
        """Split, embed and store one chunk. Returns (outcomes, was_split)."""
        parts = split_oversized(chunk.content, self.max_bytes)
        total = len(parts)
        was_split = total > 1
        outcomes: List[ChunkOutcome] = []

        for sub_index, content in enumerate(parts):
            vector_id = compute_identity(chunk.source_id, chunk.url, chunk.base_index, sub_index)
            try:
                vector = await self.embedding_service.embed(content)
            except Exception as e:
                logger.error(f"[Indexer] Embedding failed for {chunk.url} part {sub_index + 1}/{total}: {e}")
                # Remaining parts of this chunk are skipped
                outcomes.append(ChunkOutcome(vector_id, False, ErrorCode.EMBEDDING_FAILED, str(e)))
                break

            order = effective_order(chunk.base_index, sub_index)
            title = f"{chunk.title} (Part {sub_index + 1}/{total})" if was_split else chunk.title

            extra = dict(chunk.metadata)
            if was_split:
                extra["split_part"] = sub_index + 1
                extra["total_parts"] = total
            payload = ChunkPayload(
                source=chunk.source_id,
                url=chunk.url,
                title=title,
                content=content,
                chunk_index=order,
                extra=extra,
            )

            try:
                await self.vector_store.upsert([VectorRecord(vector_id, vector, payload.to_dict())])
            except Exception as e:
                logger.error(f"[Indexer] Upsert failed for {vector_id}: {e}")
                outcomes.append(ChunkOutcome(vector_id, False, ErrorCode.VECTOR_UPSERT_FAILED, str(e)))
                continue

            outcomes.append(await self._insert_metadata(ChunkMetadata(
                vector_id=vector_id,
                url=chunk.url,
                title=title,
                source=chunk.source_id,
                chunk_index=order,
            )))

        return outcomes, was_split

    async def _insert_metadata(self, row: ChunkMetadata) -> ChunkOutcome:
        """Insert the metadata row, retrying with a fixed backoff."""
        last_error = ""
        for attempt in range(1, self.metadata_retries + 1):
            try:
                await self.chunk_repo.insert(row)
                return ChunkOutcome(row.vector_id, True)
            except Exception as e:
                last_error = str(e)
                logger.warning(
                    f"[Indexer] Metadata insert failed for {row.vector_id} "
                    f"(attempt {attempt}/{self.metadata_retries}): {e}"
                )
                if attempt < self.metadata_retries:
                    await asyncio.sleep(self.metadata_retry_delay)

        # The vector record stays; the metadata mirror is advisory
        return ChunkOutcome(row.vector_id, False, ErrorCode.METADATA_WRITE_FAILED, last_error)
