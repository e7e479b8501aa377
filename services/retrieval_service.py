# services/retrieval_service.py
"""Similarity search over indexed documentation with quality filtering"""
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Union

from core.domain import FieldRange, ScoredRecord, SearchResult
from core.interfaces import IEmbeddingService, IVectorStore
from services.quality_filter import filter_quality
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

SourceFilter = Union[str, Sequence[str], None]


def _to_result(hit: ScoredRecord) -> SearchResult:
    payload = hit.payload or {}
    chunk_index = payload.get("chunk_index")
    return SearchResult(
        id=hit.id,
        content=str(payload.get("content", "")),
        url=str(payload.get("url", "")),
        title=str(payload.get("title", "")),
        source=str(payload.get("source", "")),
        similarity=hit.score,
        chunk_index=int(chunk_index) if chunk_index is not None else None,
        metadata=payload,
    )


class RetrievalService:
    """Embeds queries, searches the vector store and drops boilerplate hits."""

    def __init__(
        self,
        vector_store: IVectorStore,
        embedding_service: IEmbeddingService,
        overfetch_factor: int = settings.SEARCH_OVERFETCH_FACTOR,
        window_radius: int = settings.CONTEXT_WINDOW_RADIUS,
        order_factor: int = settings.CHUNK_ORDER_FACTOR,
    ):
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.overfetch_factor = overfetch_factor
        self.window_radius = window_radius
        self.order_factor = order_factor

    async def search(
        self,
        query: str,
        source_id: SourceFilter = None,
        limit: int = settings.DEFAULT_SEARCH_RESULTS,
    ) -> List[SearchResult]:
        """Top `limit` quality results, best first. A list of sources matches any of them."""
        vector = await self.embedding_service.embed(query)

        filters: Optional[Dict[str, Any]] = None
        if isinstance(source_id, str):
            filters = {"source": source_id}
        elif source_id:
            filters = {"source": list(source_id)}

        hits = await self.vector_store.search(vector, limit * self.overfetch_factor, filters)
        candidates = sorted((_to_result(h) for h in hits), key=lambda r: r.similarity, reverse=True)
        results = filter_quality(candidates, limit)

        logger.info(
            f"Search '{query[:60]}' source={source_id}: {len(hits)} candidates, {len(results)} kept"
        )
        return results

    async def search_many(
        self,
        query: str,
        sources: List[str],
        per_source: int = settings.MULTI_SOURCE_PER_SOURCE,
        limit: int = settings.MULTI_SOURCE_LIMIT,
    ) -> List[SearchResult]:
        """Search each source separately and keep the best `limit` overall."""
        merged: List[SearchResult] = []
        for source in sources:
            merged.extend(await self.search(query, source, per_source))
        merged.sort(key=lambda r: r.similarity, reverse=True)
        return merged[:limit]

    async def expand_context(self, results: List[SearchResult]) -> List[SearchResult]:
        """
        Attach the nearest preceding and following chunk of the same page.

        Split chunks carry chunk_index = base * factor + part, so neighbours
        are looked up within `window_radius` base positions and the closest
        lower and higher indexes win.
        """
        expanded = []
        for result in results:
            if result.chunk_index is None or not result.url:
                expanded.append(result)
                continue

            span = self.window_radius * self.order_factor
            try:
                siblings = await self.vector_store.get({
                    "url": result.url,
                    "source": result.source,
                    "chunk_index": FieldRange(gte=result.chunk_index - span, lte=result.chunk_index + span),
                })
            except Exception as e:
                logger.warning(f"Context expansion failed for {result.url}: {e}")
                expanded.append(result)
                continue

            previous = nxt = None
            for sibling in (_to_result(s) for s in siblings):
                idx = sibling.chunk_index
                if idx is None or idx == result.chunk_index:
                    continue
                if idx < result.chunk_index and (previous is None or idx > previous.chunk_index):
                    previous = sibling
                elif idx > result.chunk_index and (nxt is None or idx < nxt.chunk_index):
                    nxt = sibling

            parts = [p.content for p in (previous, result, nxt) if p is not None]
            expanded.append(replace(result, content="\n\n".join(parts)))
        return expanded

    @staticmethod
    def is_low_quality(
        results: List[SearchResult],
        min_results: int = settings.LOW_QUALITY_MIN_RESULTS,
        min_similarity: float = settings.LOW_QUALITY_MIN_SIMILARITY,
        min_top_chars: int = settings.LOW_QUALITY_MIN_TOP_CHARS,
    ) -> bool:
        """True when results are too few, too weak or too short to answer from."""
        if not results or len(results) < min_results:
            return True
        average = sum(r.similarity for r in results) / len(results)
        if average < min_similarity:
            return True
        return len(results[0].content) < min_top_chars
