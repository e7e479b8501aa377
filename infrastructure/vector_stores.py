# infrastructure/vector_stores.py
"""Concrete implementations of vector stores"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from core.interfaces import IVectorStore
from core.domain import FieldRange, ScoredRecord, VectorRecord
from core.exceptions import CollectionSetupError, VectorStoreError

from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

CONTENT_KEY = "content"


def build_where(filters: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Translate a store-neutral filter dict into a ChromaDB `where` clause.

    scalar -> $eq, list/tuple/set -> $in, FieldRange -> $gte/$lte.
    Several conditions are combined with $and.
    """
    if not filters:
        return None

    clauses: List[Dict[str, Any]] = []
    for key, value in filters.items():
        if isinstance(value, FieldRange):
            if value.gte is not None:
                clauses.append({key: {"$gte": value.gte}})
            if value.lte is not None:
                clauses.append({key: {"$lte": value.lte}})
        elif isinstance(value, (list, tuple, set)):
            clauses.append({key: {"$in": list(value)}})
        else:
            clauses.append({key: {"$eq": value}})

    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def to_chroma_metadata(payload: Dict[str, Any]) -> Dict[str, Any]:
    """ChromaDB metadata values must be scalars: drop None, JSON-encode containers."""
    metadata: Dict[str, Any] = {}
    for key, value in payload.items():
        if key == CONTENT_KEY or value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            metadata[key] = value
        else:
            metadata[key] = json.dumps(value, ensure_ascii=False, default=str)
    return metadata


class ChromaDBVectorStore(IVectorStore):
    """
    ChromaDB implementation using cosine distance.

    Payload `content` is stored as the record document; every other payload
    key is stored as metadata. Scores are cosine similarity (1 - distance).
    """

    def __init__(self, client: Any, collection_name: str = settings.VECTOR_COLLECTION_NAME):
        self._client = client
        self._collection_name = collection_name
        self._collection: Any = None
        self._dimension: Optional[int] = None

    async def ensure_collection(self, dimension: int, distance: str = "cosine") -> None:
        if self._collection is not None:
            return
        try:
            self._collection = await asyncio.to_thread(
                self._client.get_or_create_collection,
                name=self._collection_name,
                metadata={"hnsw:space": distance},
            )
            self._dimension = dimension
            logger.info(f"Collection '{self._collection_name}' ready (dim={dimension}, {distance})")
        except Exception as e:
            raise CollectionSetupError(
                f"Failed to create collection '{self._collection_name}': {e}"
            ) from e

    async def _require_collection(self):
        """Lazy initialization of collection for read paths"""
        if self._collection is None:
            try:
                self._collection = await asyncio.to_thread(
                    self._client.get_or_create_collection,
                    name=self._collection_name,
                    metadata={"hnsw:space": "cosine"},
                )
            except Exception as e:
                raise VectorStoreError(f"Collection '{self._collection_name}' unavailable: {e}") from e
        return self._collection

    async def upsert(self, records: List[VectorRecord]) -> None:
        if not records:
            return
        collection = await self._require_collection()

        if self._dimension is not None:
            for record in records:
                if len(record.vector) != self._dimension:
                    raise VectorStoreError(
                        f"Vector for {record.id} has dimension {len(record.vector)}, expected {self._dimension}"
                    )
        try:
            await asyncio.to_thread(
                collection.upsert,
                ids=[r.id for r in records],
                embeddings=[r.vector for r in records],
                documents=[str(r.payload.get(CONTENT_KEY, "")) for r in records],
                metadatas=[to_chroma_metadata(r.payload) for r in records],
            )
        except Exception as e:
            raise VectorStoreError(f"Upsert of {len(records)} records failed: {e}") from e

    def _to_payload(self, document: Optional[str], metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        payload = dict(metadata or {})
        payload[CONTENT_KEY] = document or ""
        return payload

    async def search(
        self,
        vector: List[float],
        limit: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[ScoredRecord]:
        collection = await self._require_collection()
        try:
            results = await asyncio.to_thread(
                collection.query,
                query_embeddings=[vector],
                n_results=limit,
                where=build_where(filters),
                include=["metadatas", "documents", "distances"],
            )
        except Exception as e:
            raise VectorStoreError(f"Search failed in ChromaDB: {e}") from e

        hits: List[ScoredRecord] = []
        if not results.get("ids") or not results["ids"][0]:
            return hits

        for i, record_id in enumerate(results["ids"][0]):
            # cosine space: distance = 1 - cos(a, b)
            similarity = 1.0 - float(results["distances"][0][i])
            hits.append(ScoredRecord(
                id=record_id,
                score=similarity,
                payload=self._to_payload(results["documents"][0][i], results["metadatas"][0][i]),
            ))
        return hits

    async def get(self, filters: Dict[str, Any], limit: Optional[int] = None) -> List[ScoredRecord]:
        collection = await self._require_collection()
        try:
            results = await asyncio.to_thread(
                collection.get,
                where=build_where(filters),
                limit=limit,
                include=["metadatas", "documents"],
            )
        except Exception as e:
            raise VectorStoreError(f"Filtered get failed in ChromaDB: {e}") from e

        return [
            ScoredRecord(
                id=record_id,
                score=0.0,
                payload=self._to_payload(results["documents"][i], results["metadatas"][i]),
            )
            for i, record_id in enumerate(results.get("ids") or [])
        ]

    async def delete_by_filter(self, filters: Dict[str, Any]) -> None:
        collection = await self._require_collection()
        try:
            await asyncio.to_thread(collection.delete, where=build_where(filters))
        except Exception as e:
            raise VectorStoreError(f"Failed to delete records matching {filters}: {e}") from e

    async def count(self) -> int:
        collection = await self._require_collection()
        try:
            return await asyncio.to_thread(collection.count)
        except Exception as e:
            raise VectorStoreError(f"Failed to get count: {e}") from e
