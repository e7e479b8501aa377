# core/interfaces.py
"""Core interfaces for the documentation assistant"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncIterator, List, Dict, Any, Optional

from core.domain import (
    ChunkMetadata, ContextSwitch, DocSourceMetadata, DynamicPage, Ecosystem,
    EcosystemDetection, GenerationOptions, OnlineSearchHit, PageToIndex,
    ScoredRecord, VectorRecord,
)

# ============= Vector Store Interface =============
class IVectorStore(ABC):
    """
    Interface for vector storage operations.

    Filters are plain dicts: a scalar value means equality, a list means
    any-of, and a FieldRange means an inclusive numeric range. All keys must
    match.
    """

    @abstractmethod
    async def ensure_collection(self, dimension: int, distance: str = "cosine") -> None:
        """Create the collection if it does not exist. Raises CollectionSetupError."""
        pass

    @abstractmethod
    async def upsert(self, records: List[VectorRecord]) -> None:
        """Insert or overwrite records by id"""
        pass

    @abstractmethod
    async def search(
        self,
        vector: List[float],
        limit: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[ScoredRecord]:
        """Similarity search, best match first"""
        pass

    @abstractmethod
    async def get(self, filters: Dict[str, Any], limit: Optional[int] = None) -> List[ScoredRecord]:
        """Fetch records matching a filter (score is 0.0)"""
        pass

    @abstractmethod
    async def delete_by_filter(self, filters: Dict[str, Any]) -> None:
        """Delete every record matching the filter"""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Get total number of records"""
        pass

# ============= Embedding Service Interface =============
class IEmbeddingService(ABC):
    """Interface for embedding generation"""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Fixed length of every vector this provider returns"""
        pass

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Generate embedding for one text. Raises EmbeddingError."""
        pass

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for several texts"""
        pass

# ============= Language Model Interface =============
class ILanguageModel(ABC):
    """Interface for text generation"""

    @abstractmethod
    async def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        """Return the full completion. Raises LanguageModelError."""
        pass

    @abstractmethod
    def stream(self, prompt: str, options: Optional[GenerationOptions] = None) -> AsyncIterator[str]:
        """Yield the completion in incremental pieces"""
        pass

# ============= Repository Interfaces =============
class IChunkMetadataRepository(ABC):
    """Relational mirror of chunk payloads (advisory, the vector index is authoritative)"""

    @abstractmethod
    async def insert(self, row: ChunkMetadata) -> None:
        pass

    @abstractmethod
    async def delete_by_source(self, source: str) -> int:
        """Delete rows for a source, returning the number removed"""
        pass

    @abstractmethod
    async def count_by_source(self, source: str) -> int:
        pass


class IDynamicPageRepository(ABC):
    """Stored hash/expiry state of dynamically discovered pages"""

    @abstractmethod
    async def get_by_url(self, url: str) -> Optional[DynamicPage]:
        pass

    @abstractmethod
    async def touch(self, url: str, expires_at: Optional[datetime] = None) -> None:
        """Bump access_count and last_accessed_at for an unchanged page"""
        pass

    @abstractmethod
    async def upsert(self, page: DynamicPage) -> None:
        """Insert or replace the row keyed by url"""
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime) -> List[str]:
        """Delete expired rows, returning their urls"""
        pass


class IDocSourceRepository(ABC):
    """Registry of documentation sources"""

    @abstractmethod
    async def list_active(self) -> List[DocSourceMetadata]:
        pass

    @abstractmethod
    async def upsert(self, source: DocSourceMetadata) -> None:
        pass

    @abstractmethod
    async def update_stats(self, source_id: str, total_chunks: int) -> bool:
        """Record chunk count and last_scraped after an indexing run"""
        pass


class IContextSwitchRepository(ABC):
    """Append-only per-conversation switch history"""

    @abstractmethod
    async def add(self, switch: ContextSwitch) -> None:
        pass

    @abstractmethod
    async def list_for_conversation(self, conversation_id: str) -> List[ContextSwitch]:
        """Oldest first"""
        pass


class IEcosystemRepository(ABC):
    """Ecosystems and their member documentation sources"""

    @abstractmethod
    async def list_active(self) -> List[Ecosystem]:
        """Highest priority first"""
        pass

    @abstractmethod
    async def sources_by_ecosystem(self) -> Dict[str, List[str]]:
        pass

    @abstractmethod
    async def upsert(self, ecosystem: Ecosystem) -> None:
        pass

# ============= Collaborator Interfaces =============
class IEcosystemClassifier(ABC):
    """Keyword/embedding based detection of the ecosystem a query belongs to"""

    @abstractmethod
    async def detect(self, query: str) -> EcosystemDetection:
        pass


class IOnlineSearch(ABC):
    """Finds and fetches official documentation pages on the web"""

    @abstractmethod
    def is_enabled(self) -> bool:
        pass

    @abstractmethod
    async def search(self, query: str, ecosystem_hint: Optional[str] = None, limit: int = 3) -> List[OnlineSearchHit]:
        pass

    @abstractmethod
    async def fetch(self, url: str) -> PageToIndex:
        """Download a page and return its text with a content hash"""
        pass
