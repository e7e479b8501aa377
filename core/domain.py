# core/domain.py
"""Domain models shared by the indexing, routing and answering layers"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Dict, Any, Optional

from core.enums import ErrorCode, QueryType, StreamEventType

# ============= Indexing =============

@dataclass
class DocumentChunk:
    """A scraped passage before identity assignment and size splitting"""
    content: str
    url: str
    title: str
    source_id: str
    base_index: int = 0
    sub_index: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChunkPayload:
    """
    Payload stored next to a vector.

    The required keys are typed fields; provider or scraper specific keys
    (split_part, total_parts, is_dynamic, indexed_at, ...) live in `extra`.
    """
    source: str
    url: str
    title: str
    content: str
    chunk_index: int
    extra: Dict[str, Any] = field(default_factory=dict)

    REQUIRED_KEYS = ("source", "url", "title", "content", "chunk_index")

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "source": self.source,
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "chunk_index": self.chunk_index,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChunkPayload':
        extra = {k: v for k, v in data.items() if k not in cls.REQUIRED_KEYS}
        return cls(
            source=data.get("source", ""),
            url=data.get("url", ""),
            title=data.get("title", ""),
            content=data.get("content", ""),
            chunk_index=int(data.get("chunk_index", 0)),
            extra=extra,
        )


@dataclass
class VectorRecord:
    """One record in the vector index"""
    id: str
    vector: List[float]
    payload: Dict[str, Any]


@dataclass
class ScoredRecord:
    """A vector index hit; score is cosine similarity (higher is closer)"""
    id: str
    score: float
    payload: Dict[str, Any]


@dataclass
class FieldRange:
    """Inclusive numeric range used in vector index filters"""
    gte: Optional[float] = None
    lte: Optional[float] = None


@dataclass
class ChunkMetadata:
    """Queryable mirror of a chunk's payload in the relational store"""
    vector_id: str
    url: str
    title: str
    source: str
    chunk_index: int


@dataclass
class ChunkOutcome:
    """Result of indexing one sub-chunk"""
    vector_id: Optional[str]
    ok: bool
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None


@dataclass
class IndexStats:
    """Aggregate counters returned by a full source re-index"""
    success_count: int = 0
    error_count: int = 0
    split_count: int = 0

    def record(self, outcome: ChunkOutcome) -> None:
        if outcome.ok:
            self.success_count += 1
        else:
            self.error_count += 1


# ============= Dynamic pages =============

@dataclass
class PageToIndex:
    """A page discovered at query time, waiting for incremental indexing"""
    url: str
    title: str
    content: str
    source: str
    content_hash: str
    discovered_by: Optional[str] = None
    query_that_found: Optional[str] = None


@dataclass
class OnlineSearchHit:
    url: str
    title: str
    snippet: str = ""


@dataclass
class PageIndexResult:
    success: bool
    chunks_indexed: int
    error: Optional[str] = None


@dataclass
class DynamicPage:
    """Stored state of a dynamically discovered page"""
    url: str
    source_id: str
    title: str
    content_hash: str
    is_indexed: bool = False
    indexed_at: Optional[datetime] = None
    discovered_by: Optional[str] = None
    query_that_found: Optional[str] = None
    access_count: int = 0
    last_accessed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    chunks_count: int = 0


# ============= Routing =============

@dataclass
class DocSourceMetadata:
    id: str
    name: str
    description: str = ""
    keywords: List[str] = field(default_factory=list)
    is_active: bool = True
    official_url: Optional[str] = None
    ecosystem_id: Optional[str] = None


@dataclass
class Ecosystem:
    """A family of related documentation sources (e.g. frontend, python)"""
    id: str
    name: str
    description: str = ""
    aliases: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    keyword_groups: Dict[str, List[str]] = field(default_factory=dict)
    priority: int = 0
    description_embedding: Optional[List[float]] = None


@dataclass
class EcosystemDetection:
    ecosystem_id: Optional[str]
    ecosystem_name: str
    confidence: int
    reasoning: str
    suggested_sources: List[str] = field(default_factory=list)


@dataclass
class ContextSwitch:
    conversation_id: str
    from_source: Optional[str]
    to_source: str
    query: str
    timestamp: Optional[datetime] = None
    is_explicit: bool = False


@dataclass
class SessionContext:
    """Per-conversation memory of which source answered recently"""
    conversation_id: str
    context_history: List[ContextSwitch] = field(default_factory=list)
    current_source: Optional[str] = None
    previous_source: Optional[str] = None
    switch_count: int = 0


@dataclass
class RoutingDecision:
    query_type: QueryType
    confidence: int
    reasoning: str = ""
    needs_clarification: bool = False
    primary_source: Optional[str] = None
    additional_sources: Optional[List[str]] = None
    suggested_sources: Optional[List[str]] = None

    @property
    def all_sources(self) -> List[str]:
        """Primary followed by additional sources."""
        if not self.primary_source:
            return []
        return [self.primary_source] + list(self.additional_sources or [])


@dataclass
class ClarificationOption:
    id: str
    label: str
    description: str


@dataclass
class ClarificationResponse:
    message: str
    options: List[ClarificationOption] = field(default_factory=list)


@dataclass
class ChatTurn:
    role: str
    content: str


# ============= Retrieval / Answers =============

@dataclass
class SearchResult:
    id: str
    content: str
    url: str
    title: str
    source: str
    similarity: float
    chunk_index: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Reference:
    title: str
    url: str
    snippet: str


@dataclass
class AnswerResult:
    text: str
    references: List[Reference] = field(default_factory=list)
    code: Optional[str] = None
    tokens_used: int = 0
    used_online_search: bool = False


@dataclass
class StreamEvent:
    type: StreamEventType
    data: Any


@dataclass
class GenerationOptions:
    """Per-call language model options"""
    temperature: float = 0.3
    max_tokens: Optional[int] = None
    json_output: bool = False
