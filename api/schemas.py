# api/schemas.py
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional, List


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    conversation_id: Optional[str] = None
    history: List[ChatMessage] = Field(default_factory=list)
    mode: Optional[str] = None
    # Skips detection when the user picked a source (e.g. from a clarification)
    source: Optional[str] = None


class RoutingInfo(BaseModel):
    query_type: str
    confidence: int
    reasoning: str = ""
    primary_source: Optional[str] = None
    additional_sources: Optional[List[str]] = None


class ReferenceItem(BaseModel):
    title: str
    url: str
    snippet: str


class ClarificationOptionItem(BaseModel):
    id: str
    label: str
    description: str


class ClarificationItem(BaseModel):
    message: str
    options: List[ClarificationOptionItem]


class ChatResponse(BaseModel):
    status: str  # "answer" or "clarification"
    routing: RoutingInfo
    answer: Optional[str] = None
    references: List[ReferenceItem] = Field(default_factory=list)
    code: Optional[str] = None
    tokens_used: int = 0
    used_online_search: bool = False
    clarification: Optional[ClarificationItem] = None


class ContextSwitchItem(BaseModel):
    from_source: Optional[str] = None
    to_source: str
    query: str
    is_explicit: bool = False
    timestamp: Optional[str] = None


class SessionContextResponse(BaseModel):
    conversation_id: str
    current_source: Optional[str] = None
    previous_source: Optional[str] = None
    switch_count: int = 0
    history: List[ContextSwitchItem] = Field(default_factory=list)


class IndexChunkItem(BaseModel):
    content: str
    url: str
    title: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IndexSourceRequest(BaseModel):
    chunks: List[IndexChunkItem]


class IndexStatsResponse(BaseModel):
    source_id: str
    success_count: int
    error_count: int
    split_count: int


class QueueStatusResponse(BaseModel):
    pending: int
    is_processing: bool
