# core/enums.py
"""Shared enumerations used across the application."""
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes attached to per-chunk indexing outcomes."""
    EMBEDDING_FAILED = "EMBEDDING_FAILED"
    VECTOR_UPSERT_FAILED = "VECTOR_UPSERT_FAILED"
    METADATA_WRITE_FAILED = "METADATA_WRITE_FAILED"


class QueryType(str, Enum):
    """How the router classified a user query."""
    META = "meta"
    SPECIFIC = "specific"
    AMBIGUOUS = "ambiguous"
    GENERAL = "general"

    @staticmethod
    def from_string(value: str) -> 'QueryType':
        """Convert model output to QueryType; unknown values are ambiguous."""
        try:
            return QueryType((value or "").strip().lower())
        except ValueError:
            return QueryType.AMBIGUOUS


class IndexAction(str, Enum):
    """Result of comparing a discovered page against its stored hash."""
    NEW = "new"
    UPDATE = "update"
    SKIP = "skip"


class ResponseMode(str, Enum):
    """Answer persona selected by the client."""
    AUTO = "auto"
    FRIENDLY = "friendly"
    FRONTEND = "frontend"
    BACKEND = "backend"
    FULLSTACK = "fullstack"
    DEBUG = "debug"
    ARCHITECTURE = "architecture"

    @staticmethod
    def from_string(mode: str) -> 'ResponseMode':
        """Convert string to ResponseMode; unknown modes fall back to auto."""
        try:
            return ResponseMode((mode or "").strip().lower())
        except ValueError:
            return ResponseMode.AUTO


class StreamEventType(str, Enum):
    """Event kinds yielded by the streaming answer."""
    CONTENT = "content"
    REFERENCES = "references"
    STATUS = "status"
    SOURCE_DISCOVERED = "source_discovered"
