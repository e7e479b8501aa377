# core/exceptions.py
"""Exceptions raised by infrastructure adapters and services"""
from typing import Optional

from core.enums import ErrorCode


class DocPilotError(Exception):
    """Base class for application errors"""

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(message)

    def __str__(self):
        if self.error_code is None:
            return self.message
        return f"[{self.error_code.value}] {self.message}"


class EmbeddingError(DocPilotError):
    """Embedding provider failed or returned an unusable vector"""


class VectorStoreError(DocPilotError):
    """Vector index rejected a call or is unreachable"""


class CollectionSetupError(VectorStoreError):
    """Collection could not be created; indexing cannot proceed"""


class LanguageModelError(DocPilotError):
    """Language model call failed or returned an empty response"""


class ClassificationError(DocPilotError):
    """Router could not parse a classification response"""


class AnswerGenerationError(DocPilotError):
    """Answer synthesis failed; callers surface a generic message"""
