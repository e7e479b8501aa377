# infrastructure/embedding_services.py
"""Sentence-transformers embedding adapter producing unit-length vectors"""
import asyncio
import logging
import threading
import numpy as np
from typing import List, Optional
from sentence_transformers import SentenceTransformer

from core.interfaces import IEmbeddingService
from core.exceptions import EmbeddingError
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


class SentenceTransformerEmbedding(IEmbeddingService):
    """
    Embeds doc chunks and queries with one shared SentenceTransformer.

    Vectors are L2 normalized, so the cosine thresholds used by retrieval
    and ecosystem detection do not depend on the model. The model is loaded
    on first use, keeping app startup and the CLI's argument parsing fast.
    """

    def __init__(self, model_name: str = settings.EMBEDDING_MODEL_NAME):
        self.model_name = model_name
        self._model: Optional[SentenceTransformer] = None
        self._lock = threading.Lock()

    @property
    def model(self) -> SentenceTransformer:
        with self._lock:
            if self._model is None:
                logger.info(f"[Embedding] Loading model '{self.model_name}'")
                try:
                    self._model = SentenceTransformer(self.model_name)
                except Exception as e:
                    raise EmbeddingError(f"Could not load embedding model '{self.model_name}': {e}") from e
                logger.info(f"[Embedding] Model ready, dimension={self._model.get_sentence_embedding_dimension()}")
            return self._model

    @property
    def dimension(self) -> int:
        return int(self.model.get_sentence_embedding_dimension())

    def _encode(self, texts: List[str]) -> np.ndarray:
        vectors = np.asarray(self.model.encode(texts, convert_to_numpy=True), dtype="float32")
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return vectors / norms

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            vectors = await asyncio.to_thread(self._encode, texts)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Failed to embed {len(texts)} texts: {e}") from e
        return vectors.tolist()

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        return (await self.embed_batch([text]))[0]
