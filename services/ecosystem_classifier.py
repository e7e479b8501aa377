# services/ecosystem_classifier.py
"""Detects which documentation ecosystem a query belongs to"""
import json
import logging
import time
from typing import Dict, List, Optional

import numpy as np

from core.domain import Ecosystem, EcosystemDetection, GenerationOptions
from core.interfaces import IEcosystemClassifier, IEcosystemRepository, IEmbeddingService, ILanguageModel
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

GENERAL_ECOSYSTEM = "general"
ALIAS_CONFIDENCE = 95
KEYWORD_POINTS = 10


def cosine_similarity(a: List[float], b: List[float]) -> float:
    va = np.asarray(a, dtype="float32")
    vb = np.asarray(b, dtype="float32")
    if va.shape != vb.shape:
        return 0.0
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class EcosystemClassifier(IEcosystemClassifier):
    """
    Four stages, cheapest first:
      1. alias substring match (confidence 95)
      2. keyword and keyword-group scoring
      3. embedding similarity against ecosystem descriptions
      4. language model classification, falling back to the general ecosystem
    """

    def __init__(
        self,
        ecosystem_repo: IEcosystemRepository,
        embedding_service: IEmbeddingService,
        llm: ILanguageModel,
        cache_ttl: float = settings.ROUTER_CACHE_TTL_SECONDS,
        similarity_threshold: float = settings.ECOSYSTEM_SIMILARITY_THRESHOLD,
    ):
        self.ecosystem_repo = ecosystem_repo
        self.embedding_service = embedding_service
        self.llm = llm
        self.cache_ttl = cache_ttl
        self.similarity_threshold = similarity_threshold
        self._ecosystems: List[Ecosystem] = []
        self._sources: Dict[str, List[str]] = {}
        self._loaded_at = 0.0

    async def _load(self) -> List[Ecosystem]:
        now = time.monotonic()
        if self._ecosystems and now - self._loaded_at < self.cache_ttl:
            return self._ecosystems

        self._ecosystems = await self.ecosystem_repo.list_active()
        self._sources = await self.ecosystem_repo.sources_by_ecosystem()
        self._loaded_at = now
        return self._ecosystems

    def invalidate_cache(self) -> None:
        self._loaded_at = 0.0

    def _detection(self, ecosystem: Ecosystem, confidence: int, reasoning: str) -> EcosystemDetection:
        return EcosystemDetection(
            ecosystem_id=ecosystem.id,
            ecosystem_name=ecosystem.name,
            confidence=confidence,
            reasoning=reasoning,
            suggested_sources=list(self._sources.get(ecosystem.id, [])),
        )

    async def detect(self, query: str) -> EcosystemDetection:
        ecosystems = await self._load()
        if not ecosystems:
            return EcosystemDetection(None, GENERAL_ECOSYSTEM, 0, "No ecosystems configured")

        normalized = query.lower().strip()
        return (
            self._by_alias(normalized, ecosystems)
            or self._by_keywords(normalized, ecosystems)
            or await self._by_embedding(query, ecosystems)
            or await self._by_model(query, ecosystems)
        )

    def _by_alias(self, query: str, ecosystems: List[Ecosystem]) -> Optional[EcosystemDetection]:
        for ecosystem in ecosystems:
            if any(alias.lower() in query for alias in ecosystem.aliases if alias):
                return self._detection(ecosystem, ALIAS_CONFIDENCE, "Matched alias in query")
        return None

    def _by_keywords(self, query: str, ecosystems: List[Ecosystem]) -> Optional[EcosystemDetection]:
        best: Optional[Ecosystem] = None
        best_score = 0
        best_matches: List[str] = []

        for ecosystem in ecosystems:
            matches = [kw for kw in ecosystem.keywords if kw and kw.lower() in query]
            for group, keywords in ecosystem.keyword_groups.items():
                matches.extend(f"{group}:{kw}" for kw in keywords if kw and kw.lower() in query)

            score = KEYWORD_POINTS * len(matches)
            if score > best_score:
                best, best_score, best_matches = ecosystem, score, matches

        if best is None or best_score < KEYWORD_POINTS:
            return None
        confidence = min(ALIAS_CONFIDENCE, 70 + 5 * len(best_matches))
        return self._detection(best, confidence, f"Matched keywords: [{', '.join(best_matches)}]")

    async def _by_embedding(self, query: str, ecosystems: List[Ecosystem]) -> Optional[EcosystemDetection]:
        candidates = [e for e in ecosystems if e.description_embedding]
        if not candidates:
            return None
        try:
            vector = await self.embedding_service.embed(query)
        except Exception as e:
            logger.error(f"Ecosystem embedding search failed: {e}")
            return None

        best, best_sim = None, -1.0
        for ecosystem in candidates:
            sim = cosine_similarity(vector, ecosystem.description_embedding or [])
            if sim > best_sim:
                best, best_sim = ecosystem, sim

        if best is None or best_sim <= self.similarity_threshold:
            return None
        return self._detection(best, round(best_sim * 100), f"Semantic similarity match ({best_sim * 100:.1f}%)")

    async def _by_model(self, query: str, ecosystems: List[Ecosystem]) -> EcosystemDetection:
        listing = "\n".join(f"- {e.id}: {e.description}" for e in ecosystems)
        prompt = (
            "Analyze this query and select the best matching ecosystem.\n\n"
            f'Query: "{query}"\n\n'
            f"Available Ecosystems:\n{listing}\n\n"
            'Respond with JSON: { "ecosystemId": "string", "confidence": number, "reasoning": "string" }'
        )
        try:
            raw = await self.llm.generate(prompt, GenerationOptions(temperature=0.1, json_output=True))
            response = json.loads(raw or "{}")
            match = next((e for e in ecosystems if e.id == response.get("ecosystemId")), None)
            if match is not None:
                confidence = int(response.get("confidence") or 50)
                return self._detection(match, max(0, min(100, confidence)), response.get("reasoning") or "AI detection")
        except Exception as e:
            logger.error(f"Ecosystem model detection failed: {e}")

        general = next((e for e in ecosystems if e.id == GENERAL_ECOSYSTEM), ecosystems[0])
        return self._detection(general, 0, "Fallback to general")
