# services/query_router.py
"""Decides which documentation source(s) should answer a query"""
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from core.domain import (
    ChatTurn, ClarificationOption, ClarificationResponse, ContextSwitch, DocSourceMetadata,
    GenerationOptions, RoutingDecision, SessionContext,
)
from core.enums import QueryType
from core.exceptions import ClassificationError
from core.interfaces import IContextSwitchRepository, IDocSourceRepository, IEcosystemClassifier, ILanguageModel
from services.prompts import build_detection_prompt, build_meta_prompt, build_source_instructions
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

CLARIFICATION_MESSAGE = (
    "I detected multiple possible documentation sources. Which one would you like to explore?"
)


def build_meta_pattern(app_name: str) -> "re.Pattern[str]":
    """Self-identity questions in English and Indonesian."""
    app = re.escape(app_name.lower())
    return re.compile(
        rf"^(who are you|what is (this|{app})|(ini|apa) (itu|kah) ({app}|ini|aplikasi|platform)"
        rf"|siapa (kamu|anda)|({app} )?identity|tech stack|tentang {app}|platform apa ini)",
        re.IGNORECASE,
    )


@dataclass
class RouterState:
    """Doc source cache owned by one router instance."""
    sources: Dict[str, DocSourceMetadata] = field(default_factory=dict)
    loaded_at: float = 0.0

    def is_fresh(self, ttl: float, now: float) -> bool:
        return bool(self.sources) and now - self.loaded_at < ttl


class QueryRouter:
    """
    Classification order:
      1. meta fast path (regex, no model call)
      2. ecosystem classifier when it is confident
      3. language model classification
      4. auto-resolution of ambiguous answers with few suggestions
    Any failure in 3-4 falls back to asking the user.
    """

    def __init__(
        self,
        llm: ILanguageModel,
        source_repo: IDocSourceRepository,
        switch_repo: IContextSwitchRepository,
        ecosystem_classifier: Optional[IEcosystemClassifier] = None,
        confidence_threshold: int = settings.ROUTER_CONFIDENCE_THRESHOLD,
        ecosystem_threshold: int = settings.ECOSYSTEM_CONFIDENCE_THRESHOLD,
        resolved_confidence: int = settings.AMBIGUITY_RESOLVED_CONFIDENCE,
        max_auto_resolve: int = settings.AMBIGUITY_MAX_SUGGESTIONS,
        cache_ttl: float = settings.ROUTER_CACHE_TTL_SECONDS,
        app_name: str = settings.ASSISTANT_NAME,
    ):
        self.llm = llm
        self.source_repo = source_repo
        self.switch_repo = switch_repo
        self.ecosystem_classifier = ecosystem_classifier
        self.confidence_threshold = confidence_threshold
        self.ecosystem_threshold = ecosystem_threshold
        self.resolved_confidence = resolved_confidence
        self.max_auto_resolve = max_auto_resolve
        self.cache_ttl = cache_ttl
        self.app_name = app_name
        self.state = RouterState()
        self._meta_pattern = build_meta_pattern(app_name)

    # ============= Doc sources =============

    async def get_available_sources(self) -> List[DocSourceMetadata]:
        """Active sources, cached for `cache_ttl` seconds."""
        now = time.monotonic()
        if self.state.is_fresh(self.cache_ttl, now):
            return list(self.state.sources.values())

        try:
            sources = await self.source_repo.list_active()
        except Exception as e:
            logger.error(f"Error fetching doc sources: {e}")
            return list(self.state.sources.values())

        self.state.sources = {s.id: s for s in sources}
        self.state.loaded_at = now
        return sources

    def invalidate_cache(self) -> None:
        self.state = RouterState()

    # ============= Session tracking =============

    async def get_session_context(self, conversation_id: str) -> SessionContext:
        try:
            history = await self.switch_repo.list_for_conversation(conversation_id)
        except Exception as e:
            logger.error(f"Error loading session context for {conversation_id}: {e}")
            return SessionContext(conversation_id=conversation_id)

        return SessionContext(
            conversation_id=conversation_id,
            context_history=history,
            current_source=history[-1].to_source if history else None,
            previous_source=history[-2].to_source if len(history) > 1 else None,
            switch_count=len(history),
        )

    async def track_context_switch(
        self,
        conversation_id: str,
        from_source: Optional[str],
        to_source: str,
        query: str,
        is_explicit: bool = False,
    ) -> None:
        try:
            await self.switch_repo.add(ContextSwitch(
                conversation_id=conversation_id,
                from_source=from_source,
                to_source=to_source,
                query=query,
                is_explicit=is_explicit,
            ))
        except Exception as e:
            logger.error(f"Error tracking context switch: {e}")

    # ============= Detection =============

    def is_meta_query(self, query: str) -> bool:
        text = query.strip()
        if self._meta_pattern.search(text):
            return True
        return self.app_name.lower() in text.lower() and len(text) < settings.META_QUERY_MAX_LENGTH

    async def detect_context(
        self,
        query: str,
        history: Optional[Sequence[ChatTurn]] = None,
        conversation_id: Optional[str] = None,
    ) -> RoutingDecision:
        if self.is_meta_query(query):
            return RoutingDecision(
                query_type=QueryType.META,
                confidence=100,
                reasoning=f"Direct meta query about {self.app_name} detected via regex",
                needs_clarification=False,
                suggested_sources=[],
            )

        ecosystem_decision = await self._detect_by_ecosystem(query)
        if ecosystem_decision is not None:
            return ecosystem_decision

        try:
            sources = await self.get_available_sources()
            session = await self.get_session_context(conversation_id) if conversation_id else None
            prompt = build_detection_prompt(query, sources, history, session)
            raw = await self.llm.generate(prompt, GenerationOptions(temperature=0.1, json_output=True))
            return self.parse_detection(self._load_json(raw))
        except Exception as e:
            logger.error(f"Error in context detection: {e}")
            known = await self.get_available_sources()
            return RoutingDecision(
                query_type=QueryType.AMBIGUOUS,
                confidence=0,
                reasoning="Detection failed, fallback to clarification",
                needs_clarification=True,
                suggested_sources=[s.id for s in known],
            )

    async def _detect_by_ecosystem(self, query: str) -> Optional[RoutingDecision]:
        if self.ecosystem_classifier is None:
            return None
        try:
            result = await self.ecosystem_classifier.detect(query)
        except Exception as e:
            logger.error(f"Ecosystem detection failed: {e}")
            return None

        if result.confidence <= self.ecosystem_threshold or not result.suggested_sources:
            return None

        sources = list(result.suggested_sources)
        return RoutingDecision(
            query_type=QueryType.SPECIFIC,
            primary_source=sources[0],
            additional_sources=sources[1:] or None,
            confidence=result.confidence,
            reasoning=f"Ecosystem detected: {result.ecosystem_name} -> Sources: [{', '.join(sources)}] ({result.reasoning})",
            needs_clarification=False,
            suggested_sources=sources,
        )

    @staticmethod
    def _load_json(raw: str) -> Dict[str, Any]:
        try:
            detection = json.loads(raw or "{}")
        except ValueError as e:
            raise ClassificationError(f"Router response is not JSON: {raw[:200]!r}") from e
        if not isinstance(detection, dict):
            raise ClassificationError("Router response is not a JSON object")
        return detection

    def parse_detection(self, detection: Dict[str, Any]) -> RoutingDecision:
        query_type = QueryType.from_string(detection.get("queryType") or "ambiguous")
        confidence = max(0, min(100, int(detection.get("confidence") or 0)))
        suggested = [str(s) for s in (detection.get("suggestedSources") or [])]
        reasoning = detection.get("reasoning") or ""

        if query_type == QueryType.AMBIGUOUS and 0 < len(suggested) <= self.max_auto_resolve:
            return RoutingDecision(
                query_type=QueryType.SPECIFIC,
                primary_source=suggested[0],
                additional_sources=suggested[1:],
                confidence=self.resolved_confidence,
                reasoning=f"{reasoning} (Auto-resolved ambiguity with multi-source)".strip(),
                needs_clarification=False,
                suggested_sources=suggested,
            )

        additional = [str(s) for s in (detection.get("additionalSources") or [])]
        return RoutingDecision(
            query_type=query_type,
            primary_source=detection.get("primarySource") or None,
            additional_sources=additional or None,
            confidence=confidence,
            reasoning=reasoning,
            needs_clarification=query_type == QueryType.AMBIGUOUS or confidence < self.confidence_threshold,
            suggested_sources=suggested or None,
        )

    async def route(
        self,
        query: str,
        history: Optional[Sequence[ChatTurn]] = None,
        conversation_id: Optional[str] = None,
        force_source: Optional[str] = None,
    ) -> RoutingDecision:
        """Detect (or accept a forced source) and record the switch for resolved queries."""
        if force_source:
            decision = RoutingDecision(
                query_type=QueryType.SPECIFIC,
                primary_source=force_source,
                confidence=100,
                reasoning="Source selected by user",
                needs_clarification=False,
            )
        else:
            decision = await self.detect_context(query, history, conversation_id)

        if conversation_id and decision.primary_source and not decision.needs_clarification:
            session = await self.get_session_context(conversation_id)
            await self.track_context_switch(
                conversation_id,
                session.current_source,
                decision.primary_source,
                query,
                is_explicit=bool(force_source),
            )

        logger.info(
            f"Routed '{query[:60]}' -> {decision.query_type.value} "
            f"primary={decision.primary_source} confidence={decision.confidence}"
        )
        return decision

    # ============= Helpers for the answer layer =============

    def generate_clarification_prompt(
        self,
        suggested_sources: List[str],
        sources: Optional[List[DocSourceMetadata]] = None,
    ) -> ClarificationResponse:
        known = {s.id: s for s in (sources if sources is not None else self.state.sources.values())}
        options = [
            ClarificationOption(id=known[sid].id, label=known[sid].name, description=known[sid].description)
            for sid in suggested_sources if sid in known
        ]
        return ClarificationResponse(message=CLARIFICATION_MESSAGE, options=options)

    async def get_doc_source_instructions(self, source_id: str) -> str:
        sources = await self.get_available_sources()
        match = next((s for s in sources if s.id.lower() == source_id.lower()), None)
        return build_source_instructions(source_id, match)

    async def handle_meta_query(self, query: str) -> str:
        """Answer questions about the assistant itself, in the user's language."""
        sources = await self.get_available_sources()
        try:
            answer = await self.llm.generate(build_meta_prompt(query, sources), GenerationOptions(temperature=0.3))
            return answer or f"I am {self.app_name}, your documentation assistant."
        except Exception as e:
            logger.error(f"Meta query generation failed: {e}")
            return f"{self.app_name} is your documentation assistant. I support {len(sources)} sources."
