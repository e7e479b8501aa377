# services/answer_service.py
"""Builds answers from routed queries: retrieval, prompting and generation"""
import logging
import math
import re
from dataclasses import asdict, dataclass, field
from typing import AsyncIterator, List, Optional, Sequence

from core.domain import (
    AnswerResult, ChatTurn, GenerationOptions, PageToIndex, Reference, RoutingDecision, SearchResult, StreamEvent,
)
from core.enums import IndexAction, QueryType, StreamEventType
from core.exceptions import AnswerGenerationError
from core.interfaces import ILanguageModel, IOnlineSearch
from services.index_queue import IncrementalIndexQueue
from services.prompts import build_answer_prompt, build_general_prompt
from services.query_reformulation import QueryReformulator
from services.query_router import QueryRouter
from services.retrieval_service import RetrievalService
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

CODE_BLOCK = re.compile(r"```[\w]*\n([\s\S]*?)```")
SINGLE_SOURCE_REFERENCES = 3
MULTI_SOURCE_REFERENCES = 5


def extract_code(text: str) -> Optional[str]:
    """First fenced code block of an answer, without the fence."""
    match = CODE_BLOCK.search(text or "")
    return match.group(1).strip() if match else None


def estimate_tokens(prompt: str, text: str) -> int:
    return math.ceil((len(prompt) + len(text)) / 4)


def to_reference(result: SearchResult, snippet_length: int = settings.SNIPPET_LENGTH, with_source: bool = False) -> Reference:
    title = f"{result.title} ({result.source})" if with_source else result.title
    return Reference(title=title, url=result.url, snippet=result.content[:snippet_length] + "...")


@dataclass
class PreparedAnswer:
    """Everything known before the model is called"""
    prompt: Optional[str] = None
    text: Optional[str] = None
    references: List[Reference] = field(default_factory=list)
    discovered: Optional[PageToIndex] = None
    queued: bool = False


class AnswerSynthesizer:
    def __init__(
        self,
        router: QueryRouter,
        retrieval: RetrievalService,
        llm: ILanguageModel,
        reformulator: Optional[QueryReformulator] = None,
        index_queue: Optional[IncrementalIndexQueue] = None,
        online_search: Optional[IOnlineSearch] = None,
        online_content_limit: int = settings.ONLINE_CONTENT_LIMIT,
    ):
        self.router = router
        self.retrieval = retrieval
        self.llm = llm
        self.reformulator = reformulator
        self.index_queue = index_queue
        self.online_search = online_search
        self.online_content_limit = online_content_limit

    # ============= Public API =============

    async def answer(
        self,
        query: str,
        decision: RoutingDecision,
        history: Optional[Sequence[ChatTurn]] = None,
        mode: str = settings.DEFAULT_RESPONSE_MODE,
    ) -> AnswerResult:
        prepared = await self._prepare(query, decision, history, mode)
        if prepared.text is not None:
            return AnswerResult(text=prepared.text)

        text = await self._generate(prepared.prompt)
        return AnswerResult(
            text=text,
            references=prepared.references,
            code=extract_code(text),
            tokens_used=estimate_tokens(prepared.prompt, text),
            used_online_search=prepared.discovered is not None,
        )

    async def answer_stream(
        self,
        query: str,
        decision: RoutingDecision,
        history: Optional[Sequence[ChatTurn]] = None,
        mode: str = settings.DEFAULT_RESPONSE_MODE,
    ) -> AsyncIterator[StreamEvent]:
        """
        Events in order: status and source_discovered when the online fallback
        found a page, references, content pieces, and a closing status when
        the page was queued for indexing.
        """
        prepared = await self._prepare(query, decision, history, mode)

        if prepared.discovered is not None:
            page = prepared.discovered
            yield StreamEvent(StreamEventType.STATUS, "Searching official documentation online...")
            yield StreamEvent(StreamEventType.SOURCE_DISCOVERED, {"url": page.url, "title": page.title, "source": page.source})

        yield StreamEvent(StreamEventType.REFERENCES, [asdict(r) for r in prepared.references])

        if prepared.text is not None:
            yield StreamEvent(StreamEventType.CONTENT, prepared.text)
            return

        try:
            async for piece in self.llm.stream(prepared.prompt, self._options()):
                yield StreamEvent(StreamEventType.CONTENT, piece)
        except Exception as e:
            logger.error(f"Answer streaming failed: {e}")
            raise AnswerGenerationError(f"Answer streaming failed: {e}") from e

        if prepared.queued:
            yield StreamEvent(StreamEventType.STATUS, "New documentation page queued for indexing")

    # ============= Preparation =============

    async def _prepare(
        self,
        query: str,
        decision: RoutingDecision,
        history: Optional[Sequence[ChatTurn]],
        mode: str,
    ) -> PreparedAnswer:
        if decision.query_type == QueryType.META:
            return PreparedAnswer(text=await self.router.handle_meta_query(query))

        sources = decision.all_sources
        if decision.query_type == QueryType.GENERAL or not sources:
            return PreparedAnswer(prompt=build_general_prompt(query, history, mode))

        search_query = await self._search_query(query, history)
        if len(sources) == 1:
            return await self._prepare_single(query, search_query, sources[0], history, mode)
        return await self._prepare_multi(query, search_query, sources, history, mode)

    async def _prepare_single(self, query, search_query, source_id, history, mode) -> PreparedAnswer:
        try:
            results = await self.retrieval.search(search_query, source_id)
            context = await self.retrieval.expand_context(results)
        except Exception as e:
            logger.error(f"Retrieval failed for source {source_id}: {e}")
            results, context = [], []

        prepared = PreparedAnswer(references=[to_reference(r) for r in results[:SINGLE_SOURCE_REFERENCES]])
        context = await self._online_fallback(search_query, source_id, results, context, prepared)

        instructions = await self.router.get_doc_source_instructions(source_id)
        prepared.prompt = build_answer_prompt(
            query, context, history, mode, sources=[source_id], source_instructions=instructions,
        )
        return prepared

    async def _prepare_multi(self, query, search_query, sources, history, mode) -> PreparedAnswer:
        try:
            results = await self.retrieval.search_many(search_query, sources)
        except Exception as e:
            logger.error(f"Multi-source retrieval failed for {sources}: {e}")
            results = []

        prepared = PreparedAnswer(
            references=[to_reference(r, with_source=True) for r in results[:MULTI_SOURCE_REFERENCES]]
        )
        context = await self._online_fallback(search_query, sources[0], results, results, prepared)
        prepared.prompt = build_answer_prompt(query, context, history, mode, sources=sources)
        return prepared

    async def _search_query(self, query: str, history: Optional[Sequence[ChatTurn]]) -> str:
        if self.reformulator is None:
            return query
        return await self.reformulator.reformulate(query, history)

    # ============= Online fallback =============

    async def _online_fallback(
        self,
        query: str,
        source_id: str,
        results: List[SearchResult],
        context: List[SearchResult],
        prepared: PreparedAnswer,
    ) -> List[SearchResult]:
        """Prepend a fetched official page to the context when indexed results are weak."""
        if self.online_search is None or not self.online_search.is_enabled():
            return context
        if not self.retrieval.is_low_quality(results):
            return context

        try:
            hits = await self.online_search.search(query, source_id, limit=1)
            if not hits:
                return context
            page = await self.online_search.fetch(hits[0].url)
        except Exception as e:
            logger.error(f"[OnlineSearch] Fallback failed for '{query[:60]}': {e}")
            return context

        if not page.source:
            page.source = source_id
        if page.query_that_found is None:
            page.query_that_found = query

        if self.index_queue is not None:
            action = await self.index_queue.should_index(page.url, page.content_hash)
            if action != IndexAction.SKIP:
                prepared.queued = await self.index_queue.queue([page]) > 0

        logger.info(f"[OnlineSearch] Answering from {page.url} (queued={prepared.queued})")
        prepared.discovered = page
        online = SearchResult(
            id=f"online:{page.url}",
            content=page.content[:self.online_content_limit],
            url=page.url,
            title=page.title,
            source=page.source,
            similarity=1.0,
        )
        prepared.references.insert(0, to_reference(online))
        return [online] + list(context)

    # ============= Generation =============

    @staticmethod
    def _options() -> GenerationOptions:
        return GenerationOptions(temperature=settings.ANSWER_TEMPERATURE, max_tokens=settings.ANSWER_MAX_TOKENS)

    async def _generate(self, prompt: str) -> str:
        try:
            return await self.llm.generate(prompt, self._options())
        except Exception as e:
            logger.error(f"Answer generation failed: {e}")
            raise AnswerGenerationError(f"Answer generation failed: {e}") from e
