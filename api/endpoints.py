# api/endpoints.py
"""
API endpoints for the documentation assistant.

No authentication: the service is expected to run behind a gateway that
handles it.
"""
import json
import logging
from dataclasses import asdict
from typing import AsyncGenerator, List

from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import StreamingResponse

from config import settings
from core.domain import ChatTurn, RoutingDecision
from core.exceptions import AnswerGenerationError, CollectionSetupError
from core.interfaces import IVectorStore
from services.answer_service import AnswerSynthesizer
from services.chunking import build_chunks
from services.factory import (
    get_answer_synthesizer, get_index_queue, get_indexing_pipeline, get_query_router, get_vector_store,
)
from services.index_queue import IncrementalIndexQueue
from services.indexing_service import IndexingPipeline
from services.query_router import QueryRouter
from api.schemas import (
    ChatRequest,
    ChatResponse,
    ClarificationItem,
    ClarificationOptionItem,
    ContextSwitchItem,
    IndexSourceRequest,
    IndexStatsResponse,
    QueueStatusResponse,
    ReferenceItem,
    RoutingInfo,
    SessionContextResponse,
)
from utils.common import utc_now

logger = logging.getLogger(settings.LOGGER_NAME)

router = APIRouter()

GENERIC_ERROR_MESSAGE = "Sorry, I could not generate an answer right now. Please try again."


def _routing_info(decision: RoutingDecision) -> RoutingInfo:
    return RoutingInfo(
        query_type=decision.query_type.value,
        confidence=decision.confidence,
        reasoning=decision.reasoning,
        primary_source=decision.primary_source,
        additional_sources=decision.additional_sources,
    )


def _history(chat_request: ChatRequest) -> List[ChatTurn]:
    return [ChatTurn(role=m.role, content=m.content) for m in chat_request.history]


async def _clarification(query_router: QueryRouter, decision: RoutingDecision) -> ClarificationItem:
    sources = await query_router.get_available_sources()
    clarification = query_router.generate_clarification_prompt(decision.suggested_sources or [], sources)
    return ClarificationItem(
        message=clarification.message,
        options=[ClarificationOptionItem(**asdict(o)) for o in clarification.options],
    )


def _sse(event_type: str, data) -> str:
    return f"data: {json.dumps({'type': event_type, 'data': data})}\n\n"


# ---------- Chat ----------
@router.post("/chat", response_model=ChatResponse)
async def chat(
    chat_request: ChatRequest,
    query_router: QueryRouter = Depends(get_query_router),
    synthesizer: AnswerSynthesizer = Depends(get_answer_synthesizer),
) -> ChatResponse:
    history = _history(chat_request)
    decision = await query_router.route(
        chat_request.message, history, chat_request.conversation_id, force_source=chat_request.source
    )

    if decision.needs_clarification:
        return ChatResponse(
            status="clarification",
            routing=_routing_info(decision),
            clarification=await _clarification(query_router, decision),
        )

    try:
        result = await synthesizer.answer(
            chat_request.message, decision, history, chat_request.mode or settings.DEFAULT_RESPONSE_MODE
        )
    except AnswerGenerationError as e:
        logger.error(f"Chat failed: {e}")
        raise HTTPException(status_code=502, detail=GENERIC_ERROR_MESSAGE)

    return ChatResponse(
        status="answer",
        routing=_routing_info(decision),
        answer=result.text,
        references=[ReferenceItem(**asdict(r)) for r in result.references],
        code=result.code,
        tokens_used=result.tokens_used,
        used_online_search=result.used_online_search,
    )


@router.post("/chat/stream")
async def chat_stream(
    chat_request: ChatRequest,
    query_router: QueryRouter = Depends(get_query_router),
    synthesizer: AnswerSynthesizer = Depends(get_answer_synthesizer),
) -> StreamingResponse:
    history = _history(chat_request)
    decision = await query_router.route(
        chat_request.message, history, chat_request.conversation_id, force_source=chat_request.source
    )

    async def events() -> AsyncGenerator[str, None]:
        yield _sse("routing", _routing_info(decision).model_dump())

        if decision.needs_clarification:
            clarification = await _clarification(query_router, decision)
            yield _sse("clarification", clarification.model_dump())
            yield _sse("done", None)
            return

        try:
            async for event in synthesizer.answer_stream(
                chat_request.message, decision, history, chat_request.mode or settings.DEFAULT_RESPONSE_MODE
            ):
                yield _sse(event.type.value, event.data)
        except AnswerGenerationError as e:
            logger.error(f"Chat stream failed: {e}")
            yield _sse("error", GENERIC_ERROR_MESSAGE)
        yield _sse("done", None)

    return StreamingResponse(events(), media_type="text/event-stream")


# ---------- Session ----------
@router.get("/conversations/{conversation_id}/session", response_model=SessionContextResponse)
async def get_session_context(
    conversation_id: str,
    query_router: QueryRouter = Depends(get_query_router),
) -> SessionContextResponse:
    session = await query_router.get_session_context(conversation_id)
    return SessionContextResponse(
        conversation_id=session.conversation_id,
        current_source=session.current_source,
        previous_source=session.previous_source,
        switch_count=session.switch_count,
        history=[
            ContextSwitchItem(
                from_source=s.from_source,
                to_source=s.to_source,
                query=s.query,
                is_explicit=s.is_explicit,
                timestamp=s.timestamp.isoformat() if s.timestamp else None,
            )
            for s in session.context_history
        ],
    )


# ---------- Indexing ----------
@router.post("/sources/{source_id}/index", response_model=IndexStatsResponse)
async def index_source(
    source_id: str,
    index_request: IndexSourceRequest,
    pipeline: IndexingPipeline = Depends(get_indexing_pipeline),
) -> IndexStatsResponse:
    chunks = build_chunks(source_id, [c.model_dump() for c in index_request.chunks])
    try:
        stats = await pipeline.index_source(source_id, chunks)
    except CollectionSetupError as e:
        logger.error(f"Indexing '{source_id}' aborted: {e}")
        raise HTTPException(status_code=503, detail="Vector index is unavailable")

    return IndexStatsResponse(source_id=source_id, **asdict(stats))


@router.get("/index/queue", response_model=QueueStatusResponse)
async def get_queue_status(
    index_queue: IncrementalIndexQueue = Depends(get_index_queue),
) -> QueueStatusResponse:
    return QueueStatusResponse(**index_queue.status())


# ---------- Health Check ----------
@router.get("/health")
async def health_check(vector_store: IVectorStore = Depends(get_vector_store)):
    """Reports the vector index size; unhealthy when the index cannot be reached."""
    try:
        count = await vector_store.count()
        return {
            "status": "healthy",
            "timestamp": utc_now().isoformat() + "Z",
            "chunks_indexed": count,
            "vector_store": settings.VECTOR_STORE_TYPE,
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "timestamp": utc_now().isoformat() + "Z",
            "error": str(e),
        }
