# services/factory.py
"""Provider functions for every component; FastAPI resolves them with Depends"""
from functools import lru_cache
from typing import Optional

import chromadb
from fastapi import Depends

from config import settings
from core.interfaces import (
    IChunkMetadataRepository, IContextSwitchRepository, IDocSourceRepository, IDynamicPageRepository,
    IEcosystemClassifier, IEcosystemRepository, IEmbeddingService, ILanguageModel, IOnlineSearch, IVectorStore,
)
from infrastructure.embedding_services import SentenceTransformerEmbedding
from infrastructure.online_search import GoogleDocsSearch
from infrastructure.repositories import (
    SQLChunkMetadataRepository, SQLContextSwitchRepository, SQLDocSourceRepository,
    SQLDynamicPageRepository, SQLEcosystemRepository,
)
from infrastructure.vector_stores import ChromaDBVectorStore
from services.answer_service import AnswerSynthesizer
from services.ecosystem_classifier import EcosystemClassifier
from services.index_queue import IncrementalIndexQueue
from services.indexing_service import IndexingPipeline
from services.llm_service import OllamaLanguageModel
from services.query_reformulation import QueryReformulator
from services.query_router import QueryRouter
from services.retrieval_service import RetrievalService

# Components holding state (model weights, caches, the page queue) are
# created once per process.

@lru_cache(maxsize=1)
def get_vector_store() -> IVectorStore:
    """Create vector store based on configuration."""
    if settings.VECTOR_STORE_TYPE == "chromadb":
        client = chromadb.PersistentClient(path=settings.VECTOR_DB_PATH)
        return ChromaDBVectorStore(client, settings.VECTOR_COLLECTION_NAME)
    raise ValueError(f"Unknown vector store type: {settings.VECTOR_STORE_TYPE}")


@lru_cache(maxsize=1)
def get_embedding_service() -> IEmbeddingService:
    return SentenceTransformerEmbedding(settings.EMBEDDING_MODEL_NAME)


@lru_cache(maxsize=1)
def get_language_model() -> ILanguageModel:
    return OllamaLanguageModel(settings.LLM_BASE_URL, settings.LLM_MODEL, settings.REQUEST_TIMEOUT)


@lru_cache(maxsize=1)
def get_online_search() -> Optional[IOnlineSearch]:
    """Google-backed documentation search, or None when the fallback is switched off."""
    if not settings.ONLINE_SEARCH_ENABLED:
        return None
    return GoogleDocsSearch(
        api_key=settings.GOOGLE_CSE_API_KEY,
        engine_id=settings.GOOGLE_CSE_ENGINE_ID,
        enabled=True,
    )


# ============= Repositories =============

def get_chunk_repository() -> IChunkMetadataRepository:
    return SQLChunkMetadataRepository()


def get_dynamic_page_repository() -> IDynamicPageRepository:
    return SQLDynamicPageRepository()


def get_doc_source_repository() -> IDocSourceRepository:
    return SQLDocSourceRepository()


def get_context_switch_repository() -> IContextSwitchRepository:
    return SQLContextSwitchRepository()


def get_ecosystem_repository() -> IEcosystemRepository:
    return SQLEcosystemRepository()


# ============= Services =============

def get_indexing_pipeline(
    vector_store: IVectorStore = Depends(get_vector_store),
    embedding_service: IEmbeddingService = Depends(get_embedding_service),
    chunk_repo: IChunkMetadataRepository = Depends(get_chunk_repository),
    source_repo: IDocSourceRepository = Depends(get_doc_source_repository),
) -> IndexingPipeline:
    return IndexingPipeline(vector_store, embedding_service, chunk_repo, source_repo)


@lru_cache(maxsize=1)
def get_index_queue() -> IncrementalIndexQueue:
    return IncrementalIndexQueue(get_vector_store(), get_embedding_service(), get_dynamic_page_repository())


def get_retrieval_service(
    vector_store: IVectorStore = Depends(get_vector_store),
    embedding_service: IEmbeddingService = Depends(get_embedding_service),
) -> RetrievalService:
    return RetrievalService(vector_store, embedding_service)


@lru_cache(maxsize=1)
def get_ecosystem_classifier() -> IEcosystemClassifier:
    return EcosystemClassifier(get_ecosystem_repository(), get_embedding_service(), get_language_model())


@lru_cache(maxsize=1)
def get_query_router() -> QueryRouter:
    return QueryRouter(
        llm=get_language_model(),
        source_repo=get_doc_source_repository(),
        switch_repo=get_context_switch_repository(),
        ecosystem_classifier=get_ecosystem_classifier(),
    )


def get_query_reformulator(llm: ILanguageModel = Depends(get_language_model)) -> QueryReformulator:
    return QueryReformulator(llm)


def get_answer_synthesizer(
    router: QueryRouter = Depends(get_query_router),
    retrieval: RetrievalService = Depends(get_retrieval_service),
    llm: ILanguageModel = Depends(get_language_model),
    reformulator: QueryReformulator = Depends(get_query_reformulator),
    index_queue: IncrementalIndexQueue = Depends(get_index_queue),
    online_search: Optional[IOnlineSearch] = Depends(get_online_search),
) -> AnswerSynthesizer:
    """
    Create the synthesizer with full dependency injection.

    Individual components can be swapped in tests through
    `app.dependency_overrides`.
    """
    return AnswerSynthesizer(
        router=router,
        retrieval=retrieval,
        llm=llm,
        reformulator=reformulator,
        index_queue=index_queue,
        online_search=online_search,
    )


def clear_instances() -> None:
    """Drop cached singletons (used on shutdown and in tests)."""
    for provider in (
        get_vector_store, get_embedding_service, get_language_model, get_online_search,
        get_index_queue, get_ecosystem_classifier, get_query_router,
    ):
        provider.cache_clear()
