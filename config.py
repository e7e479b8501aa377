# config.py
"""Application configuration"""
from pydantic_settings import BaseSettings
from utils.common import get_log_file_path, get_project_root

class Settings(BaseSettings):
    """Application configuration"""

    # Logger configuration
    LOG_FILE_PATH: str = get_log_file_path()
    LOGGER_NAME: str = "docpilot"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./docpilot.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour

    # Vector store
    VECTOR_DB_PATH: str = "./vector_db"
    VECTOR_STORE_TYPE: str = "chromadb"
    VECTOR_COLLECTION_NAME: str = "docs"

    # Embedding model
    EMBEDDING_MODEL_NAME: str = "paraphrase-multilingual-mpnet-base-v2"

    # Language model (Ollama-compatible HTTP API)
    LLM_BASE_URL: str = "http://localhost:11434"
    LLM_MODEL: str = "qwen2.5:7b"
    REQUEST_TIMEOUT: int = 60
    ANSWER_TEMPERATURE: float = 0.3
    ANSWER_MAX_TOKENS: int = 4096

    # ============= Chunking =============
    MAX_CHUNK_BYTES: int = 4000
    CHUNK_ORDER_FACTOR: int = 1000  # must exceed the largest split count
    DYNAMIC_CHUNK_MAX_LENGTH: int = 1200
    DYNAMIC_CHUNK_OVERLAP: float = 0.2
    DYNAMIC_CHUNK_MIN_LENGTH: int = 50
    CHUNKS_DATA_DIR: str = f"{get_project_root()}/data"

    # ============= Indexing =============
    INDEX_BATCH_SIZE: int = 5
    INDEX_BATCH_DELAY_SECONDS: float = 2.0
    METADATA_MAX_RETRIES: int = 3
    METADATA_RETRY_DELAY_SECONDS: float = 2.0

    # ============= Incremental queue =============
    QUEUE_PAGE_DELAY_SECONDS: float = 0.5
    QUEUE_MAX_PENDING: int = 0  # 0 = unbounded
    PAGE_TTL_DAYS: int = 60

    # ============= Retrieval =============
    DEFAULT_SEARCH_RESULTS: int = 5
    SEARCH_OVERFETCH_FACTOR: int = 2
    MIN_CHUNK_CHARS: int = 50
    MIN_TEXT_CHARS: int = 30
    MAX_LINK_LINE_RATIO: float = 0.5
    CONTEXT_WINDOW_RADIUS: int = 1
    MULTI_SOURCE_PER_SOURCE: int = 3
    MULTI_SOURCE_LIMIT: int = 6
    LOW_QUALITY_MIN_RESULTS: int = 2
    LOW_QUALITY_MIN_SIMILARITY: float = 0.5
    LOW_QUALITY_MIN_TOP_CHARS: int = 100
    SNIPPET_LENGTH: int = 150

    # ============= Router =============
    ASSISTANT_NAME: str = "DocPilot"
    ROUTER_CONFIDENCE_THRESHOLD: int = 70
    ECOSYSTEM_CONFIDENCE_THRESHOLD: int = 80
    AMBIGUITY_RESOLVED_CONFIDENCE: int = 85
    AMBIGUITY_MAX_SUGGESTIONS: int = 3
    ROUTER_CACHE_TTL_SECONDS: float = 300.0
    ROUTER_HISTORY_TURNS: int = 3
    META_QUERY_MAX_LENGTH: int = 50
    ECOSYSTEM_SIMILARITY_THRESHOLD: float = 0.75

    # ============= Answer synthesis =============
    DEFAULT_RESPONSE_MODE: str = "friendly"
    ANSWER_HISTORY_TURNS: int = 4
    REFORMULATION_ENABLED: bool = True
    REFORMULATION_HISTORY_CHARS: int = 500
    ONLINE_SEARCH_ENABLED: bool = False
    ONLINE_CONTENT_LIMIT: int = 3000

    # ============= Online search (Google Custom Search) =============
    GOOGLE_CSE_API_KEY: str = ""
    GOOGLE_CSE_ENGINE_ID: str = ""
    GOOGLE_CSE_URL: str = "https://www.googleapis.com/customsearch/v1"
    ONLINE_SEARCH_TIMEOUT: int = 15
    ONLINE_SEARCH_USER_AGENT: str = "Mozilla/5.0 (compatible; DocPilotBot/1.0)"

    # App metadata
    APP_TITLE: str = "DocPilot Documentation Assistant"
    APP_VERSION: str = "1.0.0"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
