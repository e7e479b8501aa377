# main.py
"""Application entry point: database setup and background queue cleanup"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from config import settings
from services.logger_config import setup_logging
from database.session import Base, async_engine
from api.endpoints import router
from services.factory import clear_instances, get_index_queue

setup_logging()
logger = logging.getLogger(settings.LOGGER_NAME)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting application...")

    # Database initialization
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")

    try:
        removed = await get_index_queue().cleanup_expired()
        logger.info(f"Expired page cleanup removed {removed} pages")
    except Exception as e:
        logger.error(f"Expired page cleanup failed: {e}")

    logger.info("Services initialized")
    yield

    # Stop the incremental index queue before the loop closes
    logger.info("Shutting down index queue...")
    await get_index_queue().shutdown()
    clear_instances()
    await async_engine.dispose()

    logger.info("Application shutdown complete")

app = FastAPI(
    title=settings.APP_TITLE,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

app.include_router(router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
