# index_source.py
"""
Re-index one documentation source from its scraped chunk artifact.

Usage:
    python index_source.py <source> [--file PATH]

Reads data/<source>-chunks.json unless --file is given. Existing vectors and
metadata rows of the source are replaced.
"""
import argparse
import asyncio
import logging
import os
import sys

from config import settings
from core.exceptions import CollectionSetupError
from database.session import Base, async_engine
from services.factory import (
    get_chunk_repository, get_doc_source_repository, get_embedding_service, get_vector_store,
)
from services.indexing_service import IndexingPipeline
from services.logger_config import setup_logging

logger = logging.getLogger(settings.LOGGER_NAME)


async def run(source_id: str, path: str) -> int:
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    pipeline = IndexingPipeline(
        get_vector_store(), get_embedding_service(), get_chunk_repository(), get_doc_source_repository()
    )
    try:
        stats = await pipeline.index_source_file(source_id, path)
    except CollectionSetupError as e:
        logger.error(f"Indexing aborted: {e}")
        return 1
    finally:
        await async_engine.dispose()

    logger.info("=" * 60)
    logger.info(f"Source:  {source_id}")
    logger.info(f"Indexed: {stats.success_count}")
    logger.info(f"Errors:  {stats.error_count}")
    logger.info(f"Split:   {stats.split_count}")
    logger.info("=" * 60)
    return 0 if stats.error_count == 0 else 2


def main():
    parser = argparse.ArgumentParser(description="Index a documentation source into the vector store")
    parser.add_argument("source", help="Source id, e.g. nextjs")
    parser.add_argument("--file", help="Chunk artifact path (default: <CHUNKS_DATA_DIR>/<source>-chunks.json)")
    args = parser.parse_args()

    setup_logging()
    path = args.file or os.path.join(settings.CHUNKS_DATA_DIR, f"{args.source}-chunks.json")
    if not os.path.exists(path):
        logger.error(f"Chunk file not found: {path}")
        sys.exit(1)

    sys.exit(asyncio.run(run(args.source, path)))


if __name__ == "__main__":
    main()
