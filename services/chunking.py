# services/chunking.py
"""
Chunk splitting and deterministic identity.

Two splitters live here:
- split_oversized: byte-bounded splitting of scraper chunks before indexing.
- split_into_chunks: paragraph-aware packing for whole pages discovered at
  query time.
"""
import hashlib
import json
import logging
import math
import re
from typing import Any, Dict, Iterable, List

from core.domain import DocumentChunk
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

# RFC 4122 URL namespace, used to key dynamic page chunks
PAGE_NAMESPACE = "6ba7b810-9dad-11d1-80b4-00c04fd430c8"

PARAGRAPH_BREAK = "\n\n"
SENTENCE_BREAK = ". "
BREAK_TOLERANCE = 0.3


# ============= Identity =============

def _format_v5(digest_hex: str) -> str:
    """Lay out a SHA-1 hex digest as a version-5, RFC 4122 variant UUID."""
    variant = (int(digest_hex[16:18], 16) & 0x3F) | 0x80
    return "-".join([
        digest_hex[0:8],
        digest_hex[8:12],
        "5" + digest_hex[13:16],
        format(variant, "02x") + digest_hex[18:20],
        digest_hex[20:32],
    ])


def compute_identity(source_id: str, url: str, base_index: int, sub_index: int) -> str:
    """Deterministic UUID for a chunk's logical key."""
    key = f"{source_id}:{url}:{base_index}:{sub_index}"
    return _format_v5(hashlib.sha1(key.encode("utf-8")).hexdigest())


def page_identity(url: str, chunk_index: int) -> str:
    """Deterministic UUID for chunk `chunk_index` of a dynamically indexed page."""
    key = PAGE_NAMESPACE.replace("-", "") + f"{url}:{chunk_index}"
    return _format_v5(hashlib.sha1(key.encode("utf-8")).hexdigest())


def effective_order(base_index: int, sub_index: int, factor: int = settings.CHUNK_ORDER_FACTOR) -> int:
    """Sortable position of a sub-chunk; only used for ordering and neighbour lookups."""
    return base_index * factor + sub_index


# ============= Splitting =============

def _find_break(text: str, separator: str, start: int, end: int, window: int) -> int:
    """
    Last occurrence of `separator` starting at or before `end` that lies after
    `start` and within the tolerance band. Returns -1 when there is none.
    """
    pos = text.rfind(separator, 0, end + len(separator))
    if pos > start and end - pos < window * BREAK_TOLERANCE:
        return pos
    return -1


def split_oversized(text: str, max_bytes: int = settings.MAX_CHUNK_BYTES) -> List[str]:
    """
    Split `text` into parts of roughly `max_bytes` UTF-8 bytes.

    The right edge of every non-final window is pulled back to a paragraph
    break, or failing that a sentence break, when one is close to the naive
    cut. Each window starts where the previous one ended, so joining the parts
    gives back the original text apart from trimmed whitespace.

    Window size is recomputed from the text still left after every cut, so
    text given up by a pulled-back edge is spread over further parts instead
    of piling onto the last one.
    """
    if len(text.encode("utf-8")) <= max_bytes:
        return [text]

    parts: List[str] = []
    start = 0
    while start < len(text):
        remaining = text[start:]
        remaining_bytes = len(remaining.encode("utf-8"))
        if remaining_bytes <= max_bytes:
            end = len(text)
        else:
            parts_left = math.ceil(remaining_bytes / max_bytes)
            window = math.ceil(len(remaining) / parts_left)
            end = start + window
            paragraph = _find_break(text, PARAGRAPH_BREAK, start, end, window)
            if paragraph != -1:
                end = paragraph
            else:
                sentence = _find_break(text, SENTENCE_BREAK, start, end, window)
                if sentence != -1:
                    end = sentence + 1  # keep the period

        part = text[start:end].strip()
        if part:
            parts.append(part)
        start = end

    oversized = [p for p in parts if len(p.encode("utf-8")) > max_bytes]
    if oversized:
        logger.debug(f"{len(oversized)} part(s) exceed {max_bytes} bytes after natural-boundary split")
    return parts


def split_into_chunks(
    content: str,
    max_length: int = settings.DYNAMIC_CHUNK_MAX_LENGTH,
    overlap: float = settings.DYNAMIC_CHUNK_OVERLAP,
    min_length: int = settings.DYNAMIC_CHUNK_MIN_LENGTH,
) -> List[str]:
    """
    Pack paragraphs into chunks of at most `max_length` characters.

    Paragraphs longer than `max_length` are cut into overlapping windows.
    Chunks of `min_length` characters or fewer are dropped.
    """
    step = max_length - int(max_length * overlap)
    chunks: List[str] = []
    current = ""

    for paragraph in re.split(r"\n\n+", content):
        if len(current) + len(paragraph) <= max_length:
            current = f"{current}\n\n{paragraph}" if current else paragraph
            continue

        if current:
            chunks.append(current.strip())

        if len(paragraph) > max_length:
            for offset in range(0, len(paragraph), step):
                chunks.append(paragraph[offset:offset + max_length].strip())
            current = ""
        else:
            current = paragraph

    if current.strip():
        chunks.append(current.strip())

    return [c for c in chunks if len(c) > min_length]


# ============= Scraper artifacts =============

def _base_index(metadata: Dict[str, Any]) -> int:
    raw = metadata.get("chunkIndex", metadata.get("chunk_index", 0))
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


def build_chunks(source_id: str, records: Iterable[Dict[str, Any]]) -> List[DocumentChunk]:
    """Convert scraper records ({content, url, title, source, metadata}) into DocumentChunks."""
    chunks = []
    for record in records:
        content = record.get("content") or ""
        if not content.strip():
            continue
        metadata = dict(record.get("metadata") or {})
        chunks.append(DocumentChunk(
            content=content,
            url=record.get("url", ""),
            title=record.get("title", ""),
            source_id=source_id,
            base_index=_base_index(metadata),
            metadata=metadata,
        ))
    return chunks


def load_chunks_file(path: str, source_id: str) -> List[DocumentChunk]:
    """Read a `<source>-chunks.json` artifact from disk."""
    with open(path, "r", encoding="utf-8") as f:
        records = json.load(f)
    if not isinstance(records, list):
        raise ValueError(f"{path}: expected a JSON array of chunk records")
    chunks = build_chunks(source_id, records)
    logger.info(f"Loaded {len(chunks)} chunks for '{source_id}' from {path}")
    return chunks
