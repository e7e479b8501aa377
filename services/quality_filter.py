# services/quality_filter.py
"""Heuristics that drop scraped navigation and menu fragments from search hits"""
import re
from typing import List

from core.domain import SearchResult
from config import settings

NAVIGATION_PATTERNS = [
    re.compile(r"^Menu\s*$", re.IGNORECASE),
    re.compile(r"^Using App Router$", re.IGNORECASE),
    re.compile(r"^Features available in", re.IGNORECASE),
    re.compile(r"^Skip to content$", re.IGNORECASE),
    re.compile(r"^Toggle navigation$", re.IGNORECASE),
    # A version badge line anywhere in the chunk; prose mentioning a version stays
    re.compile(r"^[ \t]*Version \d+(\.\d+)*[ \t]*$", re.IGNORECASE | re.MULTILINE),
]

LINK_LINE = re.compile(r"^\[.*\]\(.*\)$")
MARKDOWN_SYNTAX = re.compile(r"[#*\[\]()]")


def is_navigation(content: str) -> bool:
    return any(pattern.search(content) for pattern in NAVIGATION_PATTERNS)


def link_line_ratio(content: str) -> float:
    """Share of non-blank lines that are nothing but a markdown link."""
    lines = [line for line in content.split("\n") if line.strip()]
    if not lines:
        return 0.0
    links = [line for line in lines if LINK_LINE.match(line)]
    return len(links) / len(lines)


def is_quality_content(
    content: str,
    min_chars: int = settings.MIN_CHUNK_CHARS,
    min_text_chars: int = settings.MIN_TEXT_CHARS,
    max_link_ratio: float = settings.MAX_LINK_LINE_RATIO,
) -> bool:
    text = (content or "").strip()
    if len(text) < min_chars:
        return False
    if is_navigation(text):
        return False
    if link_line_ratio(text) > max_link_ratio:
        return False
    if len(MARKDOWN_SYNTAX.sub("", text).strip()) < min_text_chars:
        return False
    return True


def filter_quality(results: List[SearchResult], limit: int) -> List[SearchResult]:
    """Keep the first `limit` results that pass the content heuristics."""
    return [r for r in results if is_quality_content(r.content)][:limit]
