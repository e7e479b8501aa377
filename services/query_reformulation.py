# services/query_reformulation.py
"""Rewrites follow-up questions into standalone search queries"""
import logging
import re
from typing import List, Optional, Sequence

from core.domain import ChatTurn, GenerationOptions
from core.interfaces import ILanguageModel
from services.prompts import build_reformulation_prompt, format_history
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

TIME_SENSITIVE_PATTERNS = [
    re.compile(r"terbaru|latest|newest|current|sekarang|saat ini", re.IGNORECASE),
    re.compile(r"versi|version|release|v\d+", re.IGNORECASE),
    re.compile(r"update|upgrade|baru|new", re.IGNORECASE),
]

REFERENCE_PATTERNS = [
    re.compile(r"^(itu|that|this|tersebut|di atas|above)", re.IGNORECASE),
    re.compile(r"^(apa itu|what is|what's|apakah)", re.IGNORECASE),
    re.compile(r"CVE-\d+", re.IGNORECASE),
]

GENERIC_PATTERNS = [
    re.compile(r"^(jelaskan|explain|apa|what|how|bagaimana|kenapa|why|bisa|can|could)", re.IGNORECASE),
    re.compile(r"^(dengan|in|using|pakai).*(bahasa indonesia|english|spanish)", re.IGNORECASE),
    re.compile(r"^(lebih detail|more detail|elaborate)", re.IGNORECASE),
]

TECHNICAL_KEYWORDS = re.compile(
    r"next\.?js|react|typescript|middleware|component|api|server|client|route|proxy|edge|runtime|docker|prisma|tailwind|python|fastapi",
    re.IGNORECASE,
)

TECH_MENTIONS = re.compile(
    r"Next\.?js|React|TypeScript|Docker|Prisma|Vue|PostgreSQL|Express|Python|Go|Rust|FastAPI|Tailwind",
    re.IGNORECASE,
)


def needs_reformulation(query: str, history: Optional[Sequence[ChatTurn]]) -> bool:
    if any(p.search(query) for p in TIME_SENSITIVE_PATTERNS):
        return True
    if any(p.search(query) for p in REFERENCE_PATTERNS + GENERIC_PATTERNS):
        return True
    return bool(history) and not TECHNICAL_KEYWORDS.search(query)


def _topic_hint(query: str, history: Optional[Sequence[ChatTurn]]) -> str:
    """Technologies named in the last assistant turn, when the query names none."""
    if not history or TECHNICAL_KEYWORDS.search(query):
        return ""
    assistant_turns = [t for t in history if t.role == "assistant"]
    if not assistant_turns:
        return ""
    mentions: List[str] = []
    for m in TECH_MENTIONS.findall(assistant_turns[-1].content):
        if m not in mentions:
            mentions.append(m)
    return f"Related to: {', '.join(mentions)}" if mentions else ""


class QueryReformulator:
    def __init__(self, llm: ILanguageModel, enabled: bool = settings.REFORMULATION_ENABLED):
        self.llm = llm
        self.enabled = enabled

    async def reformulate(self, query: str, history: Optional[Sequence[ChatTurn]] = None) -> str:
        """Return a standalone search query, or `query` itself when no rewrite is needed or possible."""
        if not self.enabled or not needs_reformulation(query, history):
            return query

        time_sensitive = any(p.search(query) for p in TIME_SENSITIVE_PATTERNS)
        prompt = build_reformulation_prompt(
            query,
            format_history(history, settings.ANSWER_HISTORY_TURNS, settings.REFORMULATION_HISTORY_CHARS),
            _topic_hint(query, history),
            time_sensitive,
        )
        try:
            rewritten = (await self.llm.generate(prompt, GenerationOptions(temperature=0.1, max_tokens=100))).strip()
        except Exception as e:
            logger.error(f"Query reformulation failed, using original: {e}")
            return query

        if not rewritten:
            return query
        logger.info(f"[Query Reformulation] Original: '{query}' -> Reformulated: '{rewritten}'")
        return rewritten
