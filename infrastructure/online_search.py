# infrastructure/online_search.py
"""
Official documentation lookup for questions the local index cannot answer.

Searches Google Custom Search restricted to a whitelist of documentation
domains, ranks the hits, then downloads the best page and converts its main
content to markdown-like text that the incremental index queue can chunk.
"""
import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from core.domain import OnlineSearchHit, PageToIndex
from core.interfaces import IOnlineSearch
from config import settings
from utils.common import get_content_hash

logger = logging.getLogger(settings.LOGGER_NAME)

# Documentation host -> doc source id
ALLOWED_DOMAINS: Dict[str, str] = {
    # Frontend
    "nextjs.org": "nextjs",
    "react.dev": "react",
    "vuejs.org": "vue",
    "angular.dev": "angular",
    "angular.io": "angular",
    "svelte.dev": "svelte",
    "tailwindcss.com": "tailwind",
    # Backend / runtime
    "nodejs.org": "nodejs",
    "expressjs.com": "express",
    "fastapi.tiangolo.com": "fastapi",
    "go.dev": "go",
    "doc.rust-lang.org": "rust",
    "www.rust-lang.org": "rust",
    "docs.python.org": "python",
    # Database / ORM
    "prisma.io": "prisma",
    "www.prisma.io": "prisma",
    "www.postgresql.org": "postgresql",
    "www.mongodb.com": "mongodb",
    "docs.mongodb.com": "mongodb",
    "redis.io": "redis",
    # DevOps / cloud
    "docs.docker.com": "docker",
    "kubernetes.io": "kubernetes",
    "cloud.google.com": "gcp",
    "firebase.google.com": "firebase",
    "docs.aws.amazon.com": "aws",
    "learn.microsoft.com": "azure",
    "docs.microsoft.com": "azure",
    # Languages / general web
    "typescriptlang.org": "typescript",
    "www.typescriptlang.org": "typescript",
    "developer.mozilla.org": "mdn",
}

ECOSYSTEM_DOMAINS: Dict[str, List[str]] = {
    "frontend_web": [
        "nextjs.org", "react.dev", "vuejs.org", "angular.dev", "angular.io", "svelte.dev", "typescriptlang.org",
    ],
    "js_backend": ["nodejs.org", "expressjs.com"],
    "python": ["fastapi.tiangolo.com", "docs.python.org"],
    "systems": ["go.dev", "doc.rust-lang.org", "www.rust-lang.org"],
    "database": ["prisma.io", "www.prisma.io", "www.postgresql.org", "www.mongodb.com", "docs.mongodb.com", "redis.io"],
    "styling": ["tailwindcss.com"],
    "cloud_infra": [
        "docs.docker.com", "kubernetes.io", "cloud.google.com", "firebase.google.com",
        "docs.aws.amazon.com", "learn.microsoft.com", "docs.microsoft.com",
    ],
}

# URL path fragment -> ranking weight
PATH_WEIGHTS = [("/docs", 30), ("/guide", 25), ("/api", 20), ("/reference", 20), ("/blog", -20), ("/changelog", -10)]

STRIP_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside"]
STRIP_SELECTORS = ".sidebar, .navigation, .menu, .ads, .comments"
MAIN_SELECTORS = ["main", "article", ".content", ".main-content", "#content", ".docs-content", ".markdown-body"]
BLOCK_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6", "p", "pre", "li", "blockquote"]
EXTRA_BLANK_LINES = re.compile(r"\n{3,}")


# ============= Domains =============

def source_for_url(url: str) -> Optional[str]:
    """Doc source id for a whitelisted host (subdomains included), else None."""
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return None
    for domain, source in ALLOWED_DOMAINS.items():
        if hostname == domain or hostname.endswith(f".{domain}"):
            return source
    return None


def is_allowed_domain(url: str) -> bool:
    return source_for_url(url) is not None


def build_site_query(query: str, hint: Optional[str] = None) -> str:
    """
    Restrict the query to documentation sites with `site:` operators.

    `hint` may name an ecosystem or a doc source; anything else searches the
    whole whitelist.
    """
    domains = ECOSYSTEM_DOMAINS.get(hint or "")
    if not domains and hint:
        domains = [d for d, source in ALLOWED_DOMAINS.items() if source == hint]
    if not domains:
        domains = list(ALLOWED_DOMAINS)
    sites = " OR ".join(f"site:{d}" for d in domains)
    return f"{query} ({sites})"


def rank_hits(items: List[Dict[str, Any]], query: str) -> List[OnlineSearchHit]:
    """Order raw search items by path shape, query word overlap and URL length."""
    words = [w for w in query.lower().split() if len(w) > 2]

    def score(item: Dict[str, Any]) -> int:
        link = item.get("link", "")
        url, title, snippet = link.lower(), (item.get("title") or "").lower(), (item.get("snippet") or "").lower()
        total = sum(weight for fragment, weight in PATH_WEIGHTS if fragment in url)
        total += sum(20 for w in words if w in title)
        total += sum(10 for w in words if w in snippet)
        if len(link) < 60:
            total += 10
        if len(link) < 80:
            total += 5
        return total

    ranked = sorted(items, key=score, reverse=True)
    return [
        OnlineSearchHit(url=item["link"], title=item.get("title") or "", snippet=item.get("snippet") or "")
        for item in ranked
    ]


# ============= HTML =============

def _block_text(element) -> str:
    if element.name == "pre":
        code = element.find("code")
        classes = (code.get("class") if code is not None else None) or []
        language = next((c[len("language-"):] for c in classes if c.startswith("language-")), "")
        return f"```{language}\n{element.get_text().strip()}\n```"

    text = element.get_text(" ", strip=True)
    if not text:
        return ""
    if element.name.startswith("h"):
        return f"{'#' * int(element.name[1])} {text}"
    if element.name == "li":
        return f"- {text}"
    if element.name == "blockquote":
        return f"> {text}"
    return text


def html_to_markdown(html: str) -> Tuple[str, str]:
    """Return (title, content) of a documentation page, chrome removed."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(STRIP_TAGS):
        element.decompose()
    for element in soup.select(STRIP_SELECTORS):
        element.decompose()

    heading = soup.find("h1")
    title = (heading.get_text(" ", strip=True) if heading else "") or (
        soup.title.get_text(strip=True) if soup.title else ""
    ) or "Untitled"

    root = next((soup.select_one(s) for s in MAIN_SELECTORS if soup.select_one(s) is not None), None)
    root = root or soup.body or soup

    blocks = []
    for element in root.find_all(BLOCK_TAGS):
        # Nested blocks are already covered by their outermost block
        if element.find_parent(["pre", "li", "blockquote"]) is not None:
            continue
        text = _block_text(element)
        if text:
            blocks.append(text)

    content = "\n\n".join(blocks) if blocks else root.get_text("\n", strip=True)
    return title, EXTRA_BLANK_LINES.sub("\n\n", content).strip()


# ============= Search =============

class GoogleDocsSearch(IOnlineSearch):
    """Google Custom Search over the documentation whitelist."""

    def __init__(
        self,
        api_key: str = settings.GOOGLE_CSE_API_KEY,
        engine_id: str = settings.GOOGLE_CSE_ENGINE_ID,
        enabled: bool = settings.ONLINE_SEARCH_ENABLED,
        search_url: str = settings.GOOGLE_CSE_URL,
        timeout: int = settings.ONLINE_SEARCH_TIMEOUT,
        user_agent: str = settings.ONLINE_SEARCH_USER_AGENT,
    ):
        self.api_key = api_key
        self.engine_id = engine_id
        self.enabled = enabled
        self.search_url = search_url
        self.timeout = timeout
        self.user_agent = user_agent

    def is_enabled(self) -> bool:
        return self.enabled and bool(self.api_key) and bool(self.engine_id)

    def _get_json(self, params: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.get(self.search_url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def _get_html(self, url: str) -> str:
        response = requests.get(url, headers={"User-Agent": self.user_agent}, timeout=self.timeout)
        response.raise_for_status()
        return response.text

    async def search(self, query: str, ecosystem_hint: Optional[str] = None, limit: int = 3) -> List[OnlineSearchHit]:
        if not self.is_enabled():
            logger.info("[OnlineSearch] Disabled or missing API key")
            return []

        params = {
            "key": self.api_key,
            "cx": self.engine_id,
            "q": build_site_query(query, ecosystem_hint),
            "num": min(limit * 2, 10),  # extra candidates for ranking
        }
        logger.info(f"[OnlineSearch] Searching: {query}")
        try:
            data = await asyncio.to_thread(self._get_json, params)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"[OnlineSearch] Search failed: {e}")
            return []

        items = [item for item in data.get("items") or [] if is_allowed_domain(item.get("link", ""))]
        return rank_hits(items, query)[:limit]

    async def fetch(self, url: str) -> PageToIndex:
        if not is_allowed_domain(url):
            raise ValueError(f"{url} is not a whitelisted documentation site")

        logger.info(f"[OnlineSearch] Scraping: {url}")
        html = await asyncio.to_thread(self._get_html, url)
        title, content = html_to_markdown(html)
        if not content:
            raise ValueError(f"No readable content at {url}")

        return PageToIndex(
            url=url,
            title=title,
            content=content,
            source=source_for_url(url) or "",
            content_hash=get_content_hash(content),
            discovered_by="online_search",
        )
