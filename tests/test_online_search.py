"""
Test suite for the documentation web search adapter.

Covers the domain whitelist, query restriction, hit ranking, HTML
conversion and the search/fetch calls with the HTTP layer replaced.
"""

import pytest
import requests

from config import settings
from infrastructure import online_search
from infrastructure.online_search import (
    ALLOWED_DOMAINS, GoogleDocsSearch, build_site_query, html_to_markdown, rank_hits, source_for_url,
)
from services.factory import get_online_search
from utils.common import get_content_hash

CACHING_HTML = """
<html><head><title>Caching | Next.js</title></head>
<body>
<nav><a href="/">Home</a></nav>
<main>
<h1>Caching in Next.js</h1>
<p>Next.js caches <code>fetch</code> requests by default.</p>
<div class="sidebar"><p>On this page</p></div>
<pre><code class="language-ts">export const revalidate = 60</code></pre>
<ul><li>Request memoization</li><li>Data cache</li></ul>
</main>
<footer>Vercel</footer>
</body></html>
"""


class FakeResponse:
    """Stand-in for requests.Response."""

    def __init__(self, body=None, text: str = "", status: int = 200):
        self.body = body or {}
        self.text = text
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.exceptions.HTTPError(f"{self.status} error")

    def json(self):
        return self.body


@pytest.fixture
def http(monkeypatch):
    """Replace requests.get; tests set the response and read the calls."""
    calls = {"requests": [], "response": FakeResponse()}

    def fake_get(url, params=None, headers=None, timeout=None):
        calls["requests"].append({"url": url, "params": params, "headers": headers})
        response = calls["response"]
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(online_search.requests, "get", fake_get)
    return calls


@pytest.fixture
def search() -> GoogleDocsSearch:
    """Enabled search with dummy credentials."""
    return GoogleDocsSearch(api_key="key", engine_id="cx", enabled=True, search_url="https://cse.test/v1")


class TestDomains:
    """Test suite for the documentation whitelist."""

    def test_should_map_hosts_and_subdomains_to_sources(self):
        assert source_for_url("https://nextjs.org/docs/app") == "nextjs"
        assert source_for_url("https://beta.nextjs.org/docs") == "nextjs"
        assert source_for_url("https://developer.mozilla.org/en-US/docs/Web") == "mdn"

    def test_lookalike_hosts_should_be_rejected(self):
        assert source_for_url("https://evil-nextjs.org/docs") is None
        assert source_for_url("https://stackoverflow.com/questions/1") is None

    def test_ecosystem_hint_should_restrict_sites(self):
        assert build_site_query("dark mode", "styling") == "dark mode (site:tailwindcss.com)"

    def test_source_hint_should_restrict_to_its_domains(self):
        assert build_site_query("migrate", "prisma") == "migrate (site:prisma.io OR site:www.prisma.io)"

    def test_unknown_hint_should_search_whole_whitelist(self):
        query = build_site_query("routing", "unknown")

        assert query.count("site:") == len(ALLOWED_DOMAINS)


class TestRankHits:
    """Test suite for search hit ordering."""

    def test_docs_pages_should_outrank_blog_posts(self):
        items = [
            {"link": "https://nextjs.org/blog/next-15", "title": "Next.js 15", "snippet": "Release notes"},
            {"link": "https://nextjs.org/docs/app/building-your-application/caching", "title": "Caching",
             "snippet": "How caching works"},
        ]

        hits = rank_hits(items, "how does caching work")

        assert [h.url for h in hits] == [
            "https://nextjs.org/docs/app/building-your-application/caching", "https://nextjs.org/blog/next-15",
        ]
        assert hits[0].snippet == "How caching works"


class TestHtmlToMarkdown:
    """Test suite for page conversion."""

    def test_should_keep_main_content_as_markdown(self):
        title, content = html_to_markdown(CACHING_HTML)

        assert title == "Caching in Next.js"
        assert content == "\n\n".join([
            "# Caching in Next.js",
            "Next.js caches fetch requests by default.",
            "```ts\nexport const revalidate = 60\n```",
            "- Request memoization",
            "- Data cache",
        ])

    def test_should_fall_back_to_document_title_and_body_text(self):
        title, content = html_to_markdown("<html><head><title>Guide</title></head><body><div>Plain text</div></body></html>")

        assert title == "Guide"
        assert content == "Plain text"


class TestGoogleDocsSearch:
    """Test suite for GoogleDocsSearch.search and fetch."""

    @pytest.mark.asyncio
    async def test_should_query_whitelisted_sites_and_drop_other_hosts(self, search, http):
        # Arrange
        http["response"] = FakeResponse(body={"items": [
            {"link": "https://stackoverflow.com/q/1", "title": "caching", "snippet": ""},
            {"link": "https://nextjs.org/docs/caching", "title": "Caching", "snippet": "caching guide"},
        ]})

        # Act
        hits = await search.search("caching", "nextjs", limit=1)

        # Assert
        assert [h.url for h in hits] == ["https://nextjs.org/docs/caching"]
        params = http["requests"][0]["params"]
        assert params["q"] == "caching (site:nextjs.org)"
        assert params["num"] == 2
        assert (params["key"], params["cx"]) == ("key", "cx")

    @pytest.mark.asyncio
    async def test_missing_credentials_should_disable_search(self, http):
        disabled = GoogleDocsSearch(api_key="", engine_id="cx", enabled=True)

        assert disabled.is_enabled() is False
        assert await disabled.search("caching") == []
        assert http["requests"] == []

    @pytest.mark.asyncio
    async def test_search_errors_should_return_no_hits(self, search, http):
        http["response"] = requests.exceptions.ConnectionError("offline")

        assert await search.search("caching") == []

    @pytest.mark.asyncio
    async def test_fetch_should_return_page_with_hash_and_source(self, search, http):
        http["response"] = FakeResponse(text=CACHING_HTML)

        page = await search.fetch("https://nextjs.org/docs/caching")

        assert page.title == "Caching in Next.js"
        assert page.source == "nextjs"
        assert page.content_hash == get_content_hash(page.content)
        assert page.discovered_by == "online_search"
        assert "User-Agent" in http["requests"][0]["headers"]

    @pytest.mark.asyncio
    async def test_fetch_should_refuse_sites_outside_whitelist(self, search, http):
        with pytest.raises(ValueError):
            await search.fetch("https://example.com/blog")

        assert http["requests"] == []

    @pytest.mark.asyncio
    async def test_fetch_should_raise_on_http_errors(self, search, http):
        http["response"] = FakeResponse(status=404)

        with pytest.raises(requests.exceptions.HTTPError):
            await search.fetch("https://nextjs.org/docs/missing")


class TestOnlineSearchProvider:
    """Test suite for the factory wiring."""

    def test_provider_should_follow_the_setting(self, monkeypatch):
        get_online_search.cache_clear()
        try:
            monkeypatch.setattr(settings, "ONLINE_SEARCH_ENABLED", False)
            assert get_online_search() is None

            get_online_search.cache_clear()
            monkeypatch.setattr(settings, "ONLINE_SEARCH_ENABLED", True)
            assert isinstance(get_online_search(), GoogleDocsSearch)
        finally:
            get_online_search.cache_clear()
