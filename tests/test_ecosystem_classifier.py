"""
Test suite for the ecosystem classifier.

Covers each detection stage in order (alias, keywords, embedding, model)
and the general fallback.
"""

from unittest.mock import AsyncMock

import pytest

from core.domain import Ecosystem
from core.exceptions import LanguageModelError
from fakes import ScriptedLanguageModel
from services.ecosystem_classifier import EcosystemClassifier, cosine_similarity

ECOSYSTEMS = [
    Ecosystem(
        id="frontend", name="Frontend", description="Web UI frameworks",
        aliases=["frontend"], keywords=["react", "nextjs", "tailwind"],
        keyword_groups={"styling": ["css", "sass"]},
        description_embedding=[1.0, 0.0],
    ),
    Ecosystem(
        id="python", name="Python", description="Python backends",
        aliases=["pythonic"], keywords=["django", "fastapi"],
        description_embedding=[0.0, 1.0],
    ),
    Ecosystem(id="general", name="General", description="Anything else"),
]

SOURCES = {"frontend": ["nextjs", "react"], "python": ["fastapi"]}


@pytest.fixture
def ecosystem_repo() -> AsyncMock:
    """Ecosystem repository mock with three ecosystems."""
    repo = AsyncMock()
    repo.list_active = AsyncMock(return_value=ECOSYSTEMS)
    repo.sources_by_ecosystem = AsyncMock(return_value=SOURCES)
    return repo


@pytest.fixture
def query_embedding() -> AsyncMock:
    """Embedding service mock; tests set the returned vector."""
    service = AsyncMock()
    service.embed = AsyncMock(return_value=[0.5, 0.5])
    return service


def make_classifier(repo, embedder, llm=None) -> EcosystemClassifier:
    return EcosystemClassifier(repo, embedder, llm or ScriptedLanguageModel(), cache_ttl=300, similarity_threshold=0.75)


class TestDetectionStages:
    """Test suite for EcosystemClassifier.detect."""

    @pytest.mark.asyncio
    async def test_alias_should_win_with_fixed_confidence(self, ecosystem_repo, query_embedding):
        classifier = make_classifier(ecosystem_repo, query_embedding)

        result = await classifier.detect("Best FRONTEND testing setup?")

        assert (result.ecosystem_id, result.confidence) == ("frontend", 95)
        assert result.suggested_sources == ["nextjs", "react"]
        query_embedding.embed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_keywords_should_score_matches(self, ecosystem_repo, query_embedding):
        classifier = make_classifier(ecosystem_repo, query_embedding)

        result = await classifier.detect("react with tailwind and css modules")

        assert result.ecosystem_id == "frontend"
        assert result.confidence == 85  # 70 + 5 * 3 matches
        assert "styling:css" in result.reasoning

    @pytest.mark.asyncio
    async def test_embedding_should_match_close_descriptions(self, ecosystem_repo, query_embedding):
        query_embedding.embed.return_value = [0.1, 0.99]
        classifier = make_classifier(ecosystem_repo, query_embedding)

        result = await classifier.detect("building http services")

        assert result.ecosystem_id == "python"
        assert result.confidence == round(cosine_similarity([0.1, 0.99], [0.0, 1.0]) * 100)

    @pytest.mark.asyncio
    async def test_model_should_decide_when_other_stages_fail(self, ecosystem_repo, query_embedding):
        # Arrange
        llm = ScriptedLanguageModel([{"ecosystemId": "python", "confidence": 70, "reasoning": "web backend"}])
        classifier = make_classifier(ecosystem_repo, query_embedding, llm)

        # Act
        result = await classifier.detect("how do I structure services")

        # Assert
        assert (result.ecosystem_id, result.confidence) == ("python", 70)
        assert result.suggested_sources == ["fastapi"]
        assert llm.options[0].json_output is True

    @pytest.mark.asyncio
    async def test_model_failure_should_fall_back_to_general(self, ecosystem_repo, query_embedding):
        llm = ScriptedLanguageModel([LanguageModelError("down")])
        classifier = make_classifier(ecosystem_repo, query_embedding, llm)

        result = await classifier.detect("how do I structure services")

        assert (result.ecosystem_id, result.confidence) == ("general", 0)
        assert result.suggested_sources == []

    @pytest.mark.asyncio
    async def test_no_ecosystems_should_return_general(self, query_embedding):
        repo = AsyncMock()
        repo.list_active = AsyncMock(return_value=[])
        repo.sources_by_ecosystem = AsyncMock(return_value={})
        classifier = make_classifier(repo, query_embedding)

        result = await classifier.detect("anything")

        assert (result.ecosystem_id, result.ecosystem_name, result.confidence) == (None, "general", 0)

    @pytest.mark.asyncio
    async def test_ecosystems_should_be_cached(self, ecosystem_repo, query_embedding):
        classifier = make_classifier(ecosystem_repo, query_embedding)

        await classifier.detect("frontend")
        await classifier.detect("frontend")

        assert ecosystem_repo.list_active.await_count == 1


class TestCosineSimilarity:
    """Test suite for the similarity helper."""

    def test_identical_vectors_should_score_one(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_mismatched_or_zero_vectors_should_score_zero(self):
        assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
