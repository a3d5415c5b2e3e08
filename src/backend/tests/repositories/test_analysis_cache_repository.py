"""
Tests for the analysis cache repository.
"""

import pytest

from db.store import ANALYSIS_CACHE_CONTAINER
from models.documents import AnalysisKind, AnalysisPayload
from repositories.analysis_cache_repository import AnalysisCacheRepository


@pytest.fixture
def repo(memory_store) -> AnalysisCacheRepository:
    return AnalysisCacheRepository(memory_store)


@pytest.mark.unit
class TestAnalysisCacheRepository:
    async def test_read_missing(self, repo: AnalysisCacheRepository) -> None:
        assert await repo.read("s1", AnalysisKind.SURVEY_THEMES) is None

    async def test_write_then_read(self, repo: AnalysisCacheRepository, memory_store) -> None:
        payload = AnalysisPayload(summary="Mostly positive", themes=["pace"], item_count=3)

        await repo.write("s1", AnalysisKind.SURVEY_THEMES, payload, "3")
        entry = await repo.read("s1", AnalysisKind.SURVEY_THEMES)

        assert entry.payload.summary == "Mostly positive"
        assert entry.fingerprint == "3"
        assert entry.invalidated is False
        assert await memory_store.read(ANALYSIS_CACHE_CONTAINER, "s1_survey_themes", "s1") is not None

    async def test_kinds_are_separate_entries(self, repo: AnalysisCacheRepository) -> None:
        await repo.write("s1", AnalysisKind.SURVEY_THEMES, AnalysisPayload(summary="themes"), "1")
        await repo.write("s1", AnalysisKind.CHAT_SUMMARY, AnalysisPayload(summary="chat"), "1")

        assert (await repo.read("s1", AnalysisKind.SURVEY_THEMES)).payload.summary == "themes"
        assert (await repo.read("s1", "chat_summary")).payload.summary == "chat"

    async def test_invalidate_keeps_payload(self, repo: AnalysisCacheRepository) -> None:
        await repo.write("s1", AnalysisKind.SURVEY_THEMES, AnalysisPayload(summary="old"), "2")

        assert await repo.invalidate("s1", AnalysisKind.SURVEY_THEMES) is True

        entry = await repo.read("s1", AnalysisKind.SURVEY_THEMES)
        assert entry.invalidated is True
        assert entry.payload.summary == "old"

    async def test_invalidate_missing(self, repo: AnalysisCacheRepository) -> None:
        assert await repo.invalidate("s1", AnalysisKind.SURVEY_THEMES) is False

    async def test_write_clears_invalidation(self, repo: AnalysisCacheRepository) -> None:
        await repo.write("s1", AnalysisKind.SURVEY_THEMES, AnalysisPayload(summary="old"), "2")
        await repo.invalidate("s1", AnalysisKind.SURVEY_THEMES)

        await repo.write("s1", AnalysisKind.SURVEY_THEMES, AnalysisPayload(summary="new"), "3")

        entry = await repo.read("s1", AnalysisKind.SURVEY_THEMES)
        assert entry.invalidated is False
        assert entry.payload.summary == "new"
