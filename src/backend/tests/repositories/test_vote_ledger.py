"""
Tests for the vote ledger.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from core.exceptions import StoreUnavailable
from db.store import VOTES_CONTAINER
from models.documents import VoteOutcome
from repositories.vote_repository import VoteLedger


@pytest.fixture
def ledger(memory_store) -> VoteLedger:
    return VoteLedger(memory_store)


@pytest.mark.unit
class TestVoteLedger:
    """VoteLedger operations."""

    async def test_has_voted_false_before_marking(self, ledger: VoteLedger) -> None:
        assert await ledger.has_voted("s1", "v1") is False

    async def test_mark_then_has_voted(self, ledger: VoteLedger) -> None:
        assert await ledger.mark_voted("s1", "v1") == VoteOutcome.RECORDED
        assert await ledger.has_voted("s1", "v1") is True

    async def test_second_mark_is_already_voted(self, ledger: VoteLedger, memory_store) -> None:
        await ledger.mark_voted("s1", "v1")

        assert await ledger.mark_voted("s1", "v1") == VoteOutcome.ALREADY_VOTED
        assert await memory_store.count(VOTES_CONTAINER, partition_key="s1") == 1

    async def test_vote_record_shape(self, ledger: VoteLedger, memory_store) -> None:
        await ledger.mark_voted("s1", "v1")

        stored = await memory_store.read(VOTES_CONTAINER, "s1_v1", "s1")
        assert set(stored.body) == {"id", "subject_id", "created_at"}

    async def test_subjects_and_visitors_are_independent(self, ledger: VoteLedger) -> None:
        await ledger.mark_voted("s1", "v1")

        assert await ledger.has_voted("s2", "v1") is False
        assert await ledger.has_voted("s1", "v2") is False
        assert await ledger.mark_voted("s1", "v2") == VoteOutcome.RECORDED

    async def test_concurrent_marks_record_at_most_once(self, ledger: VoteLedger, memory_store) -> None:
        outcomes = await asyncio.gather(*(ledger.mark_voted("s1", "v1") for _ in range(25)))

        assert outcomes.count(VoteOutcome.RECORDED) == 1
        assert outcomes.count(VoteOutcome.ALREADY_VOTED) == 24
        assert await memory_store.count(VOTES_CONTAINER, partition_key="s1") == 1

    async def test_count_votes(self, ledger: VoteLedger) -> None:
        for visitor in ("v1", "v2", "v3"):
            await ledger.mark_voted("s1", visitor)
        await ledger.mark_voted("s1", "v1")
        await ledger.mark_voted("s2", "v1")

        assert await ledger.count_votes("s1") == 3

    async def test_store_failure_on_write_is_surfaced(self) -> None:
        store = AsyncMock()
        store.create.side_effect = StoreUnavailable("down")

        with pytest.raises(StoreUnavailable):
            await VoteLedger(store).mark_voted("s1", "v1")
        assert store.create.await_count == 1

    async def test_has_voted_retries_reads(self) -> None:
        store = AsyncMock()
        store.read.side_effect = [StoreUnavailable("blip"), None]

        assert await VoteLedger(store).has_voted("s1", "v1") is False
        assert store.read.await_count == 2
