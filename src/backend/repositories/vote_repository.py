"""
Vote ledger repository.

Records that a visitor acted on a subject without recording what they
submitted. Partition key is subject_id for efficient per-subject counts.
"""

from datetime import datetime, timezone

import structlog

from core.exceptions import DocumentExists
from core.security import vote_key
from db.retry import with_read_retries
from db.store import VOTES_CONTAINER, DocumentStore
from models.documents import VoteDocument, VoteOutcome

logger = structlog.get_logger(__name__)


class VoteLedger:
    """
    Repository for vote ledger operations.

    Privacy Design:
    - The vote record never references the submitted content
    - The visitor id only appears inside the composite record id
    - The composite id "<subject_id>_<visitor_id>" is the dedup mechanism:
      a second create for the same pair collides, so at most one record
      exists per pair regardless of races between clients
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def has_voted(self, subject_id: str, visitor_id: str) -> bool:
        """
        Check whether a visitor already has a vote record for a subject.

        This is a fast UI-level check, not the enforcement point.
        """
        key = vote_key(subject_id, visitor_id)
        record = await with_read_retries(lambda: self.store.read(VOTES_CONTAINER, key, subject_id))
        return record is not None

    async def count_votes(self, subject_id: str) -> int:
        """Number of distinct visitors who acted on a subject."""
        return await with_read_retries(lambda: self.store.count(VOTES_CONTAINER, partition_key=subject_id))

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def mark_voted(self, subject_id: str, visitor_id: str) -> VoteOutcome:
        """
        Record that a visitor acted on a subject.

        Uses create-if-absent at the composite key. Records are never updated
        or deleted, since deleting one would allow a second vote.

        Returns:
            VoteOutcome.RECORDED on first success,
            VoteOutcome.ALREADY_VOTED if the pair already exists

        Raises:
            StoreUnavailable: If the store could not be reached
            AmbiguousWrite: If the outcome of the write is unknown
        """
        vote = VoteDocument(
            id=vote_key(subject_id, visitor_id),
            subject_id=subject_id,
            created_at=datetime.now(timezone.utc),
        )

        try:
            await self.store.create(VOTES_CONTAINER, vote.model_dump(mode="json"))
        except DocumentExists:
            logger.info("vote_already_recorded", subject_id=subject_id)
            return VoteOutcome.ALREADY_VOTED

        logger.info("vote_recorded", subject_id=subject_id)
        return VoteOutcome.RECORDED
