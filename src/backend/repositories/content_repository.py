"""
Anonymous content repository.

Persists survey responses and wall posts keyed by subject, never by visitor.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from core.exceptions import DocumentExists
from core.security import content_record_id
from db.retry import with_read_retries
from db.store import RESPONSES_CONTAINER, WALL_POSTS_CONTAINER, DocumentStore
from models.documents import AnonymousContentDocument, ContentKind

logger = structlog.get_logger(__name__)

CONTAINER_BY_KIND = {
    ContentKind.SURVEY_RESPONSE: RESPONSES_CONTAINER,
    ContentKind.WALL_POST: WALL_POSTS_CONTAINER,
}


class AnonymousContentStore:
    """
    Repository for anonymous content.

    Privacy Design:
    - No method accepts a visitor id, so none can store one
    - Listings are per subject and never filtered or joined by visitor
    - Writes are issued independently of the vote ledger
    """

    def __init__(self, store: DocumentStore, kind: ContentKind):
        self.store = store
        self.kind = kind
        self.container = CONTAINER_BY_KIND[kind]

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def submit(
        self,
        subject_id: str,
        content: str,
        *,
        answers: Optional[dict[str, Any]] = None,
        derived_tags: Optional[list[str]] = None,
        derived_score: int = 50,
        display_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """
        Append a content record and return its id.

        A write whose outcome is unknown raises AmbiguousWrite and must not be
        retried blindly. With an idempotency_key the record id is derived from
        the key, so resubmitting with the same key returns the existing record
        instead of duplicating it.

        Raises:
            StoreUnavailable: If the store could not be reached
            AmbiguousWrite: If the write may or may not have been applied
        """
        record = AnonymousContentDocument(
            id=content_record_id(subject_id, idempotency_key),
            subject_id=subject_id,
            kind=self.kind,
            content=content,
            answers=answers or {},
            derived_tags=derived_tags or [],
            derived_score=derived_score,
            display_email=display_email,
            created_at=datetime.now(timezone.utc),
        )

        try:
            await self.store.create(self.container, record.model_dump(mode="json"))
        except DocumentExists:
            if not idempotency_key:
                raise
            logger.info("content_resubmission_deduplicated", kind=self.kind.value, subject_id=subject_id)
            return record.id

        logger.info("content_submitted", kind=self.kind.value, subject_id=subject_id, record_id=record.id)
        return record.id

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def get(self, subject_id: str, record_id: str) -> Optional[AnonymousContentDocument]:
        """Get one content record."""
        stored = await with_read_retries(lambda: self.store.read(self.container, record_id, subject_id))
        if stored is None:
            return None
        return AnonymousContentDocument(**stored.body)

    async def list_for_subject(self, subject_id: str, limit: Optional[int] = None) -> list[AnonymousContentDocument]:
        """List a subject's content, newest first."""
        results = await with_read_retries(
            lambda: self.store.query(
                self.container,
                partition_key=subject_id,
                where={"subject_id": subject_id},
                order_by="created_at",
                limit=limit,
            )
        )
        return [AnonymousContentDocument(**r) for r in results]

    async def list_all(self, limit: Optional[int] = None) -> list[AnonymousContentDocument]:
        """
        List content across all subjects, newest first.

        Note: This is a cross-partition query - use sparingly.
        """
        results = await with_read_retries(
            lambda: self.store.query(self.container, order_by="created_at", limit=limit)
        )
        return [AnonymousContentDocument(**r) for r in results]

    async def count(self, subject_id: str) -> int:
        """Number of content records for a subject."""
        return await with_read_retries(
            lambda: self.store.count(self.container, partition_key=subject_id, where={"subject_id": subject_id})
        )

    async def count_all(self) -> int:
        """Number of content records across all subjects."""
        return await with_read_retries(lambda: self.store.count(self.container))

    async def find_by_display_email(self, display_email: str) -> list[AnonymousContentDocument]:
        """
        Self-service lookup of responses carrying a volunteered email.

        Note: Cross-partition query. Only reachable when display emails are enabled.
        """
        results = await with_read_retries(
            lambda: self.store.query(
                self.container,
                where={"display_email": display_email},
                order_by="created_at",
            )
        )
        return [AnonymousContentDocument(**r) for r in results]
