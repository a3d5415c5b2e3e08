"""
Analysis cache repository.

One entry per (subject, kind), stored under "<subject_id>_<kind>".
Concurrent writers are last-writer-wins.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from core.security import cache_key
from db.retry import with_read_retries
from db.store import ANALYSIS_CACHE_CONTAINER, DocumentStore
from models.documents import AnalysisKind, AnalysisPayload, CacheDocument

logger = structlog.get_logger(__name__)


class AnalysisCacheRepository:
    """Repository for cached summarizer output."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def read(self, subject_id: str, kind: AnalysisKind) -> Optional[CacheDocument]:
        """Get the cache entry for a subject and kind, if any."""
        key = cache_key(subject_id, AnalysisKind(kind).value)
        stored = await with_read_retries(lambda: self.store.read(ANALYSIS_CACHE_CONTAINER, key, subject_id))
        if stored is None:
            return None
        return CacheDocument(**stored.body)

    async def write(
        self,
        subject_id: str,
        kind: AnalysisKind,
        payload: AnalysisPayload,
        fingerprint: str,
    ) -> CacheDocument:
        """Store a freshly computed payload, clearing any invalidation."""
        kind = AnalysisKind(kind)
        entry = CacheDocument(
            id=cache_key(subject_id, kind.value),
            subject_id=subject_id,
            kind=kind,
            payload=payload,
            fingerprint=fingerprint,
            computed_at=datetime.now(timezone.utc),
            invalidated=False,
        )
        await self.store.upsert(ANALYSIS_CACHE_CONTAINER, entry.model_dump(mode="json"))
        logger.info("analysis_cache_written", subject_id=subject_id, kind=kind.value, fingerprint=fingerprint)
        return entry

    async def invalidate(self, subject_id: str, kind: AnalysisKind) -> bool:
        """
        Mark an entry invalidated, keeping its payload for display.

        Returns:
            True if an entry existed, False otherwise
        """
        entry = await self.read(subject_id, kind)
        if entry is None:
            return False
        entry.invalidated = True
        await self.store.upsert(ANALYSIS_CACHE_CONTAINER, entry.model_dump(mode="json"))
        logger.info("analysis_cache_invalidated", subject_id=subject_id, kind=AnalysisKind(kind).value)
        return True
