"""
Like counter repository.

Wall-post likes are a set of visitor ids per post. The count is always the
size of that set, so repeating a like or an unlike is a no-op.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import structlog

from core.config import settings
from core.exceptions import ConcurrencyConflict, DocumentExists
from db.retry import with_read_retries
from db.store import LIKES_CONTAINER, DocumentStore
from models.documents import LikeDocument

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LikeState:
    """Like state of a post as seen by one visitor."""

    post_id: str
    liked: bool
    count: int


class LikeCounter:
    """
    Repository for per-visitor like toggles.

    Concurrency:
    - The first like of a post uses create-if-absent
    - Later changes replace the document conditioned on its ETag
    - A lost race re-reads and re-applies the set mutation, up to
      LIKE_MAX_ATTEMPTS times
    """

    def __init__(self, store: DocumentStore, max_attempts: int | None = None):
        self.store = store
        self.max_attempts = max_attempts or settings.LIKE_MAX_ATTEMPTS

    async def get(self, post_id: str, visitor_id: str) -> LikeState:
        """Current like state of a post for a visitor."""
        stored = await with_read_retries(lambda: self.store.read(LIKES_CONTAINER, post_id, post_id))
        if stored is None:
            return LikeState(post_id=post_id, liked=False, count=0)
        doc = LikeDocument(**stored.body)
        return LikeState(post_id=post_id, liked=visitor_id in doc.liked_by, count=doc.count)

    async def toggle(self, post_id: str, visitor_id: str) -> LikeState:
        """Flip the visitor's membership in the post's like set."""
        return await self._mutate(post_id, visitor_id, lambda liked: not liked)

    async def set_liked(self, post_id: str, visitor_id: str, liked: bool) -> LikeState:
        """
        Bring the visitor's membership to the desired state.

        Unlike toggle, this is safe to retry after an ambiguous failure.
        """
        return await self._mutate(post_id, visitor_id, lambda _current: liked)

    async def _mutate(self, post_id: str, visitor_id: str, decide: Callable[[bool], bool]) -> LikeState:
        for attempt in range(1, self.max_attempts + 1):
            stored = await with_read_retries(lambda: self.store.read(LIKES_CONTAINER, post_id, post_id))
            members = set(stored.body.get("liked_by", [])) if stored else set()

            currently_liked = visitor_id in members
            want_liked = decide(currently_liked)
            if want_liked == currently_liked:
                return LikeState(post_id=post_id, liked=currently_liked, count=len(members))

            if want_liked:
                members.add(visitor_id)
            else:
                members.discard(visitor_id)

            doc = LikeDocument(id=post_id, liked_by=list(members), updated_at=datetime.now(timezone.utc))
            body = doc.model_dump(mode="json")

            try:
                if stored is None:
                    await self.store.create(LIKES_CONTAINER, body)
                else:
                    await self.store.replace(LIKES_CONTAINER, body, stored.etag)
            except (DocumentExists, ConcurrencyConflict):
                logger.info("like_write_conflict", post_id=post_id, attempt=attempt)
                continue

            logger.info("like_updated", post_id=post_id, liked=want_liked, count=doc.count)
            return LikeState(post_id=post_id, liked=want_liked, count=doc.count)

        logger.warning("like_attempts_exhausted", post_id=post_id, attempts=self.max_attempts)
        raise ConcurrencyConflict(f"Like on {post_id} kept conflicting after {self.max_attempts} attempts")
