"""
Optimistic like state for a client.

The local state flips immediately and is reconciled with the server's
answer, or rolled back if the request fails.
"""

from dataclasses import dataclass

import structlog

from sdk.client import FeedbackClient

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LikeView:
    liked: bool = False
    count: int = 0


class OptimisticLikes:
    """Local like state per post, kept in step with the server."""

    def __init__(self, client: FeedbackClient):
        self._client = client
        self._states: dict[str, LikeView] = {}
        self._versions: dict[str, int] = {}

    def state(self, post_id: str) -> LikeView:
        return self._states.get(post_id, LikeView())

    def seed(self, post_id: str, liked: bool, count: int) -> None:
        """Set the known server state, e.g. from a listing."""
        self._states[post_id] = LikeView(liked=liked, count=count)

    async def refresh(self, post_id: str) -> LikeView:
        data = await self._client.like_state(post_id)
        self.seed(post_id, data["liked"], data["count"])
        return self.state(post_id)

    async def toggle(self, post_id: str) -> LikeView:
        """
        Flip the like locally, then send the desired state.

        Sends PUT/DELETE rather than a server toggle so a retried request
        cannot flip the like twice.
        """
        previous = self.state(post_id)
        optimistic = LikeView(
            liked=not previous.liked,
            count=max(0, previous.count + (-1 if previous.liked else 1)),
        )
        version = self._versions.get(post_id, 0) + 1
        self._versions[post_id] = version
        self._states[post_id] = optimistic

        try:
            data = await self._client.set_liked(post_id, optimistic.liked)
        except BaseException:
            # Only roll back if no later toggle has replaced this one
            if self._versions.get(post_id) == version:
                self._states[post_id] = previous
                logger.info("like_rolled_back", post_id=post_id)
            raise

        if self._versions.get(post_id) == version:
            self.seed(post_id, data["liked"], data["count"])
        return self.state(post_id)
