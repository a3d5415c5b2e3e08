"""Like counter schemas."""

from pydantic import BaseModel

from repositories.like_repository import LikeState


class LikeStateResponse(BaseModel):
    """Like state of a post as seen by the requesting visitor."""

    post_id: str
    liked: bool
    count: int

    @classmethod
    def from_state(cls, state: LikeState) -> "LikeStateResponse":
        return cls(post_id=state.post_id, liked=state.liked, count=state.count)
