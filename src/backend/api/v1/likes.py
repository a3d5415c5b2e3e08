"""
Wall-post like endpoints.

POST toggle flips membership. PUT and DELETE set the desired state and are
the forms to use when a request has to be retried.
"""

from fastapi import APIRouter, Depends

from api.deps import PostId, VisitorId, get_like_counter
from repositories.like_repository import LikeCounter
from schemas.like import LikeStateResponse

router = APIRouter()


@router.get("/{post_id}", response_model=LikeStateResponse)
async def get_like_state(
    post_id: PostId,
    visitor_id: VisitorId,
    likes: LikeCounter = Depends(get_like_counter),
) -> LikeStateResponse:
    """Like count of a post and whether the visitor liked it."""
    return LikeStateResponse.from_state(await likes.get(post_id, visitor_id))


@router.post("/{post_id}/toggle", response_model=LikeStateResponse)
async def toggle_like(
    post_id: PostId,
    visitor_id: VisitorId,
    likes: LikeCounter = Depends(get_like_counter),
) -> LikeStateResponse:
    return LikeStateResponse.from_state(await likes.toggle(post_id, visitor_id))


@router.put("/{post_id}", response_model=LikeStateResponse)
async def like_post(
    post_id: PostId,
    visitor_id: VisitorId,
    likes: LikeCounter = Depends(get_like_counter),
) -> LikeStateResponse:
    return LikeStateResponse.from_state(await likes.set_liked(post_id, visitor_id, True))


@router.delete("/{post_id}", response_model=LikeStateResponse)
async def unlike_post(
    post_id: PostId,
    visitor_id: VisitorId,
    likes: LikeCounter = Depends(get_like_counter),
) -> LikeStateResponse:
    return LikeStateResponse.from_state(await likes.set_liked(post_id, visitor_id, False))
