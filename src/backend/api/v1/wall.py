"""
Anonymous community wall endpoints.

Posts carry no author information. The stream endpoint pushes a fresh
snapshot of the wall as server-sent events whenever it changes.
"""

from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse

from api.deps import WallId, get_summarizer_client, get_wall_store
from api.v1.streaming import KEEPALIVE_SECONDS, content_frames, event_stream_response, snapshot_event_stream
from db.session import get_store
from db.store import WALL_POSTS_CONTAINER, DocumentStore
from repositories.content_repository import AnonymousContentStore
from schemas.feedback import ContentCreated, ContentItem, ContentList, WallPostCreate
from services.summarizer import SummarizerClient

router = APIRouter()


@router.post("/{wall_id}/posts", response_model=ContentCreated, status_code=status.HTTP_201_CREATED)
async def submit_wall_post(
    wall_id: WallId,
    body: WallPostCreate,
    posts: AnonymousContentStore = Depends(get_wall_store),
    summarizer: SummarizerClient = Depends(get_summarizer_client),
) -> ContentCreated:
    """Post anonymously to a wall."""
    sentiment = await summarizer.analyze_sentiment(body.content)
    record_id = await posts.submit(
        wall_id,
        body.content,
        derived_tags=sentiment.tags,
        derived_score=sentiment.score,
        idempotency_key=body.idempotency_key,
    )
    return ContentCreated(id=record_id, subject_id=wall_id, kind=posts.kind)


@router.get("/{wall_id}/posts", response_model=ContentList)
async def list_wall_posts(
    wall_id: WallId,
    limit: Optional[int] = Query(None, ge=1, le=500),
    posts: AnonymousContentStore = Depends(get_wall_store),
) -> ContentList:
    """List a wall's posts, newest first."""
    items = await posts.list_for_subject(wall_id, limit=limit)
    total = await posts.count(wall_id)
    return ContentList(
        subject_id=wall_id,
        items=[ContentItem.from_document(doc) for doc in items],
        total=total,
    )


def wall_event_stream(
    store: DocumentStore,
    wall_id: str,
    *,
    limit: Optional[int] = None,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    keepalive_seconds: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """Yield SSE frames for every snapshot of a wall, newest post first."""
    return snapshot_event_stream(
        store,
        WALL_POSTS_CONTAINER,
        content_frames(wall_id),
        partition_key=wall_id,
        limit=limit,
        is_disconnected=is_disconnected,
        keepalive_seconds=keepalive_seconds,
    )


@router.get("/{wall_id}/stream")
async def stream_wall_posts(
    request: Request,
    wall_id: WallId,
    limit: Optional[int] = Query(50, ge=1, le=500),
    store: DocumentStore = Depends(get_store),
) -> StreamingResponse:
    """Live feed of a wall as server-sent events."""
    return event_stream_response(
        wall_event_stream(store, wall_id, limit=limit, is_disconnected=request.is_disconnected)
    )
