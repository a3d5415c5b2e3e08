"""
Server-sent event streams over store subscriptions.

Each stream subscribes to one partition, renders every snapshot the store
delivers into an SSE frame and yields it to the client. Frames identical to
the previous one are skipped, so a stream that only exposes an aggregate
stays quiet while unrelated fields change.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import structlog
from fastapi.responses import StreamingResponse

from db.store import DocumentStore
from models.documents import AnonymousContentDocument
from schemas.feedback import ContentItem

logger = structlog.get_logger(__name__)

KEEPALIVE_SECONDS = 15.0
KEEPALIVE_FRAME = ": keep-alive\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

FrameFormatter = Callable[[list[dict]], str]


def format_event(payload: dict[str, Any], event: str = "snapshot") -> str:
    return f"event: {event}\ndata: {json.dumps(payload)}\n\n"


def content_frames(subject_id: str) -> FrameFormatter:
    """Render anonymous content snapshots as they are listed, display emails excluded."""

    def render(documents: list[dict]) -> str:
        items = [
            ContentItem.from_document(AnonymousContentDocument(**doc)).model_dump(mode="json") for doc in documents
        ]
        return format_event({"subject_id": subject_id, "items": items, "total": len(items)})

    return render


async def snapshot_event_stream(
    store: DocumentStore,
    collection: str,
    format_frame: FrameFormatter,
    *,
    partition_key: Optional[str] = None,
    order_by: Optional[str] = "created_at",
    limit: Optional[int] = None,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    keepalive_seconds: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """
    Yield an SSE frame for every distinct snapshot of a partition.

    The subscription is closed when the generator is closed, which happens
    when the client disconnects. The stream ends on its own if the store
    closes the subscription first.
    """
    snapshots: asyncio.Queue[list[dict]] = asyncio.Queue(maxsize=8)

    def on_snapshot(documents: list[dict]) -> None:
        # Only the latest snapshot matters to a slow reader
        if snapshots.full():
            snapshots.get_nowait()
        snapshots.put_nowait(documents)

    subscription = await store.subscribe(
        collection,
        on_snapshot,
        partition_key=partition_key,
        order_by=order_by,
        limit=limit,
    )
    logger.info("event_stream_opened", collection=collection, partition_key=partition_key)

    last_frame: Optional[str] = None
    try:
        while not subscription.closed:
            if is_disconnected is not None and await is_disconnected():
                break
            try:
                documents = await asyncio.wait_for(snapshots.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            frame = format_frame(documents)
            if frame == last_frame:
                continue
            last_frame = frame
            yield frame
    finally:
        await subscription.close()
        logger.info("event_stream_closed", collection=collection, partition_key=partition_key)


def event_stream_response(frames: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)
