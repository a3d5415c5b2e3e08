"""
Vote ledger endpoints.

The ledger records that a visitor acted on a subject and nothing else.
Content is submitted through separate endpoints that never see the
visitor id, so no request carries both.
"""

from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from api.deps import SubjectId, VisitorId, get_vote_ledger
from api.v1.streaming import (
    KEEPALIVE_SECONDS,
    FrameFormatter,
    event_stream_response,
    format_event,
    snapshot_event_stream,
)
from db.session import get_store
from db.store import VOTES_CONTAINER, DocumentStore
from models.documents import VoteOutcome
from repositories.vote_repository import VoteLedger
from schemas.vote import VoteCount, VoteResponse, VoteStatus

router = APIRouter()


@router.get("/{subject_id}", response_model=VoteStatus)
async def get_vote_status(
    subject_id: SubjectId,
    visitor_id: VisitorId,
    ledger: VoteLedger = Depends(get_vote_ledger),
) -> VoteStatus:
    """
    Check if the visitor has already acted on a subject.

    Fast rejection only. The enforcement point is POST.
    """
    return VoteStatus(subject_id=subject_id, has_voted=await ledger.has_voted(subject_id, visitor_id))


@router.post(
    "/{subject_id}",
    response_model=VoteResponse,
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_409_CONFLICT: {"description": "Visitor already voted on this subject"}},
)
async def mark_voted(
    subject_id: SubjectId,
    visitor_id: VisitorId,
    ledger: VoteLedger = Depends(get_vote_ledger),
):
    """
    Record that the visitor acted on a subject.

    Returns 201 on the first call for a (subject, visitor) pair and 409 with
    code "already_voted" on every later one. Safe to retry.
    """
    outcome = await ledger.mark_voted(subject_id, visitor_id)

    if outcome == VoteOutcome.ALREADY_VOTED:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": "You have already responded to this",
                "code": VoteOutcome.ALREADY_VOTED.value,
                "subject_id": subject_id,
            },
        )

    return VoteResponse(subject_id=subject_id, outcome=outcome, message="Vote recorded")


@router.get("/{subject_id}/count", response_model=VoteCount)
async def count_votes(
    subject_id: SubjectId,
    ledger: VoteLedger = Depends(get_vote_ledger),
) -> VoteCount:
    """Participation count for aggregate dashboards."""
    return VoteCount(subject_id=subject_id, count=await ledger.count_votes(subject_id))


def _count_frames(subject_id: str) -> FrameFormatter:
    def render(documents: list[dict]) -> str:
        return format_event(VoteCount(subject_id=subject_id, count=len(documents)).model_dump(mode="json"))

    return render


def vote_count_event_stream(
    store: DocumentStore,
    subject_id: str,
    *,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    keepalive_seconds: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """
    Yield the participation count of a subject whenever it changes.

    Ledger records carry visitor ids, so frames hold the count and nothing
    from the records themselves.
    """
    return snapshot_event_stream(
        store,
        VOTES_CONTAINER,
        _count_frames(subject_id),
        partition_key=subject_id,
        order_by=None,
        is_disconnected=is_disconnected,
        keepalive_seconds=keepalive_seconds,
    )


@router.get("/{subject_id}/count/stream")
async def stream_vote_count(
    request: Request,
    subject_id: SubjectId,
    store: DocumentStore = Depends(get_store),
) -> StreamingResponse:
    """Live participation count as server-sent events."""
    return event_stream_response(
        vote_count_event_stream(store, subject_id, is_disconnected=request.is_disconnected)
    )
