"""
Anonymous survey response endpoints.

These routes never read the X-Visitor-ID header. Clients record their
participation separately through the vote ledger once the response is
stored.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse

from api.deps import (
    SubjectId,
    get_response_store,
    get_summarizer_client,
    require_display_email_enabled,
)
from api.v1.streaming import content_frames, event_stream_response, snapshot_event_stream
from core.config import settings
from core.exceptions import DisplayEmailDisabled
from db.session import get_store
from db.store import RESPONSES_CONTAINER, DocumentStore
from repositories.content_repository import AnonymousContentStore
from schemas.feedback import (
    ContentCreated,
    ContentItem,
    ContentList,
    DisplayEmailLookup,
    DisplayEmailLookupResult,
    SurveyResponseCreate,
)
from services.summarizer import SummarizerClient


router = APIRouter()


@router.post(
    "/surveys/{subject_id}/responses",
    response_model=ContentCreated,
    status_code=status.HTTP_201_CREATED,
)
async def submit_survey_response(
    subject_id: SubjectId,
    body: SurveyResponseCreate,
    responses: AnonymousContentStore = Depends(get_response_store),
    summarizer: SummarizerClient = Depends(get_summarizer_client),
) -> ContentCreated:
    """
    Store an anonymous survey response.

    Sentiment score and tags are derived before storing; an unavailable
    summarizer yields a neutral score rather than a failure.
    """
    if body.display_email and not settings.ALLOW_DISPLAY_EMAIL:
        raise DisplayEmailDisabled()

    sentiment = await summarizer.analyze_sentiment(body.content)

    record_id = await responses.submit(
        subject_id,
        body.content,
        answers=body.answers,
        derived_tags=sentiment.tags,
        derived_score=sentiment.score,
        display_email=body.display_email,
        idempotency_key=body.idempotency_key,
    )
    return ContentCreated(id=record_id, subject_id=subject_id, kind=responses.kind)


@router.get("/surveys/{subject_id}/responses", response_model=ContentList)
async def list_survey_responses(
    subject_id: SubjectId,
    limit: Optional[int] = Query(None, ge=1, le=500),
    responses: AnonymousContentStore = Depends(get_response_store),
) -> ContentList:
    """List a survey's responses, newest first."""
    items = await responses.list_for_subject(subject_id, limit=limit)
    total = await responses.count(subject_id)
    return ContentList(
        subject_id=subject_id,
        items=[ContentItem.from_document(doc) for doc in items],
        total=total,
    )


@router.get("/surveys/{subject_id}/responses/stream")
async def stream_survey_responses(
    request: Request,
    subject_id: SubjectId,
    limit: Optional[int] = Query(50, ge=1, le=500),
    store: DocumentStore = Depends(get_store),
) -> StreamingResponse:
    """Live feed of a survey's responses as server-sent events, newest first."""
    return event_stream_response(
        snapshot_event_stream(
            store,
            RESPONSES_CONTAINER,
            content_frames(subject_id),
            partition_key=subject_id,
            limit=limit,
            is_disconnected=request.is_disconnected,
        )
    )


@router.post(
    "/responses/lookup",
    response_model=DisplayEmailLookupResult,
    dependencies=[Depends(require_display_email_enabled)],
)
async def lookup_own_responses(
    body: DisplayEmailLookup,
    responses: AnonymousContentStore = Depends(get_response_store),
) -> DisplayEmailLookupResult:
    """
    Return the responses the caller tagged with their own email.

    Only available when display emails are enabled.
    """
    items = await responses.find_by_display_email(body.display_email)
    return DisplayEmailLookupResult(items=[ContentItem.from_document(doc) for doc in items])
