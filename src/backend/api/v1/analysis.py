"""
Analysis endpoints.

Summaries for coordinators, served from the analysis cache:
- dashboard_summary: every survey response (subject is a dashboard name)
- survey_themes: the responses of one survey
- chat_summary: a transcript supplied by the caller
"""

from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from api.deps import SubjectId, get_analysis_cache, get_response_store, get_summarizer_client
from api.v1.streaming import (
    KEEPALIVE_SECONDS,
    FrameFormatter,
    event_stream_response,
    format_event,
    snapshot_event_stream,
)
from core.security import cache_key
from db.session import get_store
from db.store import ANALYSIS_CACHE_CONTAINER, DocumentStore
from models.documents import AnalysisKind, CacheDocument
from repositories.content_repository import AnonymousContentStore
from schemas.analysis import AnalysisInputs, AnalysisResponse, InvalidateResponse
from services.analysis_cache import (
    AnalysisCache,
    AnalysisResult,
    InputLoader,
    count_fingerprint,
    preloaded,
    summarizer_compute,
)
from services.summarizer import SummarizerClient

router = APIRouter()


async def _load_texts(kind: AnalysisKind, subject_id: str, responses: AnonymousContentStore) -> list[str]:
    if kind == AnalysisKind.DASHBOARD_SUMMARY:
        return [doc.content for doc in await responses.list_all()]
    return [doc.content for doc in await responses.list_for_subject(subject_id)]


async def _stored_state(
    kind: AnalysisKind, subject_id: str, responses: AnonymousContentStore, cache: AnalysisCache
) -> tuple[str, InputLoader]:
    """
    Current fingerprint and input loader for kinds whose inputs live in the store.

    In count mode the fingerprint comes from a count query and the texts
    are only read if the summary has to be recomputed.
    """
    if cache.mode == "count":
        if kind == AnalysisKind.DASHBOARD_SUMMARY:
            count = await responses.count_all()
        else:
            count = await responses.count(subject_id)

        async def load() -> list[str]:
            return await _load_texts(kind, subject_id, responses)

        return count_fingerprint(count), load

    texts = await _load_texts(kind, subject_id, responses)
    return cache.fingerprint(texts), preloaded(texts)


@router.get("/{kind}/{subject_id}", response_model=AnalysisResponse)
async def get_analysis_status(
    kind: AnalysisKind,
    subject_id: SubjectId,
    cache: AnalysisCache = Depends(get_analysis_cache),
    responses: AnonymousContentStore = Depends(get_response_store),
) -> AnalysisResponse:
    """
    Cached analysis and whether it is stale.

    Never calls the summarizer. A stale result means an update is available.
    """
    fingerprint = None
    if kind != AnalysisKind.CHAT_SUMMARY:
        fingerprint, _ = await _stored_state(kind, subject_id, responses, cache)
    result = await cache.status(subject_id, kind, current_fingerprint=fingerprint)
    return AnalysisResponse.from_result(subject_id, kind, result)


@router.post("/{kind}/{subject_id}", response_model=AnalysisResponse)
async def get_or_compute_analysis(
    kind: AnalysisKind,
    subject_id: SubjectId,
    body: Optional[AnalysisInputs] = Body(None),
    cache: AnalysisCache = Depends(get_analysis_cache),
    responses: AnonymousContentStore = Depends(get_response_store),
    summarizer: SummarizerClient = Depends(get_summarizer_client),
) -> AnalysisResponse:
    """
    Return the analysis, recomputing it if the inputs changed.

    chat_summary requires the transcript in the body. Other kinds read their
    inputs from the store and reject a body with texts.
    """
    texts = body.texts if body else None

    if kind == AnalysisKind.CHAT_SUMMARY:
        if texts is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="chat_summary requires texts",
            )
        result = await cache.get_or_compute(subject_id, kind, texts, summarizer_compute(summarizer, kind))
    else:
        if texts is not None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"{kind.value} reads its inputs from stored responses",
            )
        fingerprint, load = await _stored_state(kind, subject_id, responses, cache)
        result = await cache.get_or_compute_lazy(
            subject_id, kind, fingerprint, load, summarizer_compute(summarizer, kind)
        )

    return AnalysisResponse.from_result(subject_id, kind, result)


@router.post("/{kind}/{subject_id}/invalidate", response_model=InvalidateResponse)
async def invalidate_analysis(
    kind: AnalysisKind,
    subject_id: SubjectId,
    cache: AnalysisCache = Depends(get_analysis_cache),
) -> InvalidateResponse:
    """Mark the analysis for recomputation. The current payload stays readable."""
    invalidated = await cache.invalidate(subject_id, kind)
    return InvalidateResponse(subject_id=subject_id, kind=kind, invalidated=invalidated)


def _analysis_frames(subject_id: str, kind: AnalysisKind) -> FrameFormatter:
    key = cache_key(subject_id, kind.value)

    def render(documents: list[dict]) -> str:
        entry = next((doc for doc in documents if doc.get("id") == key), None)
        result = None
        if entry is not None:
            document = CacheDocument(**entry)
            result = AnalysisResult.from_entry(document, stale=document.invalidated)
        return format_event(AnalysisResponse.from_result(subject_id, kind, result).model_dump(mode="json"))

    return render


def analysis_event_stream(
    store: DocumentStore,
    subject_id: str,
    kind: AnalysisKind,
    *,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    keepalive_seconds: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """
    Yield the cached analysis whenever its entry is written or invalidated.

    Only invalidation marks a streamed entry stale. The status endpoint
    compares against the current inputs.
    """
    return snapshot_event_stream(
        store,
        ANALYSIS_CACHE_CONTAINER,
        _analysis_frames(subject_id, AnalysisKind(kind)),
        partition_key=subject_id,
        order_by="computed_at",
        is_disconnected=is_disconnected,
        keepalive_seconds=keepalive_seconds,
    )


@router.get("/{kind}/{subject_id}/stream")
async def stream_analysis(
    request: Request,
    kind: AnalysisKind,
    subject_id: SubjectId,
    store: DocumentStore = Depends(get_store),
) -> StreamingResponse:
    """Live analysis cache entry as server-sent events."""
    return event_stream_response(
        analysis_event_stream(store, subject_id, kind, is_disconnected=request.is_disconnected)
    )
