"""
Shared dependencies for API endpoints.

Includes:
- Visitor identity from the X-Visitor-ID header (ledger and like routes only)
- Path identifier validation
- Repository and service providers over the shared document store
"""

from typing import Annotated

import structlog
from fastapi import Depends, Header, HTTPException, Path, status

from core.config import settings
from core.exceptions import DisplayEmailDisabled
from core.security import VISITOR_HEADER, is_valid_subject_id, is_valid_visitor_id
from db.session import get_store
from db.store import DocumentStore
from models.documents import ContentKind
from repositories.analysis_cache_repository import AnalysisCacheRepository
from repositories.content_repository import AnonymousContentStore
from repositories.like_repository import LikeCounter
from repositories.vote_repository import VoteLedger
from services.analysis_cache import AnalysisCache
from services.summarizer import SummarizerClient, get_summarizer

logger = structlog.get_logger(__name__)


# =============================================================================
# Identifiers
# =============================================================================


async def get_visitor_id(
    x_visitor_id: Annotated[str | None, Header(alias=VISITOR_HEADER)] = None,
) -> str:
    """
    Extract and validate the pseudonymous visitor id.

    Raises:
        HTTPException: If the header is missing or malformed.
    """
    if not x_visitor_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{VISITOR_HEADER} header is required",
        )
    if not is_valid_visitor_id(x_visitor_id):
        logger.info("invalid_visitor_header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {VISITOR_HEADER} header",
        )
    return x_visitor_id


def _validated(value: str, name: str) -> str:
    if not is_valid_subject_id(value):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid {name}",
        )
    return value


async def valid_subject_id(subject_id: Annotated[str, Path()]) -> str:
    return _validated(subject_id, "subject_id")


async def valid_wall_id(wall_id: Annotated[str, Path()]) -> str:
    return _validated(wall_id, "wall_id")


async def valid_post_id(post_id: Annotated[str, Path()]) -> str:
    return _validated(post_id, "post_id")


VisitorId = Annotated[str, Depends(get_visitor_id)]
SubjectId = Annotated[str, Depends(valid_subject_id)]
WallId = Annotated[str, Depends(valid_wall_id)]
PostId = Annotated[str, Depends(valid_post_id)]


# =============================================================================
# Repositories and Services
# =============================================================================


def get_vote_ledger(store: DocumentStore = Depends(get_store)) -> VoteLedger:
    return VoteLedger(store)


def get_response_store(store: DocumentStore = Depends(get_store)) -> AnonymousContentStore:
    return AnonymousContentStore(store, ContentKind.SURVEY_RESPONSE)


def get_wall_store(store: DocumentStore = Depends(get_store)) -> AnonymousContentStore:
    return AnonymousContentStore(store, ContentKind.WALL_POST)


def get_like_counter(store: DocumentStore = Depends(get_store)) -> LikeCounter:
    return LikeCounter(store)


def get_analysis_cache(store: DocumentStore = Depends(get_store)) -> AnalysisCache:
    return AnalysisCache(AnalysisCacheRepository(store))


def get_summarizer_client() -> SummarizerClient:
    return get_summarizer()


def require_display_email_enabled() -> None:
    """Reject display-email operations unless the deployment opted in."""
    if not settings.ALLOW_DISPLAY_EMAIL:
        raise DisplayEmailDisabled()
