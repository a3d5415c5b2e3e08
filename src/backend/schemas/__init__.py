"""Schemas module initialization."""

from schemas.analysis import AnalysisInputs, AnalysisResponse, InvalidateResponse
from schemas.feedback import (
    ContentCreated,
    ContentItem,
    ContentList,
    DisplayEmailLookup,
    DisplayEmailLookupResult,
    SurveyResponseCreate,
    WallPostCreate,
)
from schemas.like import LikeStateResponse
from schemas.vote import VoteCount, VoteResponse, VoteStatus

__all__ = [
    "AnalysisInputs",
    "AnalysisResponse",
    "InvalidateResponse",
    "ContentCreated",
    "ContentItem",
    "ContentList",
    "DisplayEmailLookup",
    "DisplayEmailLookupResult",
    "SurveyResponseCreate",
    "WallPostCreate",
    "LikeStateResponse",
    "VoteCount",
    "VoteResponse",
    "VoteStatus",
]
