"""Document models module."""

from models.documents import (
    AnalysisKind,
    AnalysisPayload,
    AnonymousContentDocument,
    CacheDocument,
    ContentKind,
    LikeDocument,
    ThemeSentiment,
    VoteDocument,
    VoteOutcome,
)

__all__ = [
    "AnalysisKind",
    "AnalysisPayload",
    "AnonymousContentDocument",
    "CacheDocument",
    "ContentKind",
    "LikeDocument",
    "ThemeSentiment",
    "VoteDocument",
    "VoteOutcome",
]
