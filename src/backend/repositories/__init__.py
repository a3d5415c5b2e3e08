"""Repository modules for document store access."""

from repositories.analysis_cache_repository import AnalysisCacheRepository
from repositories.content_repository import AnonymousContentStore
from repositories.like_repository import LikeCounter, LikeState
from repositories.vote_repository import VoteLedger

__all__ = [
    "AnalysisCacheRepository",
    "AnonymousContentStore",
    "LikeCounter",
    "LikeState",
    "VoteLedger",
]
