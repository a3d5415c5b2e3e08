"""Client SDK for the feedback API."""

from sdk.client import FeedbackAPIError, FeedbackClient
from sdk.feed import ContentSnapshot, SnapshotFeed, VoteCountSnapshot, WallFeed, WallSnapshot
from sdk.identity import FileIdentityStorage, IdentityContext, MemoryIdentityStorage
from sdk.likes import LikeView, OptimisticLikes
from sdk.submission import SubmissionOutcome, SubmissionResult, submit_survey

__all__ = [
    "ContentSnapshot",
    "FeedbackAPIError",
    "FeedbackClient",
    "FileIdentityStorage",
    "IdentityContext",
    "LikeView",
    "MemoryIdentityStorage",
    "OptimisticLikes",
    "SnapshotFeed",
    "SubmissionOutcome",
    "SubmissionResult",
    "VoteCountSnapshot",
    "WallFeed",
    "WallSnapshot",
    "submit_survey",
]
