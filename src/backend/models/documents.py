"""
Document models for the feedback engine.

These Pydantic models define the document structure stored in the document
store. Unlinkability is structural: vote and like documents know visitors but
not content, content documents know content but not visitors.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================


class ContentKind(str, Enum):
    """Kind of anonymous content."""

    SURVEY_RESPONSE = "survey_response"
    WALL_POST = "wall_post"


class AnalysisKind(str, Enum):
    """Kind of LLM-derived analysis held in the cache."""

    DASHBOARD_SUMMARY = "dashboard_summary"  # All responses, coordinator dashboard
    SURVEY_THEMES = "survey_themes"  # Responses of one survey
    CHAT_SUMMARY = "chat_summary"  # One student's chat transcript


class VoteOutcome(str, Enum):
    """Result of recording a vote."""

    RECORDED = "recorded"
    ALREADY_VOTED = "already_voted"


# ============================================================================
# Base Document Model
# ============================================================================


class StoreDocument(BaseModel):
    """
    Base class for stored documents.

    Unknown fields are ignored on read so older or newer documents still load.
    """

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid4()))


# ============================================================================
# Vote Ledger
# ============================================================================


class VoteDocument(StoreDocument):
    """
    Vote record stored in the 'votes' container.

    Partition key: /subject_id
    The id is "<subject_id>_<visitor_id>" and is the only place the visitor
    appears. Nothing about what was submitted is recorded.
    """

    subject_id: str
    created_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# Anonymous Content
# ============================================================================


class AnonymousContentDocument(StoreDocument):
    """
    Anonymous survey response or wall post.

    Partition key: /subject_id
    Contains no visitor field of any kind. display_email is a volunteered
    convenience for self-lookup and is not part of the anonymity guarantee.
    """

    subject_id: str
    kind: ContentKind
    content: str
    answers: dict[str, Any] = Field(default_factory=dict)
    derived_tags: list[str] = Field(default_factory=list)
    derived_score: int = Field(default=50, ge=0, le=100)
    display_email: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# Likes
# ============================================================================


class LikeDocument(StoreDocument):
    """
    Like state of a wall post stored in the 'likes' container.

    Partition key: /id (the post id)
    count is always derived from liked_by, never incremented.
    """

    liked_by: list[str] = Field(default_factory=list)
    count: int = 0
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def derive_count(self) -> "LikeDocument":
        self.liked_by = sorted(set(self.liked_by))
        self.count = len(self.liked_by)
        return self

    @property
    def post_id(self) -> str:
        return self.id


# ============================================================================
# Analysis Cache
# ============================================================================


class ThemeSentiment(BaseModel):
    """Sentiment attached to one recurring theme."""

    theme: str
    sentiment: int = Field(default=50, ge=0, le=100)
    mentions: int = 0


class AnalysisPayload(BaseModel):
    """
    Normalized summarizer output.

    Every field has a default so a partial model response still yields a
    usable payload.
    """

    model_config = ConfigDict(extra="ignore")

    summary: str = ""
    themes: list[str] = Field(default_factory=list)
    sentiment_score: int = Field(default=50, ge=0, le=100)
    action_items: list[str] = Field(default_factory=list)
    theme_sentiments: list[ThemeSentiment] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    risk_level: Optional[str] = None
    item_count: int = 0

    @field_validator("sentiment_score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> int:
        try:
            value = int(round(float(v)))
        except (TypeError, ValueError):
            return 50
        return max(0, min(100, value))


class CacheDocument(StoreDocument):
    """
    Analysis cache entry stored in the 'analysis_cache' container.

    Partition key: /subject_id
    The payload is only valid while fingerprint matches the fingerprint of
    the current inputs and the entry has not been invalidated.
    """

    subject_id: str
    kind: AnalysisKind
    payload: AnalysisPayload
    fingerprint: str
    computed_at: datetime = Field(default_factory=utcnow)
    invalidated: bool = False
