"""
Anonymous content schemas.

Request bodies forbid unknown fields, so a client cannot smuggle a visitor
identifier into a content record.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.security import normalize_display_email
from models.documents import AnonymousContentDocument, ContentKind


class _ContentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: str = Field(..., min_length=1, max_length=5000)
    idempotency_key: Optional[str] = Field(
        None,
        min_length=8,
        max_length=128,
        description="Random per-submission key; resubmitting with the same key does not duplicate content",
    )

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Content cannot be empty")
        return stripped


class SurveyResponseCreate(_ContentCreate):
    """Schema for submitting an anonymous survey response."""

    answers: dict[str, Any] = Field(default_factory=dict)
    display_email: Optional[str] = Field(
        None,
        description="Optional self-lookup email. Not covered by the anonymity guarantee.",
    )

    @field_validator("display_email")
    @classmethod
    def validate_display_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return normalize_display_email(v)


class WallPostCreate(_ContentCreate):
    """Schema for posting to the anonymous community wall."""


class ContentCreated(BaseModel):
    """Response after storing anonymous content."""

    id: str
    subject_id: str
    kind: ContentKind


class ContentItem(BaseModel):
    """
    Anonymous content as shown in aggregate views.

    display_email is deliberately absent from this shape.
    """

    id: str
    subject_id: str
    kind: ContentKind
    content: str
    answers: dict[str, Any] = Field(default_factory=dict)
    derived_tags: list[str] = Field(default_factory=list)
    derived_score: int = 50
    created_at: datetime

    @classmethod
    def from_document(cls, doc: AnonymousContentDocument) -> "ContentItem":
        return cls(
            id=doc.id,
            subject_id=doc.subject_id,
            kind=doc.kind,
            content=doc.content,
            answers=doc.answers,
            derived_tags=doc.derived_tags,
            derived_score=doc.derived_score,
            created_at=doc.created_at,
        )


class ContentList(BaseModel):
    """A page of anonymous content, newest first."""

    subject_id: str
    items: list[ContentItem]
    total: int


class DisplayEmailLookup(BaseModel):
    """Request for the submitter's own responses."""

    model_config = ConfigDict(extra="forbid")

    display_email: str

    @field_validator("display_email")
    @classmethod
    def validate_display_email(cls, v: str) -> str:
        return normalize_display_email(v)


class DisplayEmailLookupResult(BaseModel):
    """Responses carrying the requested display email."""

    items: list[ContentItem]
