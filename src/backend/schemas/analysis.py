"""
Analysis cache schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models.documents import AnalysisKind, AnalysisPayload
from services.analysis_cache import AnalysisResult


class AnalysisInputs(BaseModel):
    """
    Inputs for analyses whose source data is held elsewhere.

    Chat transcripts are not stored by this service, so chat summaries are
    computed from texts supplied by the caller.
    """

    model_config = ConfigDict(extra="forbid")

    texts: Optional[list[str]] = Field(None, max_length=500)


class AnalysisResponse(BaseModel):
    """Analysis payload with its freshness flags."""

    subject_id: str
    kind: AnalysisKind
    payload: Optional[AnalysisPayload] = None
    fingerprint: Optional[str] = None
    computed_at: Optional[datetime] = None
    stale: bool = False
    from_cache: bool = False
    placeholder: bool = False
    cached: bool = Field(True, description="False when nothing has been computed yet")

    @classmethod
    def from_result(
        cls, subject_id: str, kind: AnalysisKind, result: Optional[AnalysisResult]
    ) -> "AnalysisResponse":
        if result is None:
            return cls(subject_id=subject_id, kind=kind, stale=True, cached=False)
        return cls(
            subject_id=subject_id,
            kind=kind,
            payload=result.payload,
            fingerprint=result.fingerprint,
            computed_at=result.computed_at,
            stale=result.stale,
            from_cache=result.from_cache,
            placeholder=result.placeholder,
        )


class InvalidateResponse(BaseModel):
    """Result of invalidating a cache entry."""

    subject_id: str
    kind: AnalysisKind
    invalidated: bool
