"""
Staleness-aware cache for summarizer output.

Summaries are expensive and rate limited, so each one is stored together
with a fingerprint of the inputs it was computed from. A request whose
inputs still match the fingerprint is served from the cache; otherwise the
summary is recomputed. A failed recomputation never replaces a good entry.
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Sequence

import structlog

from core.config import settings
from core.exceptions import AmbiguousWrite, StoreUnavailable, SummarizerUnavailable
from models.documents import AnalysisKind, AnalysisPayload, CacheDocument
from repositories.analysis_cache_repository import AnalysisCacheRepository
from services.summarizer import SummarizerClient, SummaryErr

logger = structlog.get_logger(__name__)

ComputeFn = Callable[[Sequence[str]], Awaitable[AnalysisPayload]]
InputLoader = Callable[[], Awaitable[Sequence[str]]]

PLACEHOLDER_PAYLOAD = AnalysisPayload(
    summary="A summary is not available right now. Please try again later.",
)


def count_fingerprint(count: int) -> str:
    return str(count)


def fingerprint_inputs(inputs: Sequence[str], mode: Optional[str] = None) -> str:
    """
    Cheap proxy for "the inputs changed".

    "count" uses the number of inputs, so an edit that keeps the count is
    not detected. "content" hashes every input.
    """
    mode = mode or settings.ANALYSIS_FINGERPRINT
    if mode == "content":
        digest = hashlib.sha256()
        for item in inputs:
            encoded = item.encode("utf-8")
            digest.update(len(encoded).to_bytes(8, "big"))
            digest.update(encoded)
        return f"sha256:{digest.hexdigest()}"
    return count_fingerprint(len(inputs))


def preloaded(inputs: Sequence[str]) -> InputLoader:
    async def load() -> Sequence[str]:
        return inputs

    return load


@dataclass
class AnalysisResult:
    """Payload handed to callers along with how fresh it is."""

    payload: AnalysisPayload
    fingerprint: Optional[str] = None
    computed_at: Optional[datetime] = None
    stale: bool = False
    from_cache: bool = False
    placeholder: bool = False

    @classmethod
    def from_entry(cls, entry: CacheDocument, *, stale: bool) -> "AnalysisResult":
        return cls(
            payload=entry.payload,
            fingerprint=entry.fingerprint,
            computed_at=entry.computed_at,
            stale=stale,
            from_cache=True,
        )


def summarizer_compute(summarizer: SummarizerClient, kind: AnalysisKind) -> ComputeFn:
    """Adapt the summarizer's tagged result into a compute function that raises on failure."""

    async def compute(texts: Sequence[str]) -> AnalysisPayload:
        result = await summarizer.summarize(texts, kind)
        if isinstance(result, SummaryErr):
            raise SummarizerUnavailable(result.reason)
        return result.payload

    return compute


class AnalysisCache:
    """Read-through cache over AnalysisCacheRepository."""

    def __init__(self, repository: AnalysisCacheRepository, fingerprint_mode: Optional[str] = None):
        self.repository = repository
        self.fingerprint_mode = fingerprint_mode

    @property
    def mode(self) -> str:
        return self.fingerprint_mode or settings.ANALYSIS_FINGERPRINT

    async def read(self, subject_id: str, kind: AnalysisKind) -> Optional[CacheDocument]:
        return await self.repository.read(subject_id, kind)

    async def write(
        self, subject_id: str, kind: AnalysisKind, payload: AnalysisPayload, fingerprint: str
    ) -> CacheDocument:
        return await self.repository.write(subject_id, kind, payload, fingerprint)

    async def invalidate(self, subject_id: str, kind: AnalysisKind) -> bool:
        """Force the next get_or_compute to recompute. The payload stays readable."""
        return await self.repository.invalidate(subject_id, kind)

    def fingerprint(self, inputs: Sequence[str]) -> str:
        return fingerprint_inputs(inputs, self.mode)

    async def status(
        self,
        subject_id: str,
        kind: AnalysisKind,
        current_inputs: Optional[Sequence[str]] = None,
        *,
        current_fingerprint: Optional[str] = None,
    ) -> Optional[AnalysisResult]:
        """
        Cached entry and whether it is stale, without calling the summarizer.

        Without current inputs or a current fingerprint only an explicit
        invalidation counts as stale.
        """
        entry = await self.read(subject_id, kind)
        if entry is None:
            return None
        if current_inputs is not None:
            current_fingerprint = self.fingerprint(current_inputs)
        stale = entry.invalidated
        if current_fingerprint is not None:
            stale = stale or entry.fingerprint != current_fingerprint
        return AnalysisResult.from_entry(entry, stale=stale)

    async def get_or_compute(
        self,
        subject_id: str,
        kind: AnalysisKind,
        current_inputs: Sequence[str],
        compute_fn: ComputeFn,
    ) -> AnalysisResult:
        """
        Return a fresh payload, calling compute_fn(current_inputs) only when
        the cache is stale.

        On compute failure the previous entry is returned with stale=True,
        or a placeholder if there is none. Failures are never cached.
        """
        return await self.get_or_compute_lazy(
            subject_id, kind, self.fingerprint(current_inputs), preloaded(current_inputs), compute_fn
        )

    async def get_or_compute_lazy(
        self,
        subject_id: str,
        kind: AnalysisKind,
        current_fingerprint: str,
        load_inputs: InputLoader,
        compute_fn: ComputeFn,
    ) -> AnalysisResult:
        """
        Like get_or_compute, for callers that can fingerprint without loading
        every input.

        load_inputs is awaited only on a miss. The entry is written with the
        fingerprint of the inputs actually summarized.
        """
        kind = AnalysisKind(kind)
        entry = await self.read(subject_id, kind)

        if entry is not None and not entry.invalidated and entry.fingerprint == current_fingerprint:
            logger.debug("analysis_cache_hit", subject_id=subject_id, kind=kind.value)
            return AnalysisResult.from_entry(entry, stale=False)

        logger.info(
            "analysis_cache_miss",
            subject_id=subject_id,
            kind=kind.value,
            cached_fingerprint=entry.fingerprint if entry else None,
            current_fingerprint=current_fingerprint,
        )

        inputs = await load_inputs()
        fingerprint = self.fingerprint(inputs)

        try:
            payload = await compute_fn(inputs)
        except SummarizerUnavailable as e:
            logger.warning("analysis_compute_failed", subject_id=subject_id, kind=kind.value, reason=e.reason)
            if entry is not None:
                return AnalysisResult.from_entry(entry, stale=True)
            return AnalysisResult(payload=PLACEHOLDER_PAYLOAD.model_copy(deep=True), placeholder=True)

        try:
            written = await self.write(subject_id, kind, payload, fingerprint)
        except (StoreUnavailable, AmbiguousWrite) as e:
            # The summary is still good; the next request recomputes it
            logger.warning("analysis_cache_write_failed", subject_id=subject_id, kind=kind.value, error=str(e))
            return AnalysisResult(payload=payload, fingerprint=fingerprint)

        return AnalysisResult(payload=written.payload, fingerprint=written.fingerprint, computed_at=written.computed_at)
