"""
Domain exceptions for the feedback engine.

Expected outcomes (a visitor who already voted) are not exceptions; see
VoteOutcome. These cover the failure modes callers must react to.
"""


class FeedbackEngineError(Exception):
    """Base class for feedback engine failures."""

    code = "feedback_error"

    def __init__(self, message: str | None = None, *, detail: dict | None = None):
        self.message = message or (self.__doc__ or self.code).strip()
        self.detail = detail or {}
        super().__init__(self.message)


class StoreUnavailable(FeedbackEngineError):
    """The document store could not be reached."""

    code = "store_unavailable"


class AmbiguousWrite(FeedbackEngineError):
    """A write may or may not have been applied. Check before resubmitting."""

    code = "ambiguous_write"


class DocumentExists(FeedbackEngineError):
    """A document with this key already exists."""

    code = "document_exists"


class ConcurrencyConflict(FeedbackEngineError):
    """The document changed underneath a conditional write."""

    code = "conflict"


class SummarizerUnavailable(FeedbackEngineError):
    """The summarizer is unconfigured, rate limited or unreachable."""

    code = "summarizer_unavailable"

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message or f"Summarizer unavailable: {reason}", detail={"reason": reason})
        self.reason = reason


class DisplayEmailDisabled(FeedbackEngineError):
    """Display-email lookup is disabled on this deployment."""

    code = "display_email_disabled"
