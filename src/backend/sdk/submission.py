"""
Anonymous survey submission.

A submission is three steps: a fast has_voted check, the content write
(without the visitor id) and the ledger write (without the content). The
ledger write is the real dedup point; a race between two devices can at
worst leave one orphaned response, never a second counted vote.

Once the content write has been issued the rest of the submission runs to
completion even if the caller is cancelled, so a persisted response is
always followed by its ledger record.
"""

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import structlog

from core.exceptions import AmbiguousWrite, StoreUnavailable
from models.documents import VoteOutcome
from sdk.client import FeedbackClient

logger = structlog.get_logger(__name__)

LEDGER_ATTEMPTS = 3
LEDGER_RETRY_SECONDS = 0.5

# Strong references to submissions still finishing after their caller left
_background_submissions: set[asyncio.Task] = set()


class SubmissionOutcome(str, Enum):
    """How a submission ended."""

    SUBMITTED = "submitted"
    ALREADY_VOTED = "already_voted"


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a submission and the id of the stored response, if any."""

    outcome: SubmissionOutcome
    record_id: Optional[str] = None
    idempotency_key: Optional[str] = None


async def _record_participation(client: FeedbackClient, subject_id: str) -> VoteOutcome:
    """
    Write the ledger record.

    Repeating it is harmless, the second create collides, so transient and
    ambiguous failures are retried here.
    """
    delay = LEDGER_RETRY_SECONDS
    for attempt in range(1, LEDGER_ATTEMPTS + 1):
        try:
            return await client.mark_voted(subject_id)
        except (StoreUnavailable, AmbiguousWrite) as e:
            if attempt == LEDGER_ATTEMPTS:
                logger.error("ledger_write_failed", subject_id=subject_id, attempts=attempt, error=str(e))
                raise
            logger.warning("ledger_write_retry", subject_id=subject_id, attempt=attempt)
            await asyncio.sleep(delay)
            delay *= 2
    raise StoreUnavailable("No ledger attempts were made")


async def _write_then_record(
    client: FeedbackClient,
    subject_id: str,
    content: str,
    answers: Optional[dict[str, Any]],
    display_email: Optional[str],
    idempotency_key: str,
) -> SubmissionResult:
    record_id = await client.submit_response(
        subject_id,
        content,
        answers=answers,
        display_email=display_email,
        idempotency_key=idempotency_key,
    )

    outcome = await _record_participation(client, subject_id)
    if outcome == VoteOutcome.ALREADY_VOTED:
        # Another device with the same identity won the race; the response stays, uncounted
        logger.info("submission_lost_ledger_race", subject_id=subject_id)
        return SubmissionResult(SubmissionOutcome.ALREADY_VOTED, record_id, idempotency_key)

    return SubmissionResult(SubmissionOutcome.SUBMITTED, record_id, idempotency_key)


def _log_background_failure(task: asyncio.Task) -> None:
    _background_submissions.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("submission_failed", error=str(error), error_type=type(error).__name__)


async def submit_survey(
    client: FeedbackClient,
    subject_id: str,
    content: str,
    *,
    answers: Optional[dict[str, Any]] = None,
    display_email: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> SubmissionResult:
    """
    Submit an anonymous survey response at most once per visitor.

    Pass the idempotency_key from a previous AmbiguousWrite to resubmit the
    same response without creating a duplicate.

    Raises:
        AmbiguousWrite: If the content write may have been applied. The
            exception's detail carries the idempotency_key to resubmit with.
        StoreUnavailable: If the service could not be reached
    """
    if await client.has_voted(subject_id):
        logger.info("submission_skipped_already_voted", subject_id=subject_id)
        return SubmissionResult(SubmissionOutcome.ALREADY_VOTED)

    key = idempotency_key or uuid.uuid4().hex

    task = asyncio.create_task(
        _write_then_record(client, subject_id, content, answers, display_email, key)
    )
    _background_submissions.add(task)
    task.add_done_callback(_log_background_failure)

    try:
        return await asyncio.shield(task)
    except AmbiguousWrite as e:
        e.detail["idempotency_key"] = key
        raise
