"""
Vote ledger schemas.

The ledger only ever reports whether a visitor acted, never what they sent.
"""

from pydantic import BaseModel

from models.documents import VoteOutcome


class VoteStatus(BaseModel):
    """Check if a visitor has acted on a subject (without revealing content)."""

    subject_id: str
    has_voted: bool


class VoteResponse(BaseModel):
    """Response after recording a vote."""

    subject_id: str
    outcome: VoteOutcome
    message: str


class VoteCount(BaseModel):
    """Number of distinct visitors who acted on a subject."""

    subject_id: str
    count: int
