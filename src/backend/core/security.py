"""Identifier utilities for the anonymous feedback engine.

Visitor identifiers are pseudonymous and only ever used as key components of
vote and like records. Content records never carry them.
"""

import re
import uuid

VISITOR_ID_PREFIX = "v_"

# Request header carrying the visitor id on ledger and like routes
VISITOR_HEADER = "X-Visitor-ID"

# Namespace for deterministic content record ids derived from idempotency keys
CONTENT_ID_NAMESPACE = uuid.UUID("6f1c2a9e-4b1d-4c3e-9a57-0d7f5e2b8c41")

# Visitor ids carry no underscore after the prefix, so "<subject>_<visitor>"
# splits unambiguously on the last "_v_".
_VISITOR_ID_RE = re.compile(r"^v_[A-Za-z0-9-]{8,64}$")

# Cosmos DB forbids '/', '\', '?' and '#' in ids
_SUBJECT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def generate_visitor_id() -> str:
    """Generate a new random visitor identifier."""
    return f"{VISITOR_ID_PREFIX}{uuid.uuid4()}"


def generate_session_visitor_id() -> str:
    """Generate a visitor identifier that is only meant to live for one session."""
    return f"{VISITOR_ID_PREFIX}s-{uuid.uuid4().hex}"


def is_valid_visitor_id(value: str | None) -> bool:
    """Check that a visitor id has the expected shape."""
    return bool(value) and bool(_VISITOR_ID_RE.match(value))


def is_valid_subject_id(value: str | None) -> bool:
    """Check that a subject, post or wall id is safe to use as a document key."""
    return bool(value) and bool(_SUBJECT_ID_RE.match(value))


def vote_key(subject_id: str, visitor_id: str) -> str:
    """
    Composite storage key of a vote record.

    The key itself is the deduplication mechanism: creating a second record
    for the same pair collides on the id.
    """
    return f"{subject_id}_{visitor_id}"


def cache_key(subject_id: str, kind: str) -> str:
    """Storage key of an analysis cache entry."""
    return f"{subject_id}_{kind}"


def content_record_id(subject_id: str, idempotency_key: str | None = None) -> str:
    """
    Build the id of a new content record.

    Without an idempotency key the id is random. With one, the id is derived
    from subject and key so a resubmission lands on the same record.
    """
    if idempotency_key:
        return str(uuid.uuid5(CONTENT_ID_NAMESPACE, f"{subject_id}:{idempotency_key}"))
    return str(uuid.uuid4())


def normalize_display_email(email: str) -> str:
    """Lower-case and validate a user-volunteered display email."""
    normalized = email.strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise ValueError("Invalid email address")
    return normalized
