"""
HTTP client for the feedback API.

Maps transport failures and error responses onto the engine's exception
types. Reads are retried; writes never are, since a write whose response
was lost may already have been applied.
"""

from typing import Any, Optional

import httpx
import structlog

from core.exceptions import AmbiguousWrite, ConcurrencyConflict, DisplayEmailDisabled, StoreUnavailable
from core.security import VISITOR_HEADER
from db.retry import with_read_retries
from models.documents import AnalysisKind, VoteOutcome
from sdk.feed import SnapshotFeed, VoteCountSnapshot, WallFeed
from sdk.identity import IdentityContext

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"
# Must exceed the server's SUMMARIZER_TIMEOUT_SECONDS
DEFAULT_TIMEOUT_SECONDS = 45.0
DEFAULT_WALL_ID = "community"


class FeedbackAPIError(Exception):
    """Error response the client has no specific mapping for."""

    def __init__(self, status_code: int, detail: Any = None, code: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail
        self.code = code
        super().__init__(f"HTTP {status_code}: {detail}")


def _error_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {"detail": response.text}
    return body if isinstance(body, dict) else {"detail": body}


def raise_for_response(response: httpx.Response, *, write: bool) -> None:
    """
    Raise the matching exception for an error response.

    A 504 on a read is a plain outage; only writes can be ambiguous.
    """
    if response.is_success:
        return

    body = _error_body(response)
    detail = body.get("detail")
    code = body.get("code")

    if response.status_code == 503:
        raise StoreUnavailable(str(detail or "Service unavailable"))
    if response.status_code == 504:
        if write:
            raise AmbiguousWrite(str(detail or "Write outcome unknown"))
        raise StoreUnavailable(str(detail or "Gateway timeout"))
    if response.status_code == 409 and code == ConcurrencyConflict.code:
        raise ConcurrencyConflict(str(detail))
    if response.status_code == 403 and code == DisplayEmailDisabled.code:
        raise DisplayEmailDisabled(str(detail))
    raise FeedbackAPIError(response.status_code, detail, code)


class FeedbackClient:
    """
    Async client for the feedback API.

    The visitor id is attached only to ledger and like requests. Content
    requests go out without it.

    Usage:
        identity = IdentityContext()
        async with FeedbackClient("https://feedback.example.edu", identity) as client:
            if not await client.has_voted("s1"):
                ...
    """

    def __init__(
        self,
        base_url: str,
        identity: IdentityContext,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.identity = identity
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "FeedbackClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _visitor_headers(self) -> dict[str, str]:
        return {VISITOR_HEADER: self.identity.get_visitor_id()}

    # ========================================================================
    # Transport
    # ========================================================================

    async def _read(self, path: str, *, headers: Optional[dict] = None, params: Optional[dict] = None) -> Any:
        async def attempt() -> Any:
            try:
                response = await self._http.get(f"{API_PREFIX}{path}", headers=headers, params=params)
            except httpx.TransportError as e:
                raise StoreUnavailable(f"Request failed: {e}") from e
            raise_for_response(response, write=False)
            return response.json()

        return await with_read_retries(attempt)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[dict] = None,
        json: Any = None,
        write: bool = True,
    ) -> httpx.Response:
        """
        Send a POST or DELETE. Returns the response so callers can inspect expected 409s.

        Requests with write=False are safe to repeat, so any transport failure
        on them is reported as StoreUnavailable.

        Raises:
            StoreUnavailable: If the request never reached the server
            AmbiguousWrite: If a write may have been applied
        """
        try:
            response = await self._http.request(method, f"{API_PREFIX}{path}", headers=headers, json=json)
        except (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout) as e:
            raise StoreUnavailable(f"Could not reach the server: {e}") from e
        except httpx.TransportError as e:
            if not write:
                raise StoreUnavailable(f"Request failed: {e}") from e
            logger.warning("write_outcome_unknown", method=method, path=path, error_type=type(e).__name__)
            raise AmbiguousWrite() from e
        return response

    # ========================================================================
    # Vote Ledger
    # ========================================================================

    async def has_voted(self, subject_id: str) -> bool:
        data = await self._read(f"/votes/{subject_id}", headers=self._visitor_headers())
        return bool(data["has_voted"])

    async def mark_voted(self, subject_id: str) -> VoteOutcome:
        """Record participation. Already voted is an outcome, not an error."""
        response = await self._send("POST", f"/votes/{subject_id}", headers=self._visitor_headers())
        if response.status_code == 409 and _error_body(response).get("code") == VoteOutcome.ALREADY_VOTED.value:
            return VoteOutcome.ALREADY_VOTED
        raise_for_response(response, write=True)
        return VoteOutcome(response.json()["outcome"])

    async def count_votes(self, subject_id: str) -> int:
        data = await self._read(f"/votes/{subject_id}/count")
        return int(data["count"])

    def stream_vote_count(self, subject_id: str) -> SnapshotFeed[VoteCountSnapshot]:
        """Live participation count. Use as an async context manager."""
        url = f"{API_PREFIX}/votes/{subject_id}/count/stream"
        return SnapshotFeed(self._http, url, VoteCountSnapshot.from_event)

    # ========================================================================
    # Anonymous Content
    # ========================================================================

    async def submit_response(
        self,
        subject_id: str,
        content: str,
        *,
        answers: Optional[dict[str, Any]] = None,
        display_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """Store a survey response and return its id. Sent without the visitor id."""
        body: dict[str, Any] = {"content": content, "answers": answers or {}}
        if display_email:
            body["display_email"] = display_email
        if idempotency_key:
            body["idempotency_key"] = idempotency_key

        response = await self._send("POST", f"/surveys/{subject_id}/responses", json=body)
        raise_for_response(response, write=True)
        return response.json()["id"]

    async def list_responses(self, subject_id: str, limit: Optional[int] = None) -> list[dict]:
        params = {"limit": limit} if limit else None
        data = await self._read(f"/surveys/{subject_id}/responses", params=params)
        return data["items"]

    def stream_responses(self, subject_id: str, limit: int = 50) -> WallFeed:
        """Live feed of a survey's responses. Use as an async context manager."""
        url = f"{API_PREFIX}/surveys/{subject_id}/responses/stream"
        return WallFeed(self._http, url, params={"limit": limit})

    async def lookup_own_responses(self, display_email: str) -> list[dict]:
        response = await self._send(
            "POST", "/responses/lookup", json={"display_email": display_email}, write=False
        )
        raise_for_response(response, write=False)
        return response.json()["items"]

    async def submit_wall_post(
        self, content: str, *, wall_id: str = DEFAULT_WALL_ID, idempotency_key: Optional[str] = None
    ) -> str:
        body: dict[str, Any] = {"content": content}
        if idempotency_key:
            body["idempotency_key"] = idempotency_key
        response = await self._send("POST", f"/wall/{wall_id}/posts", json=body)
        raise_for_response(response, write=True)
        return response.json()["id"]

    async def list_wall_posts(self, wall_id: str = DEFAULT_WALL_ID, limit: Optional[int] = None) -> list[dict]:
        params = {"limit": limit} if limit else None
        data = await self._read(f"/wall/{wall_id}/posts", params=params)
        return data["items"]

    def stream_wall(self, wall_id: str = DEFAULT_WALL_ID, limit: int = 50) -> WallFeed:
        """Live wall feed. Use as an async context manager."""
        return WallFeed(self._http, f"{API_PREFIX}/wall/{wall_id}/stream", params={"limit": limit})

    # ========================================================================
    # Likes
    # ========================================================================

    async def like_state(self, post_id: str) -> dict:
        return await self._read(f"/likes/{post_id}", headers=self._visitor_headers())

    async def toggle_like(self, post_id: str) -> dict:
        response = await self._send("POST", f"/likes/{post_id}/toggle", headers=self._visitor_headers())
        raise_for_response(response, write=True)
        return response.json()

    async def set_liked(self, post_id: str, liked: bool) -> dict:
        """Desired-state like. Safe to repeat after an ambiguous failure."""
        method = "PUT" if liked else "DELETE"
        response = await self._send(method, f"/likes/{post_id}", headers=self._visitor_headers())
        raise_for_response(response, write=True)
        return response.json()

    # ========================================================================
    # Analysis
    # ========================================================================

    async def analysis_status(self, kind: AnalysisKind, subject_id: str) -> dict:
        return await self._read(f"/analysis/{AnalysisKind(kind).value}/{subject_id}")

    async def analyze(self, kind: AnalysisKind, subject_id: str, texts: Optional[list[str]] = None) -> dict:
        """Cached analysis, recomputed server-side when its inputs changed."""
        body = {"texts": texts} if texts is not None else None
        response = await self._send(
            "POST", f"/analysis/{AnalysisKind(kind).value}/{subject_id}", json=body, write=False
        )
        raise_for_response(response, write=False)
        return response.json()

    async def invalidate_analysis(self, kind: AnalysisKind, subject_id: str) -> bool:
        response = await self._send("POST", f"/analysis/{AnalysisKind(kind).value}/{subject_id}/invalidate")
        raise_for_response(response, write=False)
        return bool(response.json()["invalidated"])

    def stream_analysis(self, kind: AnalysisKind, subject_id: str) -> SnapshotFeed[dict]:
        """
        Cached analysis pushed whenever it is recomputed or invalidated.

        Each snapshot has the shape returned by analysis_status.
        """
        url = f"{API_PREFIX}/analysis/{AnalysisKind(kind).value}/{subject_id}/stream"
        return SnapshotFeed(self._http, url, dict)
