"""
Pytest fixtures for Sia Feedback backend tests.
"""

import json
import os
import uuid
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("SUMMARIZER_API_KEY", "")
os.environ.setdefault("STORE_RETRY_BACKOFF_SECONDS", "0")

SUMMARIZER_TEST_URL = "https://summarizer.test/v1/chat/completions"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
def memory_store() -> Any:
    """Fresh in-memory document store."""
    from db.memory_store import InMemoryDocumentStore

    return InMemoryDocumentStore()


@pytest.fixture
def visitor_id() -> str:
    """A well-formed visitor id."""
    return f"v_{uuid.uuid4()}"


@pytest.fixture
def visitor_headers(visitor_id: str) -> dict[str, str]:
    return {"X-Visitor-ID": visitor_id}


def completion(content: str, status_code: int = 200) -> httpx.Response:
    """Chat-completions response carrying the given reply text."""
    return httpx.Response(
        status_code,
        json={"choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}]},
    )


@pytest.fixture
def completion_response() -> Callable[..., httpx.Response]:
    return completion


@pytest.fixture
def summarizer_factory() -> Callable[..., Any]:
    """
    Build a SummarizerClient whose HTTP calls go to a handler.

    The handler receives each httpx.Request; requests are also recorded on
    the returned client's `requests` attribute.
    """
    from services.summarizer import SummarizerClient

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> SummarizerClient:
        requests: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        client = SummarizerClient(http_client, api_url=SUMMARIZER_TEST_URL, api_key="test-key")
        client.requests = requests
        return client

    return factory


@pytest.fixture
def json_reply() -> Callable[[dict], httpx.Response]:
    """Summarizer handler result replying with a JSON object wrapped in prose."""

    def reply(payload: dict) -> httpx.Response:
        return completion(f"Here is the analysis:\n{json.dumps(payload)}\nThanks!")

    return reply


@pytest.fixture
def summarizer() -> Any:
    """Unconfigured summarizer: every call falls back without network I/O."""
    from services.summarizer import SummarizerClient

    return SummarizerClient(api_key="")


@pytest.fixture
async def app(memory_store: Any, summarizer: Any) -> AsyncGenerator[Any, None]:
    """FastAPI application wired to the in-memory store."""
    from api.deps import get_summarizer_client
    from db.session import set_store
    from main import app as fastapi_app

    set_store(memory_store)
    fastapi_app.dependency_overrides[get_summarizer_client] = lambda: summarizer
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()
    set_store(None)


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def identity(visitor_id: str) -> Any:
    """Client identity holding the test visitor id."""
    from sdk.identity import IdentityContext, MemoryIdentityStorage

    return IdentityContext(MemoryIdentityStorage(visitor_id))


@pytest.fixture
async def feedback_client(app: Any, identity: Any) -> AsyncGenerator[Any, None]:
    """SDK client talking to the application in-process."""
    from sdk.client import FeedbackClient

    http_client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    async with FeedbackClient("http://test", identity, http_client=http_client) as sdk_client:
        yield sdk_client
    await http_client.aclose()
