"""
Summarizer client.

Talks to an OpenAI-compatible chat-completions endpoint (DeepSeek by default)
and turns its free-form replies into strictly typed results. The model is a
black box: every field it may leave out has a default, and anything that
cannot be parsed becomes a SummaryErr instead of an exception.
"""

import json
import re
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from core.config import settings
from core.exceptions import SummarizerUnavailable
from models.documents import AnalysisKind, AnalysisPayload

logger = structlog.get_logger(__name__)

# Failure reasons carried by SummaryErr
NOT_CONFIGURED = "not_configured"
RATE_LIMITED = "rate_limited"
UNAVAILABLE = "unavailable"
INVALID_RESPONSE = "invalid_response"

# Phrases that try to override the system prompt
_INJECTION_PATTERNS = [
    re.compile(r"ignore\s+(all\s+)?(previous|prior|above)\s+(instructions?|prompts?|context)", re.IGNORECASE),
    re.compile(r"disregard\s+(all\s+)?(previous|prior|above)\s+(instructions?|prompts?)", re.IGNORECASE),
    re.compile(r"forget\s+(all\s+)?(previous|prior|above)\s+(instructions?|prompts?)", re.IGNORECASE),
    re.compile(r"new\s+instructions?:", re.IGNORECASE),
    re.compile(r"system\s*:", re.IGNORECASE),
    re.compile(r"assistant\s*:", re.IGNORECASE),
    re.compile(r"\[INST\]", re.IGNORECASE),
    re.compile(r"\[/INST\]", re.IGNORECASE),
    re.compile(r"<\|im_start\|>", re.IGNORECASE),
    re.compile(r"<\|im_end\|>", re.IGNORECASE),
]

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

# camelCase keys the model sometimes answers with
_KEY_ALIASES = {
    "actionItems": "action_items",
    "recommendations": "action_items",
    "themeSentiments": "theme_sentiments",
    "sentimentScore": "sentiment_score",
    "averageSentiment": "sentiment_score",
    "riskLevel": "risk_level",
    "topics": "themes",
}

# Chat summaries describe sentiment in words
_SENTIMENT_WORDS = {
    "positive": 80,
    "neutral": 50,
    "concerned": 35,
    "distressed": 15,
}

EMPTY_SUMMARIES = {
    AnalysisKind.DASHBOARD_SUMMARY: "No responses to analyze yet.",
    AnalysisKind.SURVEY_THEMES: "No responses to analyze yet.",
    AnalysisKind.CHAT_SUMMARY: "No chat history available.",
}


def sanitize_prompt_input(text: Optional[str], max_length: int = 5000) -> str:
    """Truncate user text and neutralize prompt-injection phrases."""
    if not text:
        return ""
    sanitized = text[:max_length]
    for pattern in _INJECTION_PATTERNS:
        sanitized = pattern.sub("[filtered]", sanitized)
    return sanitized.strip()


# ============================================================================
# Result Types
# ============================================================================


@dataclass(frozen=True)
class SummaryOk:
    """Successful summary."""

    payload: AnalysisPayload


@dataclass(frozen=True)
class SummaryErr:
    """Summary could not be produced."""

    reason: str


SummaryResult = Union[SummaryOk, SummaryErr]


class SentimentResult(BaseModel):
    """Sentiment of a single piece of feedback."""

    score: int = Field(default=50, ge=0, le=100)
    tags: list[str] = Field(default_factory=lambda: ["Feedback"])
    summary: str = "Feedback received"

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v) -> int:
        try:
            return max(0, min(100, int(round(float(v)))))
        except (TypeError, ValueError):
            return 50

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v) -> list[str]:
        if not isinstance(v, list):
            return ["Feedback"]
        tags = [str(t).strip() for t in v if str(t).strip()]
        return tags[:4] or ["Feedback"]


NEUTRAL_SENTIMENT = SentimentResult()


# ============================================================================
# Response Parsing
# ============================================================================


def extract_json_object(content: str) -> dict:
    """
    Pull the JSON object out of a model reply.

    Raises:
        ValueError: If the reply holds no parsable object
    """
    match = _JSON_OBJECT_RE.search(content or "")
    if not match:
        raise ValueError("No JSON object found in response")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")
    return data


def normalize_payload(data: dict, item_count: int) -> AnalysisPayload:
    """Map a raw model object onto AnalysisPayload, filling defaults."""
    normalized: dict = {}
    for key, value in data.items():
        target = _KEY_ALIASES.get(key, key)
        # Prefer the snake_case key when both are present
        if target in normalized and key != target:
            continue
        normalized[target] = value

    sentiment = data.get("sentiment")
    if "sentiment_score" not in normalized and isinstance(sentiment, str):
        normalized["sentiment_score"] = _SENTIMENT_WORDS.get(sentiment.lower(), 50)

    normalized["item_count"] = item_count
    return AnalysisPayload.model_validate(normalized)


# ============================================================================
# Prompts
# ============================================================================

_SUMMARY_SYSTEM_PROMPT = (
    "You are an educational analytics expert. Summarize student feedback "
    "for course coordinators in a clear, actionable way."
)

_CHAT_SYSTEM_PROMPT = (
    "You are an educational counselor analyzing student chat conversations. "
    "Provide insights for course coordinators to better support students. "
    "Be empathetic, professional, and privacy-conscious."
)

_SENTIMENT_SYSTEM_PROMPT = (
    "You are a sentiment analysis expert for educational feedback. "
    "Analyze student responses with empathy and accuracy."
)


def _feedback_prompt(joined: str) -> str:
    return f"""Analyze these anonymous student feedback responses:

{joined}

Return ONLY a JSON object:
{{
  "summary": "<2-3 sentence executive summary of overall sentiment and key points>",
  "themes": [<top 3-5 recurring themes as simple strings>],
  "theme_sentiments": [{{"theme": "<theme>", "sentiment": <0-100>, "mentions": <count>}}],
  "sentiment_score": <0-100 overall sentiment>,
  "action_items": [<2-3 suggested actions>]
}}"""


def _chat_prompt(joined: str) -> str:
    return f"""Analyze this chat conversation between a student and an AI academic companion:

CONVERSATION TRANSCRIPT:
{joined}

Return ONLY a JSON object:
{{
  "summary": "<2-3 sentence summary of the conversation and the student's situation>",
  "themes": [<3-5 main topics discussed>],
  "sentiment": "<positive, neutral, concerned, or distressed>",
  "concerns": [<specific concerns or red flags, empty if none>],
  "action_items": [<2-3 recommendations for staff>],
  "risk_level": "<low, medium, or high>"
}}"""


# ============================================================================
# Client
# ============================================================================


class SummarizerClient:
    """
    Client for the text-generation endpoint.

    Pass an httpx.AsyncClient to share a connection pool or to inject a
    MockTransport in tests; otherwise one is created on first use.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        *,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        sentiment_timeout: Optional[float] = None,
    ):
        self._http_client = http_client
        self._owns_client = http_client is None
        self.api_url = api_url or settings.SUMMARIZER_API_URL
        self.api_key = api_key if api_key is not None else settings.SUMMARIZER_API_KEY
        self.model = model or settings.SUMMARIZER_MODEL
        self.timeout = timeout or settings.SUMMARIZER_TIMEOUT_SECONDS
        self.sentiment_timeout = sentiment_timeout or settings.SENTIMENT_TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_url)

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _complete(
        self, messages: list[dict[str, str]], max_tokens: int = 2048, timeout: Optional[float] = None
    ) -> str:
        """
        Run one chat completion and return the reply text.

        Raises:
            SummarizerUnavailable: With the reason the call failed
        """
        if not self.is_configured:
            raise SummarizerUnavailable(NOT_CONFIGURED)

        try:
            response = await self._get_client().post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": messages,
                    "temperature": 0.7,
                    "max_tokens": max_tokens,
                },
                timeout=timeout or self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("summarizer_request_failed", error=str(e))
            raise SummarizerUnavailable(UNAVAILABLE) from e

        if response.status_code == 429:
            logger.warning("summarizer_rate_limited")
            raise SummarizerUnavailable(RATE_LIMITED)
        if response.status_code >= 400:
            logger.warning("summarizer_error_status", status_code=response.status_code)
            raise SummarizerUnavailable(UNAVAILABLE)

        try:
            data = response.json()
            choice = data["choices"][0]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise SummarizerUnavailable(INVALID_RESPONSE) from e

        if choice.get("finish_reason") == "length":
            logger.warning("summarizer_response_truncated", max_tokens=max_tokens)

        return (choice.get("message") or {}).get("content") or ""

    async def summarize(self, texts: Sequence[str], kind: AnalysisKind) -> SummaryResult:
        """
        Summarize feedback texts or a chat transcript.

        Never raises for summarizer failures; they come back as SummaryErr.
        """
        kind = AnalysisKind(kind)
        max_chars = settings.SUMMARIZER_MAX_ITEM_CHARS
        max_items = settings.SUMMARIZER_MAX_ITEMS

        if kind == AnalysisKind.CHAT_SUMMARY:
            # Most recent turns carry the current state of the conversation
            selected = list(texts)[-max_items:]
        else:
            selected = list(texts)[:max_items]
        cleaned = [t for t in (sanitize_prompt_input(text, max_chars) for text in selected) if t]

        if not cleaned:
            payload = AnalysisPayload(summary=EMPTY_SUMMARIES[kind], item_count=0)
            if kind == AnalysisKind.CHAT_SUMMARY:
                payload.risk_level = "low"
            return SummaryOk(payload)

        if kind == AnalysisKind.CHAT_SUMMARY:
            messages = [
                {"role": "system", "content": _CHAT_SYSTEM_PROMPT},
                {"role": "user", "content": _chat_prompt("\n\n".join(cleaned))},
            ]
        else:
            messages = [
                {"role": "system", "content": _SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": _feedback_prompt("\n---\n".join(cleaned))},
            ]

        try:
            content = await self._complete(messages)
        except SummarizerUnavailable as e:
            return SummaryErr(e.reason)

        try:
            payload = normalize_payload(extract_json_object(content), item_count=len(texts))
        except (ValueError, ValidationError) as e:
            logger.warning("summarizer_invalid_response", kind=kind.value, error=str(e))
            return SummaryErr(INVALID_RESPONSE)

        logger.info("summary_generated", kind=kind.value, item_count=len(texts))
        return SummaryOk(payload)

    async def analyze_sentiment(self, text: str) -> SentimentResult:
        """Score one piece of feedback, falling back to neutral on any failure."""
        safe_text = sanitize_prompt_input(text, 2000)
        if not safe_text:
            return SentimentResult(tags=["Empty"], summary="No text provided")

        messages = [
            {"role": "system", "content": _SENTIMENT_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    f'Analyze the sentiment of this student feedback:\n\n"{safe_text}"\n\n'
                    "Return ONLY a JSON object with this exact format:\n"
                    '{"score": <0-100>, "tags": [<2-4 keyword tags>], "summary": "<one sentence>"}'
                ),
            },
        ]

        try:
            content = await self._complete(messages, max_tokens=512, timeout=self.sentiment_timeout)
            return SentimentResult.model_validate(extract_json_object(content))
        except SummarizerUnavailable as e:
            logger.info("sentiment_fallback", reason=e.reason)
        except (ValueError, ValidationError) as e:
            logger.warning("sentiment_fallback", reason=INVALID_RESPONSE, error=str(e))
        return NEUTRAL_SENTIMENT


# Global client instance
_summarizer: Optional[SummarizerClient] = None


def get_summarizer() -> SummarizerClient:
    """FastAPI dependency returning the shared summarizer client."""
    global _summarizer
    if _summarizer is None:
        _summarizer = SummarizerClient()
    return _summarizer


async def close_summarizer() -> None:
    """Close the shared summarizer client."""
    global _summarizer
    if _summarizer is not None:
        await _summarizer.close()
        _summarizer = None
