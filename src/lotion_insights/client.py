"""
Analysis client mapping one scoring call to a typed outcome.

The client never raises for per-unit problems: transport failures, timeouts,
rate limits and unparseable bodies are all returned as ``Outcome`` values.
"""

from __future__ import annotations

import typing as t
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx
import structlog
from pydantic import ValidationError

from lotion_insights.config import AnalyzerSettings, get_default_api_key
from lotion_insights.exceptions import TranscriptReviewError
from lotion_insights.extraction import extract_json_object
from lotion_insights.models import (
    REASON_TIMEOUT,
    REASON_UNPARSEABLE,
    Error,
    Ok,
    Outcome,
    RateLimited,
    TrafficLightAnalysis,
    Unit,
)

log = structlog.get_logger(__name__)

LEMUR_TASK_PATH = "/lemur/v3/generate/task"
RATE_LIMIT_STATUS_CODES = frozenset({429})

SENTENCE_PROMPT_TEMPLATE = """You are an expert sales coach analyzing a car dealership sales conversation. For the following sentence and its context, provide a detailed, actionable review in this JSON format:

{{
  "red_flags": [ {{ "title": string, "details": string }} ],
  "missed_opportunities": [ string ],
  "coaching_suggestion": string,
  "ai_insight": string
}}

- If there are any major sales mistakes, list them as red_flags (with a short title and details).
- If there are any missed opportunities (e.g., not handling objections, not setting next steps, not tying features to pain points), list them in missed_opportunities.
- For each red flag or missed opportunity, provide a specific, actionable coaching_suggestion tailored to this moment.
- If the sentence is neutral or positive, provide a concise ai_insight.
- If there is nothing significant to note, return an empty object {{}}.

Focus on:
- Objection handling (e.g., price, competitor, timing)
- Next steps and closing
- Needs assessment and value proposition
- Rapport building and information gathering
- Tying features to pain points

Be specific, concise, and actionable. Do not return generic or vague feedback.

Sentence: "{sentence}"
"""

REVIEW_PROMPT = """You are an expert sales coach analyzing a car dealership sales conversation. Review the transcript and identify the most important sentences that need analysis. For each selected sentence, provide a detailed, actionable review in this JSON format:

{
  "sentences": [
    {
      "text": string,
      "traffic_light": "red" | "yellow" | "green",
      "analysis": {
        "red_flags": [ { "title": string, "details": string } ],
        "missed_opportunities": [ string ],
        "coaching_suggestion": string,
        "ai_insight": string
      }
    }
  ],
  "overall_analysis": {
    "strengths": [ string ],
    "areas_for_improvement": [ string ],
    "key_insights": [ string ],
    "recommendations": [ string ]
  }
}

Guidelines for selecting sentences:
- Focus on critical moments in the sales conversation
- Include sentences that demonstrate good or bad sales techniques
- Select sentences where objections are handled or missed
- Include key moments of rapport building or missed opportunities
- Choose sentences that show effective or ineffective needs assessment
- Include moments where features are tied to pain points or where this connection is missed
- Quote each selected sentence exactly as it appears in the transcript

For each selected sentence:
- Assign a traffic light rating (red, yellow, green) based on the quality of the sales interaction
- If there are any major sales mistakes, list them as red_flags (with a short title and details)
- If there are any missed opportunities, list them in missed_opportunities
- Provide a specific, actionable coaching_suggestion tailored to this moment
- If the sentence is neutral or positive, provide a concise ai_insight

For the overall analysis:
- List key strengths in the conversation
- Identify areas for improvement
- Provide key insights about the sales approach
- Give specific recommendations for future conversations

Be specific, concise, and actionable. Do not return generic or vague feedback."""


class AnalysisClient(t.Protocol):
    """
    Scoring boundary used by the retry controller.
    """

    async def analyze(self, unit: Unit) -> Outcome: ...


def build_sentence_prompt(*, sentence: str) -> str:
    return SENTENCE_PROMPT_TEMPLATE.format(sentence=sentence)


def parse_retry_after(*, value: str | None, default: float) -> float:
    """
    Convert a ``Retry-After`` header value into seconds.

    Parameters
    ----------
    value : str | None
        Header value, either delta-seconds or an HTTP date.
    default : float
        Fallback when the header is absent or unreadable.

    Returns
    -------
    float
        Non-negative wait in seconds.
    """
    if value is None or not value.strip():
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_at - datetime.now(tz=timezone.utc)).total_seconds())


def _answer_text(*, body: t.Any, response: httpx.Response) -> str:
    """LeMUR wraps the model answer in ``response``; fall back to the raw body."""
    text = body.get("response") if isinstance(body, dict) else None
    return text if isinstance(text, str) else response.text


def _rate_limit_hint(*, body: t.Any) -> tuple[bool, float | None]:
    """
    Detect a structured rate-limit marker in an error body.

    Returns
    -------
    tuple[bool, float | None]
        Whether the body signals rate limiting, and the advised wait if any.
    """
    if not isinstance(body, dict):
        return False, None
    error = body.get("error")
    retry_after = body.get("retry_after")
    if isinstance(error, dict):
        kind = str(error.get("type") or error.get("code") or "")
        retry_after = error.get("retry_after", retry_after)
        limited = "rate_limit" in kind or "rate limit" in str(error.get("message", "")).lower()
    else:
        limited = isinstance(error, str) and "rate limit" in error.lower()
    if not limited:
        return False, None
    try:
        return True, float(retry_after) if retry_after is not None else None
    except (TypeError, ValueError):
        return True, None


class LemurAnalysisClient:
    """
    Score transcript sentences through the AssemblyAI LeMUR task endpoint.

    Parameters
    ----------
    api_key : str | None
        AssemblyAI API key. Read from ``ASSEMBLYAI_API_KEY`` when omitted.
    settings : AnalyzerSettings | None
        Model, timeout and fallback wait configuration.
    client_factory : typing.Callable[[], httpx.AsyncClient] | None
        Factory for the HTTP client used per call.
    """

    def __init__(
        self,
        api_key: str | None = None,
        settings: AnalyzerSettings | None = None,
        client_factory: t.Callable[[], httpx.AsyncClient] | None = None,
    ):
        self._api_key = api_key or get_default_api_key()
        self._settings = settings or AnalyzerSettings()
        self._client_factory: t.Callable[[], httpx.AsyncClient] = client_factory or (
            lambda: httpx.AsyncClient(timeout=self._settings.request_timeout_seconds)
        )

    @property
    def url(self) -> str:
        return f"{self._settings.assemblyai_base_url.rstrip('/')}{LEMUR_TASK_PATH}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": self._api_key,
            "Content-Type": "application/json",
        }

    def build_payload(self, unit: Unit) -> dict[str, t.Any]:
        payload: dict[str, t.Any] = {
            "final_model": self._settings.final_model,
            "prompt": build_sentence_prompt(sentence=unit.payload),
            "max_output_size": self._settings.max_output_size,
            "temperature": self._settings.temperature,
        }
        if unit.correlation_id:
            payload["transcript_ids"] = [unit.correlation_id]
        return payload

    async def analyze(self, unit: Unit) -> Outcome:
        """
        Issue one scoring request for ``unit``.

        Parameters
        ----------
        unit : Unit
            Sentence to score.

        Returns
        -------
        Outcome
            ``Ok`` with the extracted object, ``RateLimited`` with the advised
            wait, or ``Error`` with a short diagnostic.
        """
        try:
            async with self._client_factory() as client:
                response = await client.post(
                    url=self.url,
                    headers=self._headers(),
                    json=self.build_payload(unit),
                )
        except httpx.TimeoutException:
            log.warning(event="Scoring request timed out", index=unit.index)
            return Error(message=REASON_TIMEOUT)
        except httpx.TransportError as error:
            log.warning(
                event="Scoring request failed", index=unit.index, error=str(object=error)
            )
            return Error(message=f"network error: {error.__class__.__name__}")
        return self.map_response(unit=unit, response=response)

    def map_response(self, *, unit: Unit, response: httpx.Response) -> Outcome:
        default_wait = self._settings.default_retry_after_seconds
        try:
            body: t.Any = response.json()
        except ValueError:
            body = None

        limited, body_wait = _rate_limit_hint(body=body)
        if response.status_code in RATE_LIMIT_STATUS_CODES or limited:
            header_wait = response.headers.get("retry-after")
            if header_wait is not None:
                wait = parse_retry_after(value=header_wait, default=default_wait)
            else:
                wait = body_wait if body_wait is not None else default_wait
            log.info(
                event="Scoring request rate limited",
                index=unit.index,
                status_code=response.status_code,
                retry_after=wait,
            )
            return RateLimited(retry_after_seconds=wait)

        if response.is_error:
            log.warning(
                event="Scoring request rejected",
                index=unit.index,
                status_code=response.status_code,
            )
            return Error(message=f"HTTP {response.status_code}")

        extracted = extract_json_object(_answer_text(body=body, response=response))
        if extracted is None:
            log.warning(event="Scoring response had no JSON object", index=unit.index)
            return Error(message=REASON_UNPARSEABLE)
        log.debug(event="Scoring request succeeded", index=unit.index)
        return Ok(payload=extracted)

    def build_review_payload(self, transcript_id: str) -> dict[str, t.Any]:
        return {
            "final_model": self._settings.final_model,
            "prompt": REVIEW_PROMPT,
            "transcript_ids": [transcript_id],
            "max_output_size": self._settings.review_max_output_size,
        }

    async def review_transcript(self, transcript_id: str) -> TrafficLightAnalysis:
        """
        Rate the key sentences of a whole transcript in a single LeMUR call.

        Parameters
        ----------
        transcript_id : str
            Completed AssemblyAI transcript.

        Returns
        -------
        TrafficLightAnalysis
            Rated sentences and the overall analysis.

        Raises
        ------
        TranscriptReviewError
            If the request fails, is rejected or rate limited, or the answer
            holds no readable review.
        """
        try:
            async with self._client_factory() as client:
                response = await client.post(
                    url=self.url,
                    headers=self._headers(),
                    json=self.build_review_payload(transcript_id),
                )
        except httpx.HTTPError as error:
            raise TranscriptReviewError(
                f"Transcript review request failed: {error.__class__.__name__}"
            ) from error

        if response.is_error:
            raise TranscriptReviewError(
                f"Transcript review rejected with HTTP {response.status_code}"
            )
        try:
            body: t.Any = response.json()
        except ValueError:
            body = None
        extracted = extract_json_object(_answer_text(body=body, response=response))
        if extracted is None:
            raise TranscriptReviewError(f"Transcript review: {REASON_UNPARSEABLE}")
        try:
            analysis = TrafficLightAnalysis.model_validate(extracted)
        except ValidationError as error:
            raise TranscriptReviewError(
                f"Transcript review has an unexpected shape: {error.error_count()} error(s)"
            ) from error
        log.info(
            event="Transcript reviewed",
            transcript_id=transcript_id,
            rated_sentences=len(analysis.sentences),
        )
        return analysis
