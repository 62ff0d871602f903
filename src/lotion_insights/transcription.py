"""
AssemblyAI transcription: upload, submit, wait for completion, fetch sentences.
"""

from __future__ import annotations

import typing as t

import httpx
import structlog

from lotion_insights.config import AnalyzerSettings, get_default_api_key
from lotion_insights.exceptions import TranscriptionError
from lotion_insights.models import TranscriptSentence, Unit
from lotion_insights.polling import PollingPolicy, poll_until
from lotion_insights.status import TranscriptStatus

log = structlog.get_logger(__name__)

TERMINAL_TRANSCRIPT_STATUSES = frozenset(
    {TranscriptStatus.COMPLETED.value, TranscriptStatus.ERROR.value}
)


def is_transcript_terminal(payload: dict[str, t.Any]) -> bool:
    return payload.get("status") in TERMINAL_TRANSCRIPT_STATUSES


def sentences_to_units(
    sentences: t.Iterable[TranscriptSentence], transcript_id: str | None = None
) -> list[Unit]:
    """
    Turn transcript sentences into ordered units, dropping blank sentences.
    """
    units: list[Unit] = []
    for sentence in sentences:
        text = sentence.text.strip()
        if not text:
            continue
        units.append(
            Unit(
                index=len(units),
                payload=text,
                correlation_id=transcript_id,
                start=sentence.start,
                end=sentence.end,
            )
        )
    return units


class TranscriptionClient:
    """
    Thin client over the AssemblyAI ``/v2`` transcript endpoints.

    Parameters
    ----------
    api_key : str | None
        AssemblyAI API key. Read from ``ASSEMBLYAI_API_KEY`` when omitted.
    settings : AnalyzerSettings | None
        Base URL, timeout and polling configuration.
    client_factory : typing.Callable[[], httpx.AsyncClient] | None
        Factory for the HTTP client used per call.
    polling_policy : PollingPolicy | None
        Overrides the policy built from ``settings``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        settings: AnalyzerSettings | None = None,
        client_factory: t.Callable[[], httpx.AsyncClient] | None = None,
        polling_policy: PollingPolicy[dict[str, t.Any]] | None = None,
        sleep: t.Callable[[float], t.Awaitable[t.Any]] | None = None,
    ):
        self._api_key = api_key or get_default_api_key()
        self._settings = settings or AnalyzerSettings()
        self._client_factory: t.Callable[[], httpx.AsyncClient] = client_factory or (
            lambda: httpx.AsyncClient(timeout=self._settings.request_timeout_seconds)
        )
        self._polling_policy = polling_policy or PollingPolicy(
            is_terminal=is_transcript_terminal,
            interval_seconds=self._settings.transcript_poll_interval_seconds,
            max_attempts=self._settings.transcript_poll_max_attempts,
        )
        self._sleep = sleep

    @property
    def base_url(self) -> str:
        return f"{self._settings.assemblyai_base_url.rstrip('/')}/v2"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": self._api_key}

    async def _request_json(self, method: str, path: str, **kwargs: t.Any) -> t.Any:
        url = f"{self.base_url}{path}"
        async with self._client_factory() as client:
            response = await client.request(
                method=method, url=url, headers=self._headers(), **kwargs
            )
        if response.is_error:
            log.error(
                event="Transcription request failed",
                method=method,
                url=url,
                status_code=response.status_code,
            )
            raise TranscriptionError(
                f"{method} {path} failed with HTTP {response.status_code}"
            )
        return response.json()

    async def upload(self, data: bytes) -> str:
        payload = await self._request_json("POST", "/upload", content=data)
        upload_url = payload.get("upload_url")
        if not upload_url:
            raise TranscriptionError("Upload response did not include upload_url")
        log.info(event="Uploaded audio", upload_url=upload_url)
        return upload_url

    async def submit(self, audio_url: str, language_detection: bool = True) -> str:
        payload = await self._request_json(
            "POST",
            "/transcript",
            json={"audio_url": audio_url, "language_detection": language_detection},
        )
        transcript_id = payload.get("id")
        if not transcript_id:
            raise TranscriptionError("Transcript submission did not return an id")
        log.info(event="Submitted transcript", transcript_id=transcript_id)
        return transcript_id

    async def get_transcript(self, transcript_id: str) -> dict[str, t.Any]:
        return await self._request_json("GET", f"/transcript/{transcript_id}")

    async def wait_for_completion(self, transcript_id: str) -> dict[str, t.Any]:
        """
        Poll a transcript until it completes.

        Raises
        ------
        TranscriptionError
            If the transcript ends in the ``error`` status.
        PollingTimeout
            If the polling policy is exhausted first.
        """
        kwargs = {} if self._sleep is None else {"sleep": self._sleep}
        transcript = await poll_until(
            fetch=lambda: self.get_transcript(transcript_id),
            policy=self._polling_policy,
            **kwargs,
        )
        if transcript.get("status") == TranscriptStatus.ERROR.value:
            raise TranscriptionError(
                f"Transcript {transcript_id} failed: {transcript.get('error', 'unknown error')}"
            )
        log.info(event="Transcript completed", transcript_id=transcript_id)
        return transcript

    async def fetch_sentences(self, transcript_id: str) -> list[TranscriptSentence]:
        payload = await self._request_json("GET", f"/transcript/{transcript_id}/sentences")
        sentences = [
            TranscriptSentence.model_validate(item) for item in payload.get("sentences", [])
        ]
        log.debug(
            event="Fetched transcript sentences",
            transcript_id=transcript_id,
            sentence_count=len(sentences),
        )
        return sentences

    async def transcribe(self, audio_url: str) -> tuple[str, list[TranscriptSentence]]:
        transcript_id = await self.submit(audio_url=audio_url)
        await self.wait_for_completion(transcript_id=transcript_id)
        return transcript_id, await self.fetch_sentences(transcript_id=transcript_id)
