"""
Main entry point for callers.
Wires a result store, retry controller and batch scheduler for one run and
streams snapshots to the caller while units resolve.
"""

from __future__ import annotations

import dataclasses
import typing as t
import uuid

import structlog

from lotion_insights.cancellation import CancellationToken, SleepFn
from lotion_insights.client import AnalysisClient, LemurAnalysisClient
from lotion_insights.config import AnalyzerSettings
from lotion_insights.models import (
    PipelineReport,
    RatedSentence,
    TrafficLightAnalysis,
    TranscriptSentence,
    Unit,
)
from lotion_insights.retry import RetryController
from lotion_insights.scheduler import BatchScheduler
from lotion_insights.store import ResultStore, SnapshotCallback
from lotion_insights.transcription import TranscriptionClient, sentences_to_units
from lotion_insights.utils.logging import logging_context

log = structlog.get_logger(__name__)


class ConversationAnalyzer:
    """
    Run the throttled batch analysis over transcript sentences.

    Parameters
    ----------
    client : AnalysisClient
        Scoring boundary.
    settings : AnalyzerSettings | None
        Batch size, delays and retry bound.
    sleep : SleepFn | None
        Injected sleep shared by backoff and batch delays.
    strict : bool
        Make the result store reject rewrites of terminal indexes.
    """

    def __init__(
        self,
        client: AnalysisClient,
        settings: AnalyzerSettings | None = None,
        sleep: SleepFn | None = None,
        strict: bool = False,
    ):
        self._settings = settings or AnalyzerSettings()
        self._settings.validate_pipeline()
        self._client = client
        self._sleep = sleep
        self._strict = strict

    @property
    def settings(self) -> AnalyzerSettings:
        return self._settings

    async def analyze(
        self,
        units: t.Sequence[Unit],
        on_snapshot: SnapshotCallback | None = None,
        cancellation: CancellationToken | None = None,
        store: ResultStore | None = None,
    ) -> PipelineReport:
        """
        Analyze ``units`` and return the final report.

        Parameters
        ----------
        units : typing.Sequence[Unit]
            Units indexed ``0..len(units) - 1`` in order.
        on_snapshot : SnapshotCallback | None
            Receives the full ordered results after each unit resolves.
        cancellation : CancellationToken | None
            Stops the run at the next suspension point.
        store : ResultStore | None
            Store to fill, for callers that want to query it directly.

        Returns
        -------
        PipelineReport
            Run status with the final snapshot.
        """
        if store is None:
            store = ResultStore(strict=self._strict)
        store.initialize(unit_count=len(units))
        unsubscribe = store.subscribe(on_snapshot) if on_snapshot is not None else None

        retry_controller = RetryController(
            client=self._client,
            max_attempts=self._settings.max_attempts,
            sleep=self._sleep,
        )
        scheduler = BatchScheduler(retry_controller=retry_controller, sleep=self._sleep)
        try:
            with logging_context(run_id=str(object=uuid.uuid4())):
                report = await scheduler.run(
                    units=units,
                    batch_size=self._settings.batch_size,
                    inter_batch_delay=self._settings.inter_batch_delay_seconds,
                    intra_batch_delay=self._settings.intra_batch_delay_seconds,
                    on_unit_resolved=store.set,
                    cancellation=cancellation,
                )
        finally:
            if unsubscribe is not None:
                unsubscribe()

        report = dataclasses.replace(report, results=store.snapshot())
        log.info(
            event="Analysis finished",
            status=report.status.value,
            succeeded=report.succeeded,
            failed=report.failed,
        )
        return report

    async def analyze_transcript(
        self,
        transcript_id: str,
        transcription: TranscriptionClient,
        on_snapshot: SnapshotCallback | None = None,
        cancellation: CancellationToken | None = None,
    ) -> tuple[list[Unit], PipelineReport]:
        """
        Fetch the sentences of a completed transcript and analyze them.
        """
        sentences = await transcription.fetch_sentences(transcript_id=transcript_id)
        units = sentences_to_units(sentences=sentences, transcript_id=transcript_id)
        report = await self.analyze(
            units=units, on_snapshot=on_snapshot, cancellation=cancellation
        )
        return units, report


@dataclasses.dataclass(frozen=True)
class TranscriptReview:
    transcript_id: str
    sentences: tuple[TranscriptSentence, ...]
    analysis: TrafficLightAnalysis

    def timeline(self) -> list[tuple[TranscriptSentence, RatedSentence | None]]:
        """Every transcript sentence in order, with its rating when the review picked it."""
        return self.analysis.attach(self.sentences)


async def review_transcript(
    transcript_id: str,
    transcription: TranscriptionClient,
    client: LemurAnalysisClient,
) -> TranscriptReview:
    """
    Rate a whole conversation with one review call and join the ratings onto
    its sentences by text.
    """
    with logging_context(transcript_id=transcript_id):
        sentences = await transcription.fetch_sentences(transcript_id=transcript_id)
        analysis = await client.review_transcript(transcript_id=transcript_id)
    review = TranscriptReview(
        transcript_id=transcript_id, sentences=tuple(sentences), analysis=analysis
    )
    known = {sentence.text for sentence in sentences}
    unmatched = [rated.text for rated in analysis.sentences if rated.text not in known]
    if unmatched:
        log.warning(
            event="Review rated sentences missing from the transcript",
            rated=len(analysis.sentences),
            unmatched=len(unmatched),
        )
    return review
