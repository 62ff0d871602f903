from __future__ import annotations

import copy
import typing as t
from dataclasses import dataclass, field

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from lotion_insights.status import PipelineStatus, ResultStatus, TrafficLight

REASON_CANCELLED = "cancelled"
REASON_PIPELINE_ABORTED = "pipeline aborted"
REASON_RETRIES_EXHAUSTED = "rate limited, retries exhausted"
REASON_UNPARSEABLE = "unparseable response"
REASON_TIMEOUT = "timeout"


@dataclass(frozen=True)
class Unit:
    """
    One analyzable item with a stable position in the original sequence.

    Parameters
    ----------
    index : int
        Position of the unit in the sequence handed to the pipeline.
    payload : str
        Text sent to the scoring endpoint.
    correlation_id : str | None
        Identifier forwarded with the payload (the transcript id).
    start : int | None
        Sentence start offset in milliseconds, when known.
    end : int | None
        Sentence end offset in milliseconds, when known.
    """

    index: int
    payload: str
    correlation_id: str | None = None
    start: int | None = None
    end: int | None = None


# Analysis results


@dataclass(frozen=True)
class Pending:
    status: t.ClassVar[ResultStatus] = ResultStatus.PENDING
    is_terminal: t.ClassVar[bool] = False


@dataclass(frozen=True)
class Succeeded:
    payload: dict[str, t.Any] = field(default_factory=dict)
    status: t.ClassVar[ResultStatus] = ResultStatus.SUCCEEDED
    is_terminal: t.ClassVar[bool] = True

    def copy(self) -> Succeeded:
        return Succeeded(payload=copy.deepcopy(self.payload))


@dataclass(frozen=True)
class Failed:
    reason: str
    status: t.ClassVar[ResultStatus] = ResultStatus.FAILED
    is_terminal: t.ClassVar[bool] = True


AnalysisResult = Pending | Succeeded | Failed
Snapshot = tuple[AnalysisResult, ...]


# Analysis client outcomes


@dataclass(frozen=True)
class Ok:
    payload: dict[str, t.Any]


@dataclass(frozen=True)
class RateLimited:
    retry_after_seconds: float


@dataclass(frozen=True)
class Error:
    message: str


Outcome = Ok | RateLimited | Error


@dataclass
class RetryState:
    """Per-unit retry bookkeeping, discarded once the unit resolves."""

    attempts: int = 0
    next_eligible_at: float = 0.0


@dataclass(frozen=True)
class BatchPlan:
    """
    Contiguous, fixed-size partition of a unit sequence.

    Notes
    -----
    Concatenating ``batches`` in order reproduces the input sequence.
    """

    batches: tuple[tuple[Unit, ...], ...]
    batch_size: int

    def __len__(self) -> int:
        return len(self.batches)

    def __iter__(self) -> t.Iterator[tuple[Unit, ...]]:
        return iter(self.batches)

    def flatten(self) -> tuple[Unit, ...]:
        return tuple(unit for batch in self.batches for unit in batch)


@dataclass(frozen=True)
class PipelineReport:
    status: PipelineStatus
    results: Snapshot = ()
    reason: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if isinstance(result, Succeeded))

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if isinstance(result, Failed))


# Scoring payloads


class RedFlag(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str
    details: str = ""


class SentenceInsight(BaseModel):
    """
    Sales coaching review returned by the scoring endpoint for one sentence.

    An empty object from the endpoint validates into an insight where
    ``is_empty`` is ``True``.
    """

    model_config = ConfigDict(extra="allow")

    red_flags: list[RedFlag] = Field(default_factory=list)
    missed_opportunities: list[str] = Field(default_factory=list)
    coaching_suggestion: str | None = None
    ai_insight: str | None = None
    traffic_light: TrafficLight | None = None

    @property
    def is_empty(self) -> bool:
        return not (
            self.red_flags
            or self.missed_opportunities
            or self.coaching_suggestion
            or self.ai_insight
        )

    def summary(self) -> str:
        if self.red_flags:
            return "; ".join(flag.title for flag in self.red_flags)
        if self.missed_opportunities:
            return self.missed_opportunities[0]
        return self.ai_insight or self.coaching_suggestion or ""


class TranscriptSentence(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    text: str
    start: int | None = None
    end: int | None = None
    confidence: float | None = None
    speaker: str | None = Field(default=None, validation_alias=AliasChoices("speaker", "channel"))


# Whole-transcript review


class RatedSentence(BaseModel):
    """One sentence picked by the transcript review, with its traffic light rating."""

    model_config = ConfigDict(extra="allow")

    text: str
    traffic_light: TrafficLight
    analysis: SentenceInsight = Field(default_factory=SentenceInsight)

    @field_validator("traffic_light", mode="before")
    @classmethod
    def normalize_light(cls, value: t.Any) -> t.Any:
        return value.strip().lower() if isinstance(value, str) else value

    def insight(self) -> SentenceInsight:
        return self.analysis.model_copy(update={"traffic_light": self.traffic_light})


class OverallAnalysis(BaseModel):
    model_config = ConfigDict(extra="allow")

    strengths: list[str] = Field(default_factory=list)
    areas_for_improvement: list[str] = Field(default_factory=list)
    key_insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class TrafficLightAnalysis(BaseModel):
    """
    Review of a whole conversation: rated key sentences plus an overall summary.

    Only the sentences the reviewer found notable are rated; ``attach`` lines
    the ratings up with the full transcript by sentence text.
    """

    model_config = ConfigDict(extra="allow")

    sentences: list[RatedSentence] = Field(default_factory=list)
    overall_analysis: OverallAnalysis = Field(default_factory=OverallAnalysis)

    def attach(
        self, sentences: t.Sequence[TranscriptSentence]
    ) -> list[tuple[TranscriptSentence, RatedSentence | None]]:
        # later ratings of a repeated text win
        by_text = {rated.text: rated for rated in self.sentences}
        return [(sentence, by_text.get(sentence.text)) for sentence in sentences]

    def counts(self) -> dict[TrafficLight, int]:
        counts = {light: 0 for light in TrafficLight}
        for rated in self.sentences:
            counts[rated.traffic_light] += 1
        return counts
