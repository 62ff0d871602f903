"""
End-to-end tests for ConversationAnalyzer with scripted and HTTP-backed clients.
"""

import time

import httpx
import pytest

from lotion_insights.cancellation import CancellationToken
from lotion_insights.client import LemurAnalysisClient
from lotion_insights.config import AnalyzerSettings
from lotion_insights.exceptions import ConfigurationError
from lotion_insights.models import Failed, Ok, RateLimited, Succeeded, Unit
from lotion_insights.pipeline import ConversationAnalyzer
from lotion_insights.status import PipelineStatus
from lotion_insights.store import ResultStore
from lotion_insights.transcription import TranscriptionClient
from tests.mocks.assemblyai import FakeAssemblyAIAPI, make_client_factory
from tests.mocks.clients import FakeSleep, ScriptedAnalysisClient, make_units


@pytest.fixture
def settings() -> AnalyzerSettings:
    return AnalyzerSettings(
        batch_size=5, inter_batch_delay_seconds=1.0, intra_batch_delay_seconds=0.1
    )


@pytest.mark.asyncio
async def test_all_units_succeed_in_order(settings: AnalyzerSettings, fake_sleep: FakeSleep):
    snapshots = []
    analyzer = ConversationAnalyzer(
        client=ScriptedAnalysisClient(), settings=settings, sleep=fake_sleep
    )

    report = await analyzer.analyze(units=make_units(7), on_snapshot=snapshots.append)

    assert report.status == PipelineStatus.COMPLETED
    assert len(snapshots) == 7
    assert report.succeeded == 7
    assert [result.payload["ai_insight"] for result in report.results] == [
        f"insight for sentence {index}" for index in range(7)
    ]
    # each snapshot has exactly one more terminal result than the previous
    assert [sum(result.is_terminal for result in snapshot) for snapshot in snapshots] == list(
        range(1, 8)
    )


@pytest.mark.asyncio
async def test_rate_limited_once_then_succeeds(settings: AnalyzerSettings, fake_sleep: FakeSleep):
    client = ScriptedAnalysisClient(
        {2: [RateLimited(retry_after_seconds=1.0), Ok(payload={"ai_insight": "recovered"})]}
    )
    analyzer = ConversationAnalyzer(client=client, settings=settings, sleep=fake_sleep)

    report = await analyzer.analyze(units=make_units(5))

    assert report.results[2] == Succeeded(payload={"ai_insight": "recovered"})
    assert client.calls_by_index[2] == 2
    assert 1.0 in fake_sleep.delays
    assert fake_sleep.now == pytest.approx(1.0 + 4 * 0.1)


@pytest.mark.asyncio
async def test_elapsed_time_includes_backoff():
    client = ScriptedAnalysisClient({1: [RateLimited(retry_after_seconds=0.05), Ok(payload={})]})
    analyzer = ConversationAnalyzer(
        client=client,
        settings=AnalyzerSettings(
            batch_size=5, inter_batch_delay_seconds=0.0, intra_batch_delay_seconds=0.0
        ),
    )

    started = time.monotonic()
    report = await analyzer.analyze(units=make_units(3))
    elapsed = time.monotonic() - started

    assert report.status == PipelineStatus.COMPLETED
    assert elapsed >= 0.05


@pytest.mark.asyncio
async def test_cancellation_after_first_of_three_batches(settings: AnalyzerSettings):
    token = CancellationToken()

    def on_snapshot(snapshot):
        if sum(result.is_terminal for result in snapshot) == 5:
            token.cancel()

    client = ScriptedAnalysisClient()
    analyzer = ConversationAnalyzer(client=client, settings=settings, sleep=FakeSleep())

    report = await analyzer.analyze(
        units=make_units(15), on_snapshot=on_snapshot, cancellation=token
    )

    assert report.status == PipelineStatus.CANCELLED
    assert client.calls == [0, 1, 2, 3, 4]
    assert report.results[5:] == tuple(Failed(reason="cancelled") for _ in range(10))
    assert all(result.is_terminal for result in report.results)


@pytest.mark.asyncio
async def test_external_store_is_filled(settings: AnalyzerSettings, fake_sleep: FakeSleep):
    store = ResultStore()
    analyzer = ConversationAnalyzer(
        client=ScriptedAnalysisClient(), settings=settings, sleep=fake_sleep
    )

    await analyzer.analyze(units=make_units(3), store=store)

    assert store.is_complete
    assert store.snapshot()[0] == Succeeded(payload={"ai_insight": "insight for sentence 0"})


def test_invalid_settings_rejected():
    with pytest.raises(ConfigurationError):
        ConversationAnalyzer(
            client=ScriptedAnalysisClient(), settings=AnalyzerSettings(batch_size=0)
        )


@pytest.mark.asyncio
async def test_one_based_indexes_rejected_before_scoring(
    settings: AnalyzerSettings, fake_sleep: FakeSleep
):
    client = ScriptedAnalysisClient()
    analyzer = ConversationAnalyzer(client=client, settings=settings, sleep=fake_sleep)
    units = [Unit(index=index + 1, payload=f"s{index}") for index in range(3)]

    with pytest.raises(ConfigurationError):
        await analyzer.analyze(units=units)

    assert client.calls == []


@pytest.mark.asyncio
async def test_analyze_transcript_over_http(fake_sleep: FakeSleep):
    api = FakeAssemblyAIAPI(
        sentences=[
            {"text": "Hi, thanks for coming in.", "start": 0, "end": 1200},
            {"text": "   ", "start": 1200, "end": 1300},
            {"text": "That's more than I wanted to spend.", "start": 1300, "end": 3100},
        ],
        lemur_responses=[
            httpx.Response(200, json={"response": '{"ai_insight": "Warm opener"}'}),
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(
                200,
                json={
                    "response": 'Review: {"red_flags": [{"title": "Price objection", '
                    '"details": "Not addressed"}]}'
                },
            ),
        ],
    )
    settings = AnalyzerSettings(batch_size=5, intra_batch_delay_seconds=0.0)
    factory = make_client_factory(api)
    analyzer = ConversationAnalyzer(
        client=LemurAnalysisClient(settings=settings, client_factory=factory),
        settings=settings,
        sleep=fake_sleep,
    )

    units, report = await analyzer.analyze_transcript(
        transcript_id="transcript-1",
        transcription=TranscriptionClient(settings=settings, client_factory=factory),
    )

    assert [unit.payload for unit in units] == [
        "Hi, thanks for coming in.",
        "That's more than I wanted to spend.",
    ]
    assert units[1].start == 1300
    assert report.results[0] == Succeeded(payload={"ai_insight": "Warm opener"})
    assert report.results[1].payload["red_flags"][0]["title"] == "Price objection"
    assert fake_sleep.delays == [3.0]
