"""
Tests for the retry controller policy.
"""

import pytest

from lotion_insights.cancellation import CancellationToken
from lotion_insights.exceptions import ConfigurationError
from lotion_insights.models import Error, Failed, Ok, RateLimited, Succeeded, Unit
from lotion_insights.retry import RetryController
from tests.mocks.clients import FakeSleep, RaisingAnalysisClient, ScriptedAnalysisClient


@pytest.fixture
def unit() -> Unit:
    return Unit(index=0, payload="We'll think about it and call you back.")


@pytest.mark.asyncio
async def test_ok_succeeds_on_first_attempt(unit: Unit, fake_sleep: FakeSleep):
    client = ScriptedAnalysisClient({0: [Ok(payload={"ai_insight": "stall"})]})
    controller = RetryController(client=client, sleep=fake_sleep)

    result = await controller.resolve(unit)

    assert result == Succeeded(payload={"ai_insight": "stall"})
    assert client.calls == [0]
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_rate_limited_then_ok(unit: Unit, fake_sleep: FakeSleep):
    client = ScriptedAnalysisClient({0: [RateLimited(retry_after_seconds=1.0), Ok(payload={})]})
    controller = RetryController(client=client, sleep=fake_sleep)

    result = await controller.resolve(unit)

    assert result == Succeeded(payload={})
    assert client.calls_by_index[0] == 2
    assert fake_sleep.delays == [1.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("max_attempts", [1, 2, 3, 5])
async def test_retry_bound(unit: Unit, fake_sleep: FakeSleep, max_attempts: int):
    client = ScriptedAnalysisClient({0: [RateLimited(retry_after_seconds=2.0)]})
    controller = RetryController(client=client, max_attempts=max_attempts, sleep=fake_sleep)

    result = await controller.resolve(unit)

    assert result == Failed(reason="rate limited, retries exhausted")
    assert client.calls_by_index[0] == max_attempts
    assert fake_sleep.delays == [2.0] * (max_attempts - 1)


@pytest.mark.asyncio
async def test_generic_error_is_not_retried(unit: Unit, fake_sleep: FakeSleep):
    client = ScriptedAnalysisClient({0: [Error(message="x"), Ok(payload={})]})
    controller = RetryController(client=client, sleep=fake_sleep)

    result = await controller.resolve(unit)

    assert result == Failed(reason="x")
    assert client.calls_by_index[0] == 1


@pytest.mark.asyncio
async def test_client_exception_becomes_failure(unit: Unit, fake_sleep: FakeSleep):
    controller = RetryController(client=RaisingAnalysisClient(failing_index=0), sleep=fake_sleep)

    result = await controller.resolve(unit)

    assert result == Failed(reason="unexpected error: RuntimeError")


@pytest.mark.asyncio
async def test_cancelled_before_first_call(unit: Unit, fake_sleep: FakeSleep):
    client = ScriptedAnalysisClient()
    token = CancellationToken()
    token.cancel()

    result = await RetryController(client=client, sleep=fake_sleep).resolve(unit, token)

    assert result == Failed(reason="cancelled")
    assert client.calls == []


@pytest.mark.asyncio
async def test_cancelled_during_backoff(unit: Unit):
    token = CancellationToken()
    fake_sleep = FakeSleep(on_sleep=lambda delay: token.cancel())
    client = ScriptedAnalysisClient({0: [RateLimited(retry_after_seconds=5.0)]})

    result = await RetryController(client=client, sleep=fake_sleep).resolve(unit, token)

    assert result == Failed(reason="cancelled")
    assert client.calls_by_index[0] == 1


@pytest.mark.asyncio
async def test_backoff_waits_on_token_without_injected_sleep(unit: Unit):
    token = CancellationToken()
    client = ScriptedAnalysisClient({0: [RateLimited(retry_after_seconds=0.01), Ok(payload={})]})

    result = await RetryController(client=client).resolve(unit, token)

    assert result == Succeeded(payload={})


def test_max_attempts_must_be_positive():
    with pytest.raises(ConfigurationError):
        RetryController(client=ScriptedAnalysisClient(), max_attempts=0)
