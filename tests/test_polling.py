import pytest

from lotion_insights.exceptions import ConfigurationError, PollingTimeout
from lotion_insights.polling import PollingPolicy, poll_until
from tests.mocks.clients import FakeSleep


def _sequence_fetch(values: list[str]):
    calls = {"count": 0}

    async def fetch() -> str:
        value = values[min(calls["count"], len(values) - 1)]
        calls["count"] += 1
        return value

    return fetch, calls


@pytest.mark.asyncio
async def test_returns_first_terminal_value(fake_sleep: FakeSleep):
    fetch, calls = _sequence_fetch(["queued", "processing", "completed", "never"])
    policy = PollingPolicy(is_terminal=lambda status: status == "completed", max_attempts=10)

    result = await poll_until(fetch=fetch, policy=policy, sleep=fake_sleep, clock=fake_sleep.clock)

    assert result == "completed"
    assert calls["count"] == 3
    assert fake_sleep.delays == [1.0, 1.0]


@pytest.mark.asyncio
async def test_attempt_bound(fake_sleep: FakeSleep):
    fetch, calls = _sequence_fetch(["processing"])
    policy = PollingPolicy(
        is_terminal=lambda status: status == "completed", interval_seconds=2.0, max_attempts=4
    )

    with pytest.raises(PollingTimeout) as error:
        await poll_until(fetch=fetch, policy=policy, sleep=fake_sleep, clock=fake_sleep.clock)

    assert calls["count"] == 4
    assert error.value.attempts == 4
    assert error.value.last_value == "processing"
    assert fake_sleep.delays == [2.0, 2.0, 2.0]


@pytest.mark.asyncio
async def test_duration_bound_with_fake_clock(fake_sleep: FakeSleep):
    fetch, calls = _sequence_fetch(["processing"])
    policy = PollingPolicy(
        is_terminal=lambda status: status == "completed",
        interval_seconds=5.0,
        max_duration_seconds=12.0,
    )

    with pytest.raises(PollingTimeout):
        await poll_until(fetch=fetch, policy=policy, sleep=fake_sleep, clock=fake_sleep.clock)

    assert calls["count"] == 3
    assert fake_sleep.now == 10.0


def test_unbounded_policy_rejected():
    with pytest.raises(ConfigurationError):
        PollingPolicy(is_terminal=bool)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"interval_seconds": -1.0, "max_attempts": 3},
        {"max_attempts": 0},
        {"max_duration_seconds": -5.0},
    ],
)
def test_invalid_bounds_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        PollingPolicy(is_terminal=bool, **kwargs)
