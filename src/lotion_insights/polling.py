"""
Bounded polling for long-running external jobs.
"""

from __future__ import annotations

import asyncio
import time
import typing as t
from dataclasses import dataclass

import structlog

from lotion_insights.exceptions import ConfigurationError, PollingTimeout

log = structlog.get_logger(__name__)

T = t.TypeVar("T")


@dataclass(frozen=True)
class PollingPolicy(t.Generic[T]):
    """
    When to poll again and when to give up.

    Parameters
    ----------
    is_terminal : typing.Callable[[T], bool]
        Predicate selecting the value that ends polling.
    interval_seconds : float
        Wait between two fetches.
    max_attempts : int | None
        Maximum number of fetches.
    max_duration_seconds : float | None
        Maximum elapsed time since the first fetch.

    Notes
    -----
    At least one of ``max_attempts`` or ``max_duration_seconds`` must be set.
    """

    is_terminal: t.Callable[[T], bool]
    interval_seconds: float = 1.0
    max_attempts: int | None = None
    max_duration_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.interval_seconds < 0:
            raise ConfigurationError(
                f"interval_seconds must be >= 0, got {self.interval_seconds}"
            )
        if self.max_attempts is None and self.max_duration_seconds is None:
            raise ConfigurationError("polling needs max_attempts or max_duration_seconds")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.max_duration_seconds is not None and self.max_duration_seconds < 0:
            raise ConfigurationError(
                f"max_duration_seconds must be >= 0, got {self.max_duration_seconds}"
            )


async def poll_until(
    fetch: t.Callable[[], t.Awaitable[T]],
    policy: PollingPolicy[T],
    sleep: t.Callable[[float], t.Awaitable[t.Any]] = asyncio.sleep,
    clock: t.Callable[[], float] = time.monotonic,
) -> T:
    """
    Call ``fetch`` until it returns a terminal value or the policy runs out.

    Parameters
    ----------
    fetch : typing.Callable[[], typing.Awaitable[T]]
        Coroutine factory returning the current job state.
    policy : PollingPolicy[T]
        Interval, bounds and terminal predicate.
    sleep : typing.Callable[[float], typing.Awaitable[typing.Any]]
        Sleep used between fetches.
    clock : typing.Callable[[], float]
        Monotonic clock used for the duration bound.

    Returns
    -------
    T
        First value accepted by ``policy.is_terminal``.

    Raises
    ------
    PollingTimeout
        If the attempt or duration bound is reached first.
    """
    started_at = clock()
    attempts = 0
    value: T | None = None
    while True:
        value = await fetch()
        attempts += 1
        if policy.is_terminal(value):
            log.debug(event="Polling reached terminal value", attempts=attempts)
            return value

        if policy.max_attempts is not None and attempts >= policy.max_attempts:
            raise PollingTimeout(
                f"No terminal value after {attempts} attempt(s)",
                attempts=attempts,
                last_value=value,
            )
        elapsed = clock() - started_at
        if (
            policy.max_duration_seconds is not None
            and elapsed + policy.interval_seconds > policy.max_duration_seconds
        ):
            raise PollingTimeout(
                f"No terminal value after {elapsed:.1f}s",
                attempts=attempts,
                last_value=value,
            )
        log.debug(event="Poll tick", attempts=attempts, elapsed=elapsed)
        await sleep(policy.interval_seconds)
