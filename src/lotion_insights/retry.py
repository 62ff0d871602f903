"""
Retry controller resolving a single unit against the analysis client.

Only rate-limit outcomes are retried. Any other error is assumed to be
non-transient for the duration of a run and becomes a terminal failure.
"""

from __future__ import annotations

import time
import typing as t

import structlog

from lotion_insights.cancellation import CancellationToken, SleepFn, cancellable_sleep
from lotion_insights.client import AnalysisClient
from lotion_insights.exceptions import ConfigurationError
from lotion_insights.models import (
    REASON_CANCELLED,
    REASON_RETRIES_EXHAUSTED,
    AnalysisResult,
    Error,
    Failed,
    Ok,
    RateLimited,
    RetryState,
    Succeeded,
    Unit,
)

log = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class RetryController:
    """
    Resolve units to terminal results, backing off on rate limits.

    Parameters
    ----------
    client : AnalysisClient
        Scoring boundary invoked once per attempt.
    max_attempts : int
        Upper bound on client invocations per unit.
    sleep : SleepFn | None
        Injected sleep for backoff waits. When ``None``, backoff waits on
        the cancellation token so a cancel interrupts it.
    clock : typing.Callable[[], float]
        Monotonic clock used to stamp ``RetryState.next_eligible_at``.
    """

    def __init__(
        self,
        client: AnalysisClient,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: SleepFn | None = None,
        clock: t.Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {max_attempts}")
        self._client = client
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def resolve(
        self,
        unit: Unit,
        cancellation: CancellationToken | None = None,
    ) -> AnalysisResult:
        """
        Invoke the client for ``unit`` until a terminal result is reached.

        Parameters
        ----------
        unit : Unit
            Unit to analyze.
        cancellation : CancellationToken | None
            Checked before every call and every backoff wait.

        Returns
        -------
        AnalysisResult
            ``Succeeded`` or ``Failed``; never ``Pending``.
        """
        state = RetryState()
        while True:
            if cancellation is not None and cancellation.is_cancelled:
                return Failed(reason=REASON_CANCELLED)

            state.attempts += 1
            try:
                outcome = await self._client.analyze(unit)
            except Exception as error:
                log.error(
                    event="Analysis client raised",
                    index=unit.index,
                    attempt=state.attempts,
                    error=str(object=error),
                )
                return Failed(reason=f"unexpected error: {error.__class__.__name__}")

            match outcome:
                case Ok(payload=payload):
                    return Succeeded(payload=payload)
                case Error(message=message):
                    log.debug(event="Unit failed", index=unit.index, reason=message)
                    return Failed(reason=message)
                case RateLimited(retry_after_seconds=wait):
                    if state.attempts >= self._max_attempts:
                        log.warning(
                            event="Rate limit retries exhausted",
                            index=unit.index,
                            attempts=state.attempts,
                        )
                        return Failed(reason=REASON_RETRIES_EXHAUSTED)
                    state.next_eligible_at = self._clock() + wait
                    log.info(
                        event="Backing off after rate limit",
                        index=unit.index,
                        attempt=state.attempts,
                        retry_after=wait,
                    )
                    cancelled = await cancellable_sleep(
                        delay=wait,
                        cancellation=cancellation,
                        sleep=self._sleep,
                    )
                    if cancelled:
                        return Failed(reason=REASON_CANCELLED)
                case _:
                    return Failed(reason=f"unknown outcome: {outcome!r}")
