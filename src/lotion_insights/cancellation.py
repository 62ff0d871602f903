from __future__ import annotations

import asyncio
import typing as t

import structlog

log = structlog.get_logger(__name__)

SleepFn = t.Callable[[float], t.Awaitable[t.Any]]


class CancellationToken:
    """
    External cancellation signal shared by one pipeline run.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if not self._event.is_set():
            log.info(event="Cancellation requested")
        self._event.set()

    async def wait(self, timeout: float | None = None) -> bool:
        """
        Wait until cancellation or ``timeout`` seconds elapse.

        Returns
        -------
        bool
            ``True`` when the token was cancelled.
        """
        if timeout is None:
            await self._event.wait()
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True


async def cancellable_sleep(
    *,
    delay: float,
    cancellation: CancellationToken | None,
    sleep: SleepFn | None = None,
) -> bool:
    """
    Sleep for ``delay`` seconds unless the run is cancelled first.

    Parameters
    ----------
    delay : float
        Delay in seconds.
    cancellation : CancellationToken | None
        Token interrupting the sleep.
    sleep : SleepFn | None
        Injected sleep used instead of waiting on the token (tests pass a
        fake that records delays).

    Returns
    -------
    bool
        ``True`` when the sleep ended because of cancellation.
    """
    if cancellation is not None and cancellation.is_cancelled:
        return True
    if delay <= 0:
        return False
    if sleep is not None:
        await sleep(delay)
        return cancellation is not None and cancellation.is_cancelled
    if cancellation is None:
        await asyncio.sleep(delay=delay)
        return False
    return await cancellation.wait(timeout=delay)
