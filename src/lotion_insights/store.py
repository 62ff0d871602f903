"""
Index-addressed result store publishing snapshots after every write.
"""

from __future__ import annotations

import typing as t

import structlog

from lotion_insights.exceptions import ConfigurationError, InvariantViolation
from lotion_insights.models import AnalysisResult, Pending, Snapshot, Succeeded
from lotion_insights.status import ResultStatus

log = structlog.get_logger(__name__)

SnapshotCallback = t.Callable[[Snapshot], None]


def _detached(result: AnalysisResult) -> AnalysisResult:
    if isinstance(result, Succeeded):
        return result.copy()
    return result


class ResultStore:
    """
    Own the per-unit results of one pipeline run.

    Parameters
    ----------
    strict : bool
        If ``True``, writing to an already-terminal index raises
        ``InvariantViolation`` instead of being ignored.

    Notes
    -----
    Results are stored as detached copies and handed out as tuples of
    frozen values with deep-copied payloads, so neither writers nor
    subscribers share mutable state with the store.
    """

    def __init__(self, strict: bool = False) -> None:
        self._strict = strict
        self._results: list[AnalysisResult] = []
        self._subscribers: list[SnapshotCallback] = []

    def __len__(self) -> int:
        return len(self._results)

    def initialize(self, unit_count: int) -> None:
        if unit_count < 0:
            raise ConfigurationError(f"unit_count must be >= 0, got {unit_count}")
        self._results = [Pending() for _ in range(unit_count)]
        log.debug(event="Initialized result store", unit_count=unit_count)

    def get(self, index: int) -> AnalysisResult:
        self._check_index(index=index)
        return _detached(self._results[index])

    def snapshot(self) -> Snapshot:
        return tuple(_detached(result) for result in self._results)

    def counts(self) -> dict[ResultStatus, int]:
        counts = {status: 0 for status in ResultStatus}
        for result in self._results:
            counts[result.status] += 1
        return counts

    @property
    def is_complete(self) -> bool:
        return all(result.is_terminal for result in self._results)

    def set(self, index: int, result: AnalysisResult) -> bool:
        """
        Move ``index`` from ``Pending`` to a terminal result.

        Parameters
        ----------
        index : int
            Unit index.
        result : AnalysisResult
            Terminal result to store.

        Returns
        -------
        bool
            ``True`` if the store changed, ``False`` for an ignored rewrite
            of a terminal index in non-strict mode.
        """
        self._check_index(index=index)
        if not result.is_terminal:
            raise InvariantViolation(f"Cannot reset index {index} to {result.status.value}")
        current = self._results[index]
        if current.is_terminal:
            if self._strict:
                raise InvariantViolation(
                    f"Index {index} is already {current.status.value}, "
                    f"refusing {result.status.value}"
                )
            log.warning(
                event="Ignored write to terminal index",
                index=index,
                current=current.status.value,
                attempted=result.status.value,
            )
            return False

        self._results[index] = _detached(result)
        self._publish()
        return True

    def subscribe(self, callback: SnapshotCallback) -> t.Callable[[], None]:
        """
        Register ``callback`` for a snapshot after every write.

        Returns
        -------
        typing.Callable[[], None]
            Function removing the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        for callback in list(self._subscribers):
            callback(self.snapshot())

    def _check_index(self, *, index: int) -> None:
        if not 0 <= index < len(self._results):
            raise InvariantViolation(
                f"Index {index} out of range for {len(self._results)} result(s)"
            )
