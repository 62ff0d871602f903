"""
Batch scheduler driving the retry controller over an ordered unit sequence.
Batches run strictly in order and units inside a batch run one at a time,
with fixed delays between units and between batches.
"""

from __future__ import annotations

import typing as t

import structlog

from lotion_insights.cancellation import CancellationToken, SleepFn, cancellable_sleep
from lotion_insights.config import validate_batch_parameters
from lotion_insights.exceptions import ConfigurationError, PipelineAbort
from lotion_insights.models import (
    REASON_CANCELLED,
    REASON_PIPELINE_ABORTED,
    AnalysisResult,
    BatchPlan,
    Failed,
    PipelineReport,
    Unit,
)
from lotion_insights.retry import RetryController
from lotion_insights.status import PipelineStatus

log = structlog.get_logger(__name__)

UnitResolvedCallback = t.Callable[[int, AnalysisResult], None]


def build_batch_plan(units: t.Sequence[Unit], batch_size: int) -> BatchPlan:
    """
    Partition ``units`` into contiguous groups of ``batch_size``.

    Parameters
    ----------
    units : typing.Sequence[Unit]
        Ordered units.
    batch_size : int
        Group size; the last group may be shorter.

    Returns
    -------
    BatchPlan
        Plan whose flattened groups equal ``units``.
    """
    if batch_size < 1:
        raise ConfigurationError(f"batch_size must be >= 1, got {batch_size}")
    batches = tuple(
        tuple(units[start : start + batch_size]) for start in range(0, len(units), batch_size)
    )
    return BatchPlan(batches=batches, batch_size=batch_size)


def validate_unit_indexes(units: t.Sequence[Unit]) -> None:
    """Require ``units[i].index == i`` so results land in the right store slot."""
    for position, unit in enumerate(units):
        if unit.index != position:
            raise ConfigurationError(
                f"Unit at position {position} has index {unit.index}; "
                "indexes must run 0..n-1 in sequence order"
            )


class BatchScheduler:
    """
    Sequence unit resolution across batches.

    Parameters
    ----------
    retry_controller : RetryController
        Resolves each unit to a terminal result.
    sleep : SleepFn | None
        Injected sleep for batch delays. When ``None``, delays wait on the
        cancellation token so a cancel interrupts them.

    Notes
    -----
    The scheduler keeps no results. It only remembers which indexes it has
    already reported so that cancellation and abort fill in the rest once.
    """

    def __init__(self, retry_controller: RetryController, sleep: SleepFn | None = None):
        self._retry_controller = retry_controller
        self._sleep = sleep

    async def run(
        self,
        units: t.Sequence[Unit],
        batch_size: int,
        inter_batch_delay: float,
        intra_batch_delay: float,
        on_unit_resolved: UnitResolvedCallback,
        cancellation: CancellationToken | None = None,
    ) -> PipelineReport:
        """
        Resolve every unit, reporting each terminal result as it happens.

        Parameters
        ----------
        units : typing.Sequence[Unit]
            Ordered units to analyze.
        batch_size : int
            Units per batch, at least 1.
        inter_batch_delay : float
            Seconds to wait between batches.
        intra_batch_delay : float
            Seconds to wait between units of the same batch.
        on_unit_resolved : UnitResolvedCallback
            Called synchronously with ``(index, result)`` for each terminal result.
        cancellation : CancellationToken | None
            Checked before every suspension point.

        Returns
        -------
        PipelineReport
            Run status and, for aborted runs, the abort reason.

        Raises
        ------
        ConfigurationError
            If the batch parameters are invalid or a unit index does not match its
            position. Raised before any network call.
        """
        validate_batch_parameters(
            batch_size=batch_size,
            inter_batch_delay=inter_batch_delay,
            intra_batch_delay=intra_batch_delay,
        )
        validate_unit_indexes(units=units)
        reported: set[int] = set()
        cancelled: set[int] = set()

        def report(index: int, result: AnalysisResult) -> None:
            if index in reported:
                raise PipelineAbort(f"unit {index} resolved twice")
            on_unit_resolved(index, result)
            reported.add(index)
            if result == Failed(reason=REASON_CANCELLED):
                cancelled.add(index)

        def is_cancelled() -> bool:
            return cancellation is not None and cancellation.is_cancelled

        log.info(
            event="Starting batch run",
            unit_count=len(units),
            batch_size=batch_size,
            inter_batch_delay=inter_batch_delay,
            intra_batch_delay=intra_batch_delay,
        )
        try:
            plan = build_batch_plan(units=units, batch_size=batch_size)
            if plan.flatten() != tuple(units):
                raise PipelineAbort("malformed batch plan")

            for batch_index, batch in enumerate(plan):
                if batch_index > 0:
                    if await cancellable_sleep(
                        delay=inter_batch_delay, cancellation=cancellation, sleep=self._sleep
                    ):
                        break
                log.debug(
                    event="Processing batch",
                    batch_index=batch_index,
                    batch_count=len(plan),
                    unit_count=len(batch),
                )
                for position, unit in enumerate(batch):
                    if position > 0:
                        if await cancellable_sleep(
                            delay=intra_batch_delay,
                            cancellation=cancellation,
                            sleep=self._sleep,
                        ):
                            break
                    if is_cancelled():
                        break
                    result = await self._retry_controller.resolve(unit, cancellation)
                    report(unit.index, result)
                if is_cancelled():
                    break

            remaining = [unit for unit in units if unit.index not in reported]
            # a cancel landing after the last unit resolved cancels nothing
            if is_cancelled() and (remaining or cancelled):
                log.info(event="Batch run cancelled", unresolved_count=len(remaining))
                for unit in remaining:
                    report(unit.index, Failed(reason=REASON_CANCELLED))
                return PipelineReport(status=PipelineStatus.CANCELLED, reason=REASON_CANCELLED)
        except PipelineAbort as abort:
            return self._abort(units=units, reported=reported, report=report, reason=abort.reason)
        except Exception as error:
            return self._abort(
                units=units,
                reported=reported,
                report=report,
                reason=f"{error.__class__.__name__}: {error}",
            )

        log.info(event="Batch run completed", unit_count=len(units))
        return PipelineReport(status=PipelineStatus.COMPLETED)

    @staticmethod
    def _abort(
        *,
        units: t.Sequence[Unit],
        reported: set[int],
        report: UnitResolvedCallback,
        reason: str,
    ) -> PipelineReport:
        log.error(event="Batch run aborted", reason=reason)
        for unit in units:
            if unit.index in reported:
                continue
            try:
                report(unit.index, Failed(reason=REASON_PIPELINE_ABORTED))
            except Exception as error:
                log.error(
                    event="Failed to report aborted unit",
                    index=unit.index,
                    error=str(object=error),
                )
        return PipelineReport(status=PipelineStatus.ABORTED, reason=reason)
