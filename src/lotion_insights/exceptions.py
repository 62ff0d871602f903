"""
Lotion-insights runtime exceptions.
"""

from __future__ import annotations


class LotionInsightsError(Exception):
    """
    Base class for every error raised by the package.
    """


class ConfigurationError(LotionInsightsError, ValueError):
    """
    Invalid pipeline parameters, detected before any network activity.
    """


class InvariantViolation(LotionInsightsError, RuntimeError):
    """
    A result store transition broke the ``Pending -> terminal`` rule.
    """


class PipelineAbort(LotionInsightsError, RuntimeError):
    """
    Unrecoverable internal condition that stops a pipeline run.

    Notes
    -----
    Never escapes ``BatchScheduler.run``: the scheduler converts it into a
    ``PipelineReport`` with an ``aborted`` status.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class TranscriptionError(LotionInsightsError, RuntimeError):
    """
    The transcription service rejected a request or failed a transcript.
    """


class PollingTimeout(LotionInsightsError, TimeoutError):
    """
    A polling policy exhausted its attempts or duration without a terminal value.
    """

    def __init__(self, message: str, *, attempts: int, last_value: object = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_value = last_value


class TranscriptReviewError(LotionInsightsError, RuntimeError):
    """
    The whole-transcript review request failed or returned an unreadable answer.
    """
