import logging

import pytest
import structlog

from lotion_insights.utils.logging import PACKAGE_LOGGER, level_for, logging_context, setup_logging


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.NOTSET)
    structlog.reset_defaults()


@pytest.mark.parametrize(("verbose", "level"), [(True, logging.DEBUG), (False, logging.WARNING)])
def test_level_follows_verbose_flag(verbose: bool, level: int):
    assert level_for(verbose) == level
    assert setup_logging(verbose=verbose) == level
    assert logging.getLogger(PACKAGE_LOGGER).level == level


def test_quiet_logging_still_shows_warnings():
    setup_logging()

    package_logger = logging.getLogger(f"{PACKAGE_LOGGER}.scheduler")
    assert not package_logger.isEnabledFor(logging.INFO)
    assert package_logger.isEnabledFor(logging.WARNING)


def test_logging_context_keeps_caller_values():
    with structlog.contextvars.bound_contextvars(run_id="outer"):
        with logging_context(run_id="inner", transcript_id="tr-1"):
            assert structlog.contextvars.get_contextvars() == {
                "run_id": "outer",
                "transcript_id": "tr-1",
            }
        assert structlog.contextvars.get_contextvars() == {"run_id": "outer"}
