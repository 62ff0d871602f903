import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

PACKAGE_LOGGER = "lotion_insights"


def level_for(verbose: bool) -> int:
    """Pipeline progress (batches, retries, run ids) is only shown with ``--verbose``."""
    return logging.DEBUG if verbose else logging.WARNING


def setup_logging(verbose: bool = False) -> int:
    """Route structlog through stdlib logging on stderr and return the package level

    Stdout stays reserved for command output, so rate-limit warnings and
    aborted runs surface on stderr even without ``--verbose``.

    Args:
        verbose (bool): Show debug events such as per-unit retries
    """
    level = level_for(verbose)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return level


@contextmanager
def logging_context(**required_context) -> Iterator[None]:
    """Bind context vars such as ``run_id`` for the block, keeping values a caller bound."""
    current = structlog.contextvars.get_contextvars()
    to_bind = {k: v for k, v in required_context.items() if k not in current}

    if to_bind:
        with structlog.contextvars.bound_contextvars(**to_bind):
            yield
    else:
        yield
