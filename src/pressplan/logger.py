"""Run logging for pressplan.

The scheduler reports what it does through three levels on top of standard
errors and warnings:

- ``changes`` (``-v 1``): every placement, capacity commit or release, and the
  run summary. Enough to reconstruct what a run wrote.
- ``checks`` (``-v 2``): which stages were considered, deferred or skipped and
  why a job has nothing to schedule.
- ``debug`` (``-v 3``): the allocation walk itself (days without capacity,
  bookings added and freed).

Warnings (rolled-back jobs, discarded runs, missing jobs) are shown from
verbosity 1. The default is silent apart from errors.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

CHANGES_LEVEL = 25  # Between INFO and WARNING
CHECKS_LEVEL = 15  # Between DEBUG and INFO

logging.addLevelName(CHANGES_LEVEL, "CHANGES")
logging.addLevelName(CHECKS_LEVEL, "CHECKS")

VERBOSITY_SILENT = 0
VERBOSITY_CHANGES = 1
VERBOSITY_CHECKS = 2
VERBOSITY_DEBUG = 3

_LEVELS = {
    VERBOSITY_SILENT: logging.ERROR,
    VERBOSITY_CHANGES: CHANGES_LEVEL,
    VERBOSITY_CHECKS: CHECKS_LEVEL,
    VERBOSITY_DEBUG: logging.DEBUG,
}


class PressPlanLogger(logging.Logger):
    """Logger with one method per scheduler verbosity level."""

    def changes(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log a change to the schedule or the capacity ledger."""
        if self.isEnabledFor(CHANGES_LEVEL):
            self._log(CHANGES_LEVEL, msg, args, **kwargs)

    def checks(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log a scheduling decision that did not change anything."""
        if self.isEnabledFor(CHECKS_LEVEL):
            self._log(CHECKS_LEVEL, msg, args, **kwargs)


def get_logger() -> PressPlanLogger:
    """Return the shared ``pressplan`` logger."""
    logging.setLoggerClass(PressPlanLogger)
    logger = logging.getLogger("pressplan")
    assert isinstance(logger, PressPlanLogger)
    return logger


def setup_logger(verbosity: int, stream: TextIO | None = None) -> None:
    """Route pressplan messages up to ``verbosity`` to ``stream``.

    Safe to call again; the previous handler is replaced. Verbosity above 3 is
    treated as 3.

    Args:
        verbosity: 0=errors only, 1=changes, 2=checks, 3=debug
        stream: Output stream (defaults to sys.stderr)
    """
    logger = get_logger()
    logger.handlers.clear()
    logger.setLevel(_LEVELS[min(max(verbosity, VERBOSITY_SILENT), VERBOSITY_DEBUG)])

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False


def reset_logger() -> None:
    """Drop handlers and return to the silent default."""
    logger = get_logger()
    logger.handlers.clear()
    logger.setLevel(_LEVELS[VERBOSITY_SILENT])


def debug_enabled() -> bool:
    """True at verbosity 3, so callers can skip building debug-only messages."""
    return get_logger().isEnabledFor(logging.DEBUG)
