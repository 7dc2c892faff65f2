"""Error types and the reporting funnel.

Only construction errors reach application code as exceptions. Everything the
engine catches later (recomputation failures, async rejections, mount cleanup
failures) goes through a single injectable reporter.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger("recoilx.errors")

ErrorReporter = Callable[[Exception], None]


class RecoilxError(Exception):
    """Base class for errors raised by recoilx."""


class MissingStateRootError(RecoilxError, RuntimeError):
    """State was requested outside of any bound StateRoot."""

    def __init__(self, message: str = "recoilx StateRoot context is missing") -> None:
        super().__init__(message)


class ReadOnlyStateError(RecoilxError, TypeError):
    """set() was called on a selector without a write function."""


class ClosedAccessError(RecoilxError):
    """An access facade was used after its instance was torn down."""


class Suspend(Exception):
    """Not ready yet: retry once `future` resolves.

    Raised by State.read() while the value is PENDING. Hosts catch it, wait on
    the future and read again.
    """

    def __init__(self, future, label: str | None = None) -> None:
        super().__init__(f"{label or 'state'} is pending")
        self.future = future


def _log_report(error: Exception) -> None:
    logger.error("Unhandled state error: %s", error, exc_info=error)


def report_error(report: ErrorReporter | None = None) -> Callable[[object, str], None]:
    """Build the (error, fallback_message) funnel around a reporter.

    Without a reporter, errors are logged.
    """
    sink = report or _log_report

    def on_error(error: object, fallback_message: str) -> None:
        logger.debug("%s: %r", fallback_message, error)
        if isinstance(error, Exception):
            sink(error)
            return
        sink(RecoilxError(fallback_message))

    return on_error
