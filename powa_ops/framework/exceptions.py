"""Exceptions raised by the collector and the statistics extractor."""

from __future__ import annotations

from enum import Enum


class PowaError(Exception):
    """Base class for powa-ops errors."""


class ConfigError(PowaError):
    """A setting could not be parsed or is out of range."""


class ExtractionContractError(PowaError):
    """The caller cannot accept the materialized result it asked for."""


class ExitReason(Enum):
    DEACTIVATED = "deactivated"
    FREQUENCY_TOO_SMALL = "frequency_too_small"
    DISABLED_AT_RUNTIME = "disabled_at_runtime"
    SHUTDOWN_REQUESTED = "shutdown_requested"
    PARENT_DIED = "parent_died"


class WorkerExit(SystemExit):
    """
    Terminates the worker process.

    The status is always non-zero so a supervisor never mistakes a stopped
    collector for a clean, permanent shutdown.
    """

    def __init__(self, reason: ExitReason, code: int = 1):
        super().__init__(code)
        self.reason = reason

    def __str__(self):
        return f"worker exit ({self.reason.value}, status {self.code})"
