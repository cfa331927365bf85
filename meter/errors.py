"""
Error taxonomy for the measurement engine.

Per-chunk failures (``TransientTransferError``) are recovered inside the
workers and never reach the caller.  Phase-level outcomes surface as a
single terminal error that names the phase it ended.
"""
from __future__ import annotations

from typing import Optional


class SpeedTestError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(self, message: str, phase: Optional[object] = None) -> None:
        super().__init__(message)
        self.phase = phase


class TransientTransferError(SpeedTestError):
    """A single chunk request or probe failed (timeout, status, network)."""


class NoDataTransferredError(SpeedTestError):
    """A phase finished without recording any bytes after the grace window."""

    def __init__(self, phase: object) -> None:
        super().__init__(f"No data transferred during {_name(phase)} phase", phase)


class InsufficientSamplesError(SpeedTestError):
    """Aggregation was asked to reduce an empty sample set."""

    def __init__(self, phase: Optional[object] = None) -> None:
        super().__init__("No speed samples to aggregate", phase)


class AbortedError(SpeedTestError):
    """The caller cancelled the run."""

    def __init__(self, phase: Optional[object] = None) -> None:
        where = f" during {_name(phase)} phase" if phase is not None else ""
        super().__init__(f"Test aborted{where}", phase)


def _name(phase: object) -> str:
    return getattr(phase, "value", str(phase))
