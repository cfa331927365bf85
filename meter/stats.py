"""
Network measurement statistics.

Pure functions and lightweight dataclasses -- no I/O, no side effects.
Everything here is deterministic and easy to unit-test.
"""
from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import Iterable, Optional

from .constants import DEFAULT_TOP_FRACTION
from .errors import InsufficientSamplesError


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ConnectionStats:
    """Per-worker statistics collected during a download / upload phase."""

    id: int = 0
    bytes_transferred: int = 0
    chunks: int = 0
    errors: int = 0
    duration_ms: float = 0.0
    speed_mbps: float = 0.0
    last_chunk_bytes: int = 0

    def calculate(self) -> None:
        if self.duration_ms > 0:
            self.speed_mbps = (
                (self.bytes_transferred * 8) / (self.duration_ms / 1000) / 1_000_000
            )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bytes": self.bytes_transferred,
            "chunks": self.chunks,
            "errors": self.errors,
            "duration_ms": round(self.duration_ms, 2),
            "speed_mbps": round(self.speed_mbps, 2),
        }


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def aggregate_speed(
    samples: Iterable[float],
    top_fraction: float = DEFAULT_TOP_FRACTION,
    overhead_factor: float = 1.0,
    phase: Optional[object] = None,
) -> float:
    """
    Reduce speed samples to one number: mean of the best *top_fraction*.

    Dips from packet loss or competing traffic are dropped instead of
    dragging the result down.  At least one sample is always averaged.
    """
    ordered = sorted(samples, reverse=True)
    if not ordered:
        raise InsufficientSamplesError(phase)
    if not 0 < top_fraction <= 1:
        raise ValueError("top_fraction must be in (0, 1]")

    count = max(1, int(len(ordered) * top_fraction))
    return statistics.mean(ordered[:count]) * overhead_factor


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(speed_mbps: float) -> str:
    """Human-readable speed string."""
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.2f} Mbps"


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"
