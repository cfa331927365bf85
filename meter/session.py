"""
Run state for one measurement phase.

A ``TestSession`` is owned by a single writer (the pool's sample channel);
workers never touch it directly, they only publish ``TransferSample``
values.  Recording a sample runs it through the grace window filter,
updates the cumulative throughput and feeds the adaptive deadline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .config import Settings
from .control import AdaptiveDeadlineController, GraceWindowFilter


class Phase(str, Enum):
    PING = "ping"
    DOWNLOAD = "download"
    UPLOAD = "upload"


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransferSample:
    """One completed chunk transfer reported by a worker."""

    worker_id: int
    bytes_delta: int
    timestamp_ms: float
    cumulative_bytes: int


@dataclass(frozen=True)
class Progress:
    """Live status pushed to the progress sink."""

    phase: Phase
    fraction: float
    current_speed_mbps: float = 0.0
    current_ping_ms: Optional[float] = None
    current_jitter_ms: Optional[float] = None

    def to_dict(self) -> dict:
        result: dict = {
            "phase": self.phase.value,
            "progress": round(self.fraction, 4),
            "speed_mbps": round(self.current_speed_mbps, 2),
        }
        if self.current_ping_ms is not None:
            result["ping_ms"] = round(self.current_ping_ms, 2)
        if self.current_jitter_ms is not None:
            result["jitter_ms"] = round(self.current_jitter_ms, 2)
        return result


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@dataclass
class TestSession:
    """Aggregate state of a download or upload phase."""

    __test__ = False  # not a pytest test class

    mode: Phase
    settings: Settings
    start_time_ms: float
    grace_elapsed: bool = False
    cumulative_bytes: int = 0
    samples: List[TransferSample] = field(default_factory=list)
    speed_samples_mbps: List[float] = field(default_factory=list)
    current_speed_mbps: float = 0.0
    phase_start_ms: float = field(init=False)
    grace: GraceWindowFilter = field(init=False, repr=False)
    deadline: AdaptiveDeadlineController = field(init=False, repr=False)
    _worker_bytes: Dict[int, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.phase_start_ms = self.start_time_ms
        self.grace = GraceWindowFilter(self.settings.grace_time_ms)
        self.deadline = AdaptiveDeadlineController(
            self.settings.max_duration_ms,
            auto_shorten=self.settings.auto_shorten,
        )

    # -- Derived ------------------------------------------------------------

    @property
    def bonus_time_ms(self) -> float:
        return self.deadline.bonus_time_ms

    def elapsed_ms(self, now_ms: float) -> float:
        return now_ms - self.start_time_ms

    def expired(self, now_ms: float) -> bool:
        return self.deadline.expired(self.elapsed_ms(now_ms))

    def progress(self, now_ms: float) -> float:
        return self.deadline.progress(self.elapsed_ms(now_ms))

    # -- Mutation -----------------------------------------------------------

    def rebase(self, now_ms: float) -> None:
        """Restart the measurement window at *now_ms*, dropping warm-up data."""
        self.start_time_ms = now_ms
        self.cumulative_bytes = 0
        self.speed_samples_mbps = []
        self.current_speed_mbps = 0.0
        self.deadline.reset()

    def record(self, sample: TransferSample) -> bool:
        """
        Log *sample* and fold it into the estimate.

        Returns True when the sample produced a new speed value (i.e. it was
        past the grace window and had a positive elapsed time).
        """
        if sample.bytes_delta < 0:
            raise ValueError("bytes_delta must be non-negative")
        previous = self._worker_bytes.get(sample.worker_id, 0)
        if sample.cumulative_bytes < previous:
            raise ValueError(f"cumulative bytes went backwards for worker {sample.worker_id}")
        self._worker_bytes[sample.worker_id] = sample.cumulative_bytes
        self.samples.append(sample)

        self.cumulative_bytes += sample.bytes_delta
        if not self.grace.admit(self, sample.timestamp_ms):
            return False

        elapsed = self.elapsed_ms(sample.timestamp_ms)
        if elapsed <= 0:
            # completed before the re-base instant; counts as bytes only
            return False

        speed = (self.cumulative_bytes * 8) / (elapsed / 1000) / 1_000_000
        self.speed_samples_mbps.append(speed)
        self.current_speed_mbps = speed * self.settings.overhead_compensation_factor
        self.deadline.update(self.current_speed_mbps)
        return True
