"""
Sequential ping / jitter measurement.

Probes are never concurrent: queueing behind another in-flight probe would
inflate the round-trip times.  Ping is the minimum RTT (closest to the
unloaded latency); jitter is an asymmetric moving average of successive
RTT differences that climbs fast on spikes and decays slowly.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .constants import DEFAULT_PING_COUNT, PING_PROBE_DELAY
from .errors import AbortedError, NoDataTransferredError, TransientTransferError
from .retry import RetryPolicy
from .session import Phase, Progress

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tunables
# ---------------------------------------------------------------------------

JITTER_RISE_WEIGHT = 0.7    # weight of the new delta when it exceeds the estimate
JITTER_FALL_WEIGHT = 0.2    # weight of the new delta when it is smaller


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class PingRecord:
    """A single probe round trip."""

    sequence_index: int
    round_trip_ms: float


@dataclass
class PingResult:
    """Min-latency and smoothed jitter built up one probe at a time."""

    records: List[PingRecord] = field(default_factory=list)
    ping_ms: float = 0.0
    jitter_ms: float = 0.0
    attempts: int = 0

    @property
    def pings(self) -> List[float]:
        return [r.round_trip_ms for r in self.records]

    @property
    def packet_loss(self) -> float:
        if self.attempts == 0:
            return 0.0
        return (1 - len(self.records) / self.attempts) * 100

    def add(self, round_trip_ms: float) -> None:
        """Fold one successful probe into ping and jitter."""
        count = len(self.records)
        if count == 0:
            self.ping_ms = round_trip_ms
        else:
            self.ping_ms = min(self.ping_ms, round_trip_ms)
            delta = abs(round_trip_ms - self.records[-1].round_trip_ms)
            if count == 1:
                self.jitter_ms = delta
            elif delta > self.jitter_ms:
                self.jitter_ms = (1 - JITTER_RISE_WEIGHT) * self.jitter_ms + JITTER_RISE_WEIGHT * delta
            else:
                self.jitter_ms = (1 - JITTER_FALL_WEIGHT) * self.jitter_ms + JITTER_FALL_WEIGHT * delta
        self.records.append(PingRecord(sequence_index=count, round_trip_ms=round_trip_ms))

    def to_dict(self) -> dict:
        return {
            "ping_ms": round(self.ping_ms, 2),
            "jitter_ms": round(self.jitter_ms, 3),
            "pings": [round(p, 1) for p in self.pings],
            "attempts": self.attempts,
            "packet_loss": round(self.packet_loss, 1),
        }


# ---------------------------------------------------------------------------
# Estimator
# ---------------------------------------------------------------------------

class PingJitterEstimator:
    """Issue sequential round-trip probes and track ping / jitter."""

    def __init__(
        self,
        transport,  # noqa: ANN001 (PingTransport)
        *,
        probe_delay: float = PING_PROBE_DELAY,
        retry: Optional[RetryPolicy] = None,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        self._transport = transport
        self.probe_delay = probe_delay
        self._retry = retry or RetryPolicy()
        self._stop = stop if stop is not None else asyncio.Event()
        self.on_progress: Optional[Callable[[Progress], None]] = None

    def abort(self) -> None:
        self._stop.set()

    async def _pause(self, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def measure(self, probe_count: int = DEFAULT_PING_COUNT) -> PingResult:
        result = PingResult()
        failures = 0

        for i in range(probe_count):
            if self._stop.is_set():
                raise AbortedError(Phase.PING)

            result.attempts += 1
            try:
                rtt = await self._transport.probe()
            except TransientTransferError as exc:
                failures += 1
                if self._retry.exhausted(failures):
                    logger.warning("Ping stopped after %d consecutive failures: %s", failures, exc)
                    break
                logger.debug("Probe %d failed: %s", i, exc)
                await self._pause(self._retry.delay(failures))
                continue

            failures = 0
            result.add(rtt)

            if self.on_progress:
                self.on_progress(
                    Progress(
                        phase=Phase.PING,
                        fraction=(i + 1) / probe_count,
                        current_ping_ms=rtt,
                        current_jitter_ms=result.jitter_ms,
                    )
                )

            if i < probe_count - 1:
                await self._pause(self.probe_delay)

        if self._stop.is_set():
            raise AbortedError(Phase.PING)
        if not result.records:
            raise NoDataTransferredError(Phase.PING)

        logger.info(
            "Ping %.1f ms, jitter %.2f ms over %d probes",
            result.ping_ms, result.jitter_ms, len(result.records),
        )
        return result
