"""
Worker pool for download and upload phases.

The pool launches ``settings.concurrency`` staggered workers, funnels their
samples through a single-writer ``SampleChannel`` into the phase's
``TestSession``, and reduces the collected speed samples to one number
once every worker has finished.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .config import Settings
from .errors import AbortedError, NoDataTransferredError
from .payload import PayloadSource
from .retry import RetryPolicy
from .session import Phase, Progress, TestSession, TransferSample
from .stats import ConnectionStats, aggregate_speed
from .worker import TransferWorker

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class PhaseResult:
    """Download or upload phase result."""

    phase: Phase
    speed_mbps: float = 0.0
    bytes_total: int = 0
    duration_ms: float = 0.0
    bonus_time_ms: float = 0.0
    sample_count: int = 0
    samples: List[float] = field(default_factory=list)
    connections: List[ConnectionStats] = field(default_factory=list)

    @property
    def speed_bps(self) -> float:
        return self.speed_mbps * 1_000_000

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "speed_bps": round(self.speed_bps, 2),
            "speed_mbps": round(self.speed_mbps, 2),
            "bytes_total": self.bytes_total,
            "duration_ms": round(self.duration_ms, 2),
            "bonus_time_ms": round(self.bonus_time_ms, 2),
            "sample_count": self.sample_count,
            "connections": [c.to_dict() for c in self.connections],
            "samples": [round(s, 2) for s in self.samples],
        }


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------

class SampleChannel:
    """
    Single-writer hand-off from workers to a session.

    Workers ``publish`` without awaiting; one drain task applies samples to
    the session in arrival order, so concurrent completions never race on
    the shared counters.
    """

    def __init__(
        self,
        session: TestSession,
        on_record: Optional[Callable[[TestSession], None]] = None,
    ) -> None:
        self._session = session
        self._on_record = on_record
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self.published = 0

    async def __aenter__(self) -> SampleChannel:
        self._task = asyncio.create_task(self._drain())
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def publish(self, sample: TransferSample) -> None:
        self.published += 1
        self._queue.put_nowait(sample)

    async def close(self) -> None:
        """Drain everything published so far, then stop."""
        if self._task is None:
            return
        self._queue.put_nowait(None)
        task, self._task = self._task, None
        await task

    async def _drain(self) -> None:
        while True:
            sample = await self._queue.get()
            if sample is None:
                return
            if self._session.record(sample) and self._on_record:
                self._on_record(self._session)


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------

class WorkerPool:
    """
    Runs one download or upload phase with concurrent workers.

    ``abort()`` is cooperative: workers notice it at their next loop
    boundary, so an in-flight chunk is allowed to finish.
    """

    def __init__(
        self,
        transport,  # noqa: ANN001 (DownloadTransport | UploadTransport)
        *,
        retry: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.perf_counter,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        self._transport = transport
        self._retry = retry or RetryPolicy()
        self._clock = clock
        self._stop = stop if stop is not None else asyncio.Event()
        self.on_progress: Optional[Callable[[Progress], None]] = None
        self.session: Optional[TestSession] = None

    def abort(self) -> None:
        self._stop.set()

    @property
    def aborted(self) -> bool:
        return self._stop.is_set()

    def _report(self, session: TestSession) -> None:
        if self.on_progress:
            self.on_progress(
                Progress(
                    phase=session.mode,
                    fraction=session.progress(self._clock() * 1000),
                    current_speed_mbps=session.current_speed_mbps,
                )
            )

    async def run(self, mode: Phase, settings: Settings) -> PhaseResult:
        if mode is Phase.PING:
            raise ValueError("Ping is measured by PingJitterEstimator, not WorkerPool")
        if self.aborted:
            raise AbortedError(mode)

        session = TestSession(mode=mode, settings=settings, start_time_ms=self._clock() * 1000)
        self.session = session
        payloads = PayloadSource(settings.max_chunk_bytes) if mode is Phase.UPLOAD else None

        logger.info(
            "Starting %s phase: %d streams, %.1f s max, %.1f s grace",
            mode.value, settings.concurrency, settings.max_duration_seconds,
            settings.grace_time_seconds,
        )

        async with SampleChannel(session, self._report) as channel:
            workers = [
                TransferWorker(
                    i,
                    self._transport,
                    session,
                    channel.publish,
                    stop=self._stop,
                    clock=self._clock,
                    retry=self._retry,
                    payloads=payloads,
                )
                for i in range(settings.concurrency)
            ]
            tasks = [asyncio.create_task(w.run()) for w in workers]
            try:
                connections = await asyncio.gather(*tasks)
            except BaseException:
                for t in tasks:
                    t.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

        if self.aborted:
            logger.info("%s phase aborted", mode.value)
            raise AbortedError(mode)
        # bytes that all landed on the re-base instant yield no speed sample
        if not session.grace_elapsed or session.cumulative_bytes == 0 or not session.speed_samples_mbps:
            raise NoDataTransferredError(mode)

        speed = aggregate_speed(
            session.speed_samples_mbps,
            top_fraction=settings.top_fraction,
            overhead_factor=settings.overhead_compensation_factor,
            phase=mode,
        )

        result = PhaseResult(
            phase=mode,
            speed_mbps=speed,
            bytes_total=session.cumulative_bytes,
            duration_ms=self._clock() * 1000 - session.start_time_ms,
            bonus_time_ms=session.bonus_time_ms,
            sample_count=len(session.samples),
            samples=list(session.speed_samples_mbps),
            connections=list(connections),
        )

        if self.on_progress:
            self.on_progress(Progress(phase=mode, fraction=1.0, current_speed_mbps=speed))

        logger.info(
            "%s phase finished: %.2f Mbps from %d samples in %.1f s",
            mode.value, speed, len(result.samples), result.duration_ms / 1000,
        )
        return result
