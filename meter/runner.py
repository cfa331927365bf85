"""
Full test sequence: ping, then download, then upload.

The sequence halts on the first phase that fails or is aborted.  A failed
phase is reported by raising its error (``SpeedTest.failed_phase`` keeps
the phase name), so "measured almost nothing" and "could not measure" never
look alike to the caller.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .config import Settings
from .errors import AbortedError
from .latency import PingJitterEstimator, PingResult
from .pool import PhaseResult, WorkerPool
from .retry import RetryPolicy
from .session import Phase, Progress

logger = logging.getLogger(__name__)


class TestState(Enum):
    __test__ = False  # not a pytest test class

    NOT_STARTED = "not_started"
    STARTING = "starting"
    PING = "ping"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    FINISHED = "finished"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class SpeedTestResult:
    """Final numbers for one complete run."""

    download_mbps: float
    upload_mbps: float
    ping_ms: float
    jitter_ms: float
    ping: Optional[PingResult] = None
    download: Optional[PhaseResult] = None
    upload: Optional[PhaseResult] = None

    def to_dict(self) -> dict:
        result: dict = {
            "download_mbps": round(self.download_mbps, 2),
            "upload_mbps": round(self.upload_mbps, 2),
            "ping_ms": round(self.ping_ms, 2),
            "jitter_ms": round(self.jitter_ms, 3),
        }
        if self.ping:
            result["latency"] = self.ping.to_dict()
        if self.download:
            result["download"] = self.download.to_dict()
        if self.upload:
            result["upload"] = self.upload.to_dict()
        return result


class SpeedTest:
    """
    Runs ping, download and upload against one transport.

    *transport* must implement ``probe``, ``request_chunk`` and
    ``send_chunk`` (see ``meter.transport``).  A fresh worker pool is built
    for every phase; nothing is reused across phases.
    """

    def __init__(
        self,
        transport,
        settings: Optional[Settings] = None,
        *,
        retry: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.perf_counter,
        probe_delay: Optional[float] = None,
    ) -> None:
        self.transport = transport
        self.settings = settings or Settings()
        self.retry = retry or RetryPolicy()
        self.clock = clock
        self.probe_delay = probe_delay
        self.on_progress: Optional[Callable[[Progress], None]] = None
        self.state = TestState.NOT_STARTED
        self.failed_phase: Optional[Phase] = None
        self._stop = asyncio.Event()

    def abort(self) -> None:
        """Ask every running phase to stop at its next loop boundary."""
        self._stop.set()

    def _emit(self, progress: Progress) -> None:
        if self.on_progress:
            self.on_progress(progress)

    async def _measure_ping(self) -> PingResult:
        estimator = PingJitterEstimator(self.transport, retry=self.retry, stop=self._stop)
        if self.probe_delay is not None:
            estimator.probe_delay = self.probe_delay
        estimator.on_progress = self._emit
        return await estimator.measure(self.settings.ping_probe_count)

    async def _measure_transfer(self, phase: Phase) -> PhaseResult:
        pool = WorkerPool(self.transport, retry=self.retry, clock=self.clock, stop=self._stop)
        pool.on_progress = self._emit
        return await pool.run(phase, self.settings)

    async def run(self) -> SpeedTestResult:
        self.state = TestState.STARTING
        self.failed_phase = None
        phase = Phase.PING

        try:
            self.state = TestState.PING
            ping = await self._measure_ping()

            phase = Phase.DOWNLOAD
            self.state = TestState.DOWNLOAD
            download = await self._measure_transfer(phase)

            phase = Phase.UPLOAD
            self.state = TestState.UPLOAD
            upload = await self._measure_transfer(phase)
        except AbortedError:
            self.state = TestState.ABORTED
            raise
        except Exception:
            self.state = TestState.FAILED
            self.failed_phase = phase
            logger.error("%s phase failed; remaining phases skipped", phase.value)
            raise

        self.state = TestState.FINISHED
        return SpeedTestResult(
            download_mbps=download.speed_mbps,
            upload_mbps=upload.speed_mbps,
            ping_ms=ping.ping_ms,
            jitter_ms=ping.jitter_ms,
            ping=ping,
            download=download,
            upload=upload,
        )
