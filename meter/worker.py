"""
One concurrent transfer stream.

A worker staggers its start, then loops: pick a chunk size from its own
recent throughput, transfer one chunk, publish a ``TransferSample``.  It
stops cooperatively -- the deadline and the abort flag are checked at loop
boundaries, never in the middle of a request.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .constants import CHUNK_DECAY, CHUNK_GROWTH, FAST_CHUNK_MBPS
from .errors import TransientTransferError
from .payload import PayloadSource
from .retry import RetryPolicy
from .session import Phase, TestSession, TransferSample
from .stats import ConnectionStats

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    STAGGERING = "staggering"
    ACTIVE = "active"
    DONE = "done"


def next_chunk_size(
    previous: int,
    last_mbps: float,
    min_bytes: int,
    max_bytes: int,
    growth: float = CHUNK_GROWTH,
    decay: float = CHUNK_DECAY,
    fast_mbps: float = FAST_CHUNK_MBPS,
) -> int:
    """Grow the chunk on fast links, shrink it otherwise, within bounds."""
    size = previous * growth if last_mbps > fast_mbps else previous * decay
    return int(max(min_bytes, min(max_bytes, size)))


class TransferWorker:
    """Drives one download or upload stream for a single phase."""

    def __init__(
        self,
        worker_id: int,
        transport,  # noqa: ANN001 (DownloadTransport | UploadTransport)
        session: TestSession,
        publish: Callable[[TransferSample], None],
        *,
        stop: asyncio.Event,
        clock: Callable[[], float],
        retry: Optional[RetryPolicy] = None,
        payloads: Optional[PayloadSource] = None,
    ) -> None:
        self.worker_id = worker_id
        self.state = WorkerState.IDLE
        self.stats = ConnectionStats(id=worker_id)

        self._transport = transport
        self._session = session
        self._publish = publish
        self._stop = stop
        self._clock = clock
        self._retry = retry or RetryPolicy()
        self._payloads = payloads

        settings = session.settings
        self._min_chunk = settings.min_chunk_bytes
        self._max_chunk = settings.max_chunk_bytes
        self._stagger = worker_id * settings.stagger_delay_ms / 1000
        self._chunk_size = settings.min_chunk_bytes
        self._last_mbps = 0.0
        self._cumulative = 0

        if session.mode is Phase.UPLOAD and self._payloads is None:
            self._payloads = PayloadSource(settings.max_chunk_bytes)

    # -- Helpers ------------------------------------------------------------

    def _should_stop(self) -> bool:
        return self._stop.is_set() or self._session.expired(self._clock() * 1000)

    async def _pause(self, seconds: float) -> None:
        """Sleep that wakes early when the pool is stopped."""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _transfer(self, size: int) -> int:
        if self._session.mode is Phase.DOWNLOAD:
            return await self._transport.request_chunk(size)

        buffer = self._payloads.get(size)
        if not await self._transport.send_chunk(buffer):
            raise TransientTransferError("Upload was not acknowledged")
        return len(buffer)

    # -- Main loop ----------------------------------------------------------

    async def run(self) -> ConnectionStats:
        self.state = WorkerState.STAGGERING
        await self._pause(self._stagger)
        self.state = WorkerState.ACTIVE

        started = self._clock()
        failures = 0

        try:
            while not self._should_stop():
                size = next_chunk_size(
                    self._chunk_size, self._last_mbps, self._min_chunk, self._max_chunk
                )
                t0 = self._clock()
                try:
                    received = await self._transfer(size)
                    if received <= 0:
                        raise TransientTransferError("Empty transfer")
                except TransientTransferError as exc:
                    failures += 1
                    self.stats.errors += 1
                    if self._retry.exhausted(failures):
                        logger.warning(
                            "Worker %d stopping after %d consecutive failures: %s",
                            self.worker_id, failures, exc,
                        )
                        break
                    logger.debug("Worker %d chunk failed (%s); retrying", self.worker_id, exc)
                    self._chunk_size = self._min_chunk
                    self._last_mbps = 0.0
                    await self._pause(self._retry.delay(failures))
                    continue

                t1 = self._clock()
                failures = 0
                self._cumulative += received
                self._publish(
                    TransferSample(
                        worker_id=self.worker_id,
                        bytes_delta=received,
                        timestamp_ms=t1 * 1000,
                        cumulative_bytes=self._cumulative,
                    )
                )

                self.stats.bytes_transferred += received
                self.stats.chunks += 1
                self.stats.last_chunk_bytes = size
                self._chunk_size = size
                if t1 > t0:
                    self._last_mbps = (received * 8) / (t1 - t0) / 1_000_000
        finally:
            self.state = WorkerState.DONE
            self.stats.duration_ms = (self._clock() - started) * 1000
            self.stats.calculate()

        return self.stats
