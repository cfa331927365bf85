"""
Transfer transports.

The engine only needs three awaitables: fetch *n* bytes, send a buffer,
and time a minimal round trip.  They are described as protocols so tests
and alternative back-ends can plug in; ``HttpTransport`` implements them
over a single ``aiohttp.ClientSession`` managed via async-context-manager
protocol (``async with HttpTransport() as transport: ...``).
"""
from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Union

import aiohttp

from .constants import (
    CONNECT_TIMEOUT,
    DEFAULT_BASE_URL,
    DEFAULT_CONNECTIONS,
    DOWNLOAD_PATH,
    NO_CACHE_HEADERS,
    READ_BLOCK_SIZE,
    REQUEST_TIMEOUT,
    UPLOAD_PATH,
)
from .errors import TransientTransferError

Buffer = Union[bytes, bytearray, memoryview]


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class DownloadTransport(Protocol):
    async def request_chunk(self, size: int) -> int:
        """Fetch *size* bytes; return the number of bytes actually received."""


class UploadTransport(Protocol):
    async def send_chunk(self, buffer: Buffer) -> bool:
        """Send *buffer* and wait for the server's acknowledgement."""


class PingTransport(Protocol):
    async def probe(self) -> float:
        """Perform one minimal round trip; return its duration in ms."""


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Endpoint:
    """Download / upload / ping URLs of one speed-test server."""

    name: str
    download_url: str
    upload_url: str
    ping_url: str

    @classmethod
    def from_base_url(cls, base_url: str, name: Optional[str] = None) -> Endpoint:
        """Cloudflare-style layout: ``/__down?bytes=N`` and ``/__up``."""
        base = base_url.rstrip("/")
        return cls(
            name=name or base,
            download_url=f"{base}{DOWNLOAD_PATH}",
            upload_url=f"{base}{UPLOAD_PATH}",
            ping_url=f"{base}{DOWNLOAD_PATH}?bytes=0",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "download_url": self.download_url,
            "upload_url": self.upload_url,
            "ping_url": self.ping_url,
        }


CLOUDFLARE = Endpoint.from_base_url(DEFAULT_BASE_URL, name="Cloudflare")


def _add_query(url: str, **params: Any) -> str:
    query = "&".join(f"{key}={value}" for key, value in params.items())
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{query}"


def _nonce() -> str:
    return f"{random.random():.12f}"[2:]


# ---------------------------------------------------------------------------
# HTTP transport
# ---------------------------------------------------------------------------

class HttpTransport:
    """aiohttp implementation of all three transport protocols."""

    def __init__(
        self,
        endpoint: Endpoint = CLOUDFLARE,
        connections: int = DEFAULT_CONNECTIONS,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.endpoint = endpoint
        self.connections = connections
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    # -- Context manager ----------------------------------------------------

    async def __aenter__(self) -> HttpTransport:
        connector = aiohttp.TCPConnector(
            limit=self.connections,
            limit_per_host=self.connections,
            force_close=False,
        )
        timeout = aiohttp.ClientTimeout(
            total=self.timeout,
            connect=CONNECT_TIMEOUT,
            sock_read=self.timeout,
        )
        self._session = aiohttp.ClientSession(
            headers=NO_CACHE_HEADERS,
            connector=connector,
            timeout=timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    # -- Internal helpers ---------------------------------------------------

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(
                "HttpTransport must be used as an async context manager "
                "(async with HttpTransport() as transport: ...)"
            )
        return self._session

    # -- Protocol methods ---------------------------------------------------

    async def request_chunk(self, size: int) -> int:
        session = self._ensure_session()
        url = _add_query(self.endpoint.download_url, bytes=size, r=_nonce())
        received = 0

        try:
            async with session.get(url) as resp:
                if not 200 <= resp.status < 300:
                    raise TransientTransferError(f"Download failed: HTTP {resp.status}")
                async for block in resp.content.iter_chunked(READ_BLOCK_SIZE):
                    received += len(block)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise TransientTransferError(f"Download failed: {exc}") from exc

        if received == 0:
            raise TransientTransferError("Download returned no data")
        return received

    async def send_chunk(self, buffer: Buffer) -> bool:
        session = self._ensure_session()
        url = _add_query(self.endpoint.upload_url, r=_nonce())

        try:
            async with session.post(
                url,
                data=buffer,
                headers={"Content-Type": "application/octet-stream"},
            ) as resp:
                await resp.read()
                if not 200 <= resp.status < 300:
                    raise TransientTransferError(f"Upload failed: HTTP {resp.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise TransientTransferError(f"Upload failed: {exc}") from exc
        return True

    async def probe(self) -> float:
        session = self._ensure_session()
        url = _add_query(self.endpoint.ping_url, r=_nonce())

        start = time.perf_counter()
        try:
            async with session.get(url) as resp:
                await resp.read()
                if not 200 <= resp.status < 300:
                    raise TransientTransferError(f"Ping failed: HTTP {resp.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise TransientTransferError(f"Ping failed: {exc}") from exc
        return (time.perf_counter() - start) * 1000
