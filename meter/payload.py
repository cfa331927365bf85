"""
Random upload payloads.

A single random block is tiled to the requested size: the bytes only need
to look incompressible to the server, not carry full entropy.
"""
from __future__ import annotations

import os

from .constants import PAYLOAD_BLOCK_SIZE


def generate_payload(size: int, block_size: int = PAYLOAD_BLOCK_SIZE) -> bytes:
    """Return *size* bytes built from one repeated random block."""
    if size < 0:
        raise ValueError("size must be non-negative")
    if size == 0:
        return b""

    block = os.urandom(min(block_size, size))
    repeats, remainder = divmod(size, len(block))
    return block * repeats + block[:remainder]


class PayloadSource:
    """
    Reusable upload buffer.

    The buffer is generated once at the largest size requested so far and
    smaller requests are served as zero-copy slices of it.
    """

    def __init__(self, initial_size: int = 0) -> None:
        self._buffer = generate_payload(initial_size)
        self._view = memoryview(self._buffer)

    @property
    def capacity(self) -> int:
        return len(self._buffer)

    def get(self, size: int) -> memoryview:
        if size > len(self._buffer):
            self._buffer = generate_payload(size)
            self._view = memoryview(self._buffer)
        return self._view[:size]
