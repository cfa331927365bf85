"""Adaptive bandwidth measurement engine -- workers, estimation, and transports."""

from .config import Settings, load_settings, merge_settings
from .errors import (
    AbortedError,
    InsufficientSamplesError,
    NoDataTransferredError,
    SpeedTestError,
    TransientTransferError,
)
from .latency import PingJitterEstimator, PingRecord, PingResult
from .payload import PayloadSource, generate_payload
from .pool import PhaseResult, SampleChannel, WorkerPool
from .retry import RetryPolicy
from .runner import SpeedTest, SpeedTestResult, TestState
from .session import Phase, Progress, TestSession, TransferSample
from .stats import ConnectionStats, aggregate_speed, format_latency, format_speed
from .transport import CLOUDFLARE, Endpoint, HttpTransport
from .worker import TransferWorker, WorkerState, next_chunk_size

__all__ = [
    "AbortedError",
    "CLOUDFLARE",
    "ConnectionStats",
    "Endpoint",
    "HttpTransport",
    "InsufficientSamplesError",
    "NoDataTransferredError",
    "PayloadSource",
    "Phase",
    "PhaseResult",
    "PingJitterEstimator",
    "PingRecord",
    "PingResult",
    "Progress",
    "RetryPolicy",
    "SampleChannel",
    "Settings",
    "SpeedTest",
    "SpeedTestError",
    "SpeedTestResult",
    "TestSession",
    "TestState",
    "TransferSample",
    "TransferWorker",
    "TransientTransferError",
    "WorkerPool",
    "WorkerState",
    "aggregate_speed",
    "format_latency",
    "format_speed",
    "generate_payload",
    "load_settings",
    "merge_settings",
    "next_chunk_size",
]
