"""
Run settings and user configuration file support.

``Settings`` is the immutable configuration snapshot for one run.  It is
built from defaults, the user's ``~/.speedmeter/config.json`` and CLI flags
via :func:`merge_settings`, which validates every option against its
documented bounds.

Supported keys::

    max_duration_seconds = 15.0
    grace_time_seconds = 0.3
    auto_shorten = true
    concurrency = 6
    stagger_delay_ms = 30
    overhead_compensation_factor = 1.08
    min_chunk_bytes = 524288
    max_chunk_bytes = 8388608
    ping_probe_count = 10
    top_fraction = 0.5
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .constants import (
    CHUNK_CEILING,
    CHUNK_FLOOR,
    DEFAULT_CONNECTIONS,
    DEFAULT_DURATION,
    DEFAULT_GRACE_TIME,
    DEFAULT_MAX_CHUNK,
    DEFAULT_MIN_CHUNK,
    DEFAULT_OVERHEAD_FACTOR,
    DEFAULT_PING_COUNT,
    DEFAULT_STAGGER_MS,
    DEFAULT_TOP_FRACTION,
    MAX_CONNECTIONS,
    MAX_DURATION,
    MAX_GRACE_TIME,
    MAX_OVERHEAD_FACTOR,
    MAX_PING_COUNT,
    MAX_STAGGER_MS,
    MIN_CONNECTIONS,
    MIN_DURATION,
    MIN_GRACE_TIME,
    MIN_OVERHEAD_FACTOR,
    MIN_PING_COUNT,
    MIN_STAGGER_MS,
)

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(Path.home(), ".speedmeter")
_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Settings:
    """Immutable configuration snapshot for one test run."""

    max_duration_seconds: float = DEFAULT_DURATION
    grace_time_seconds: float = DEFAULT_GRACE_TIME
    auto_shorten: bool = True
    concurrency: int = DEFAULT_CONNECTIONS
    stagger_delay_ms: float = DEFAULT_STAGGER_MS
    overhead_compensation_factor: float = DEFAULT_OVERHEAD_FACTOR
    min_chunk_bytes: int = DEFAULT_MIN_CHUNK
    max_chunk_bytes: int = DEFAULT_MAX_CHUNK
    ping_probe_count: int = DEFAULT_PING_COUNT
    top_fraction: float = DEFAULT_TOP_FRACTION

    @property
    def max_duration_ms(self) -> float:
        return self.max_duration_seconds * 1000

    @property
    def grace_time_ms(self) -> float:
        return self.grace_time_seconds * 1000

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# name -> (type, lower bound, upper bound, lower bound inclusive)
_BOUNDS: Dict[str, tuple] = {
    "max_duration_seconds": (float, MIN_DURATION, MAX_DURATION, True),
    "grace_time_seconds": (float, MIN_GRACE_TIME, MAX_GRACE_TIME, True),
    "auto_shorten": (bool, None, None, True),
    "concurrency": (int, MIN_CONNECTIONS, MAX_CONNECTIONS, True),
    "stagger_delay_ms": (float, MIN_STAGGER_MS, MAX_STAGGER_MS, True),
    "overhead_compensation_factor": (float, MIN_OVERHEAD_FACTOR, MAX_OVERHEAD_FACTOR, True),
    "min_chunk_bytes": (int, CHUNK_FLOOR, CHUNK_CEILING, True),
    "max_chunk_bytes": (int, CHUNK_FLOOR, CHUNK_CEILING, True),
    "ping_probe_count": (int, MIN_PING_COUNT, MAX_PING_COUNT, True),
    "top_fraction": (float, 0.0, 1.0, False),
}

RECOGNIZED_OPTIONS = tuple(f.name for f in fields(Settings))


def _coerce(name: str, value: Any) -> Any:
    kind, lo, hi, lo_inclusive = _BOUNDS[name]

    if kind is bool:
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be true or false")
        return value

    # bool is an int subclass; reject it for numeric options
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    if kind is int:
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"{name} must be a whole number")
        value = int(value)
    else:
        value = float(value)

    too_low = value < lo if lo_inclusive else value <= lo
    if too_low or value > hi:
        opener = "[" if lo_inclusive else "("
        raise ValueError(f"{name} must be in {opener}{lo}, {hi}]")
    return value


def merge_settings(
    base: Optional[Settings] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Settings:
    """
    Return *base* with every recognized option in *overrides* applied.

    Unknown options and out-of-range values raise ``ValueError``.  ``None``
    values leave the base value untouched.
    """
    base = base or Settings()
    if not overrides:
        return base

    changes: Dict[str, Any] = {}
    for name, value in overrides.items():
        if name not in _BOUNDS:
            raise ValueError(f"Unknown option: {name}")
        if value is None:
            continue
        changes[name] = _coerce(name, value)

    merged = replace(base, **changes)
    if merged.min_chunk_bytes > merged.max_chunk_bytes:
        raise ValueError("min_chunk_bytes must not exceed max_chunk_bytes")
    return merged


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config() -> Dict[str, Any]:
    """Load the raw option mapping from disk (empty if missing or corrupt)."""
    path = _config_path()
    if not os.path.isfile(path):
        return {}

    try:
        with open(path, encoding="utf-8") as fh:
            user = json.load(fh)
    except (json.JSONDecodeError, UnicodeDecodeError, IOError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}

    if not isinstance(user, dict):
        logger.warning("Ignoring config file %s: expected a JSON object", path)
        return {}
    return user


def load_settings(overrides: Optional[Mapping[str, Any]] = None) -> Settings:
    """Defaults, then the config file, then *overrides* (e.g. CLI flags)."""
    return merge_settings(merge_settings(Settings(), load_config()), overrides)


def save_config(config: Mapping[str, Any]) -> str:
    """Write *config* to disk.  Returns the file path."""
    path = _config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(dict(config), fh, indent=2, ensure_ascii=False)

    return path


def get_config_value(key: str) -> Any:
    """Effective value of one option (file value or default)."""
    if key not in RECOGNIZED_OPTIONS:
        raise ValueError(f"Unknown option: {key}")
    return getattr(load_settings(), key)


def set_config_value(key: str, value: Any) -> str:
    """Validate, set a single option and persist.  Returns file path."""
    config = load_config()
    config[key] = value
    merge_settings(Settings(), config)
    return save_config(config)


def config_path() -> str:
    """Return the config file path (for display purposes)."""
    return _config_path()
