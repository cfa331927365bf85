"""
Output formatting -- JSON export and plain text.
"""
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict


def create_result_json(
    endpoint_info: Dict[str, Any],
    settings: Dict[str, Any],
    result: Dict[str, Any],
) -> Dict[str, Any]:
    """Build the JSON document written by ``--json`` / ``--output``."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server": endpoint_info,
        "settings": settings,
        "ping": result.get("ping_ms", 0),
        "jitter": result.get("jitter_ms", 0),
        "download_mbps": result.get("download_mbps", 0),
        "upload_mbps": result.get("upload_mbps", 0),
        "latency": result.get("latency", {}),
        "download": result.get("download", {}),
        "upload": result.get("upload", {}),
    }


def create_failure_json(
    endpoint_info: Dict[str, Any],
    phase: str,
    error: str,
    aborted: bool = False,
) -> Dict[str, Any]:
    """JSON document for a run that could not produce a measurement."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server": endpoint_info,
        "status": "aborted" if aborted else "failed",
        "failed_phase": phase,
        "error": error,
    }


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except (IOError, OSError) as exc:
        # Clean up partial temp file
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise IOError(f"Failed to save JSON to {filepath}: {exc}") from exc


def format_text_result(
    ping_ms: float,
    jitter_ms: float,
    download_mbps: float,
    upload_mbps: float,
    server_name: str,
) -> str:
    sep = "=" * 50
    mid = "-" * 50
    return (
        f"{sep}\n"
        f"Speed Test Results\n"
        f"{sep}\n"
        f"Server: {server_name}\n"
        f"{mid}\n"
        f"Ping: {ping_ms:.1f} ms (jitter: {jitter_ms:.2f} ms)\n"
        f"Download: {download_mbps:.2f} Mbps\n"
        f"Upload: {upload_mbps:.2f} Mbps\n"
        f"{sep}"
    )
