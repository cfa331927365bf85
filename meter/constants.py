"""
Shared constants used across all meter modules.

Centralises defaults, bounds, and tunables so they live in exactly one
place.
"""

# ---------------------------------------------------------------------------
# HTTP headers (caching must never shortcut a transfer)
# ---------------------------------------------------------------------------

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) speedmeter/1.0"

NO_CACHE_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Encoding": "identity",
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
}

# ---------------------------------------------------------------------------
# Default endpoint (Cloudflare speed service)
# ---------------------------------------------------------------------------

DEFAULT_BASE_URL = "https://speed.cloudflare.com"
DOWNLOAD_PATH = "/__down"
UPLOAD_PATH = "/__up"

# ---------------------------------------------------------------------------
# Connection limits
# ---------------------------------------------------------------------------

MIN_CONNECTIONS = 1
MAX_CONNECTIONS = 32
DEFAULT_CONNECTIONS = 6

# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

DEFAULT_DURATION = 15.0          # seconds per download / upload phase
MIN_DURATION = 1.0
MAX_DURATION = 300.0

DEFAULT_GRACE_TIME = 0.3         # warm-up excluded from the estimate
MIN_GRACE_TIME = 0.0
MAX_GRACE_TIME = 10.0

DEFAULT_STAGGER_MS = 30.0        # delay between worker start-ups
MIN_STAGGER_MS = 0.0
MAX_STAGGER_MS = 1000.0

DEFAULT_PING_COUNT = 10
MIN_PING_COUNT = 1
MAX_PING_COUNT = 100
PING_PROBE_DELAY = 0.1           # seconds between sequential probes

REQUEST_TIMEOUT = 30.0           # per-request ceiling
CONNECT_TIMEOUT = 5.0

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

KIB = 1024
MIB = 1024 * 1024

DEFAULT_MIN_CHUNK = 512 * KIB
DEFAULT_MAX_CHUNK = 8 * MIB
CHUNK_FLOOR = 16 * KIB
CHUNK_CEILING = 64 * MIB

CHUNK_GROWTH = 1.3               # applied when the last chunk was fast
CHUNK_DECAY = 0.9
FAST_CHUNK_MBPS = 50.0           # per-worker "fast" threshold

READ_BLOCK_SIZE = 256 * KIB      # streaming read size for download bodies
PAYLOAD_BLOCK_SIZE = 64 * KIB    # random block tiled into upload payloads

# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------

DEFAULT_OVERHEAD_FACTOR = 1.08
MIN_OVERHEAD_FACTOR = 1.0
MAX_OVERHEAD_FACTOR = 1.5

DEFAULT_TOP_FRACTION = 0.5       # share of best samples averaged

BONUS_MS_PER_MBPS = 0.5          # auto-shorten bonus per sample
BONUS_STEP_CAP_MS = 100.0
BONUS_TOTAL_CAP_MS = 5000.0

# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------

MAX_CONSECUTIVE_FAILURES = 3
BACKOFF_BASE = 0.1               # seconds
BACKOFF_MAX = 1.0
