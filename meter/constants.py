"""
Shared constants used across all meter modules.

Centralises magic numbers, default endpoints, and tunables so they live in
exactly one place.
"""

# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

USER_AGENT = "netmeter/1.0 (+https://speed.cloudflare.com)"

COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Cache-Control": "no-cache",
}

UPLOAD_HEADERS = {
    "Content-Type": "application/octet-stream",
}

# ---------------------------------------------------------------------------
# Default endpoints
# ---------------------------------------------------------------------------

DOWNLOAD_URL = "https://speed.cloudflare.com/__down?bytes=100000000"
UPLOAD_URL = "https://speed.cloudflare.com/__up"
PING_URL = "https://1.1.1.1"

DEFAULT_SERVER_ID = "cloudflare-1"
DEFAULT_SERVER_NAME = "Cloudflare"
DEFAULT_SERVER_LOCATION = "Global CDN"

# ---------------------------------------------------------------------------
# Connection limits (reserved: phases run on a single connection)
# ---------------------------------------------------------------------------

MIN_CONNECTIONS = 1
MAX_CONNECTIONS = 32
DEFAULT_CONNECTIONS = 4

# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

DEFAULT_PING_COUNT = 10
MIN_PING_COUNT = 1
MAX_PING_COUNT = 100
PING_INTERVAL = 0.1              # 100 ms between probes, success or not

DEFAULT_DURATION = 10            # seconds for download / upload
MIN_DURATION = 5
MAX_DURATION = 60

DEFAULT_TIMEOUT_MS = 30_000

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

CHUNK_SIZE = 64 * 1024           # download read size
UPLOAD_CHUNK_SIZE = 32 * 1024    # one POST body
UPLOAD_FILL = b"A"
BYTES_PER_MEGABIT = 1024 * 1024

# ---------------------------------------------------------------------------
# Progress bands (percent of the whole run)
# ---------------------------------------------------------------------------

PROGRESS_CONNECTING = 0.0
PROGRESS_PING = 10.0
PROGRESS_DOWNLOAD_START = 30.0
PROGRESS_DOWNLOAD_END = 70.0
PROGRESS_UPLOAD_START = 70.0
PROGRESS_UPLOAD_END = 95.0
PROGRESS_COMPLETE = 100.0

EMA_ALPHA = 0.25                 # exponential moving average weight

# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------

DEFAULT_RETRY_ATTEMPTS = 3
MAX_RETRY_ATTEMPTS = 10
RETRY_BASE_DELAY = 2.0           # seconds; attempt k waits base * k

# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

HISTORY_KEY = "speedtest_history"
MAX_HISTORY_ITEMS = 50
