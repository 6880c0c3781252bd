"""
Configuration constants for DNS Bench.

Defaults for both benchmark pages, backend concurrency caps and the
remote lists used to refresh the server store. Values that are useful to
change per machine can be overridden through environment variables.
"""

import os
from pathlib import Path

# =============================================================================
# DNS BENCHMARK DEFAULTS
# =============================================================================

DEFAULT_DOMAIN: str = os.getenv("DNSBENCH_DOMAIN", "flutter.dev")
DEFAULT_SAMPLES: int = 3
DEFAULT_DNS_TIMEOUT_SECS: int = 11

# Soft cap to avoid extremely long runs with a huge server list
MAX_DNS_SERVERS: int = int(os.getenv("DNSBENCH_MAX_DNS_SERVERS", "120"))
DNS_CONCURRENCY: int = int(os.getenv("DNSBENCH_DNS_CONCURRENCY", "10"))

# =============================================================================
# DOWNLOAD SPEED DEFAULTS
# =============================================================================

DEFAULT_DOWNLOAD_URL: str = os.getenv(
    "DNSBENCH_DOWNLOAD_URL", "https://cachefly.cachefly.net/1mb.test"
)
DEFAULT_DOWNLOAD_DURATION_SECS: int = 7
DEFAULT_DOWNLOAD_TIMEOUT_SECS: int = 10

# The read timeout must outlive the measurement window
DOWNLOAD_TIMEOUT_GRACE_SECS: int = 5

MAX_DOWNLOAD_SERVERS: int = int(os.getenv("DNSBENCH_MAX_DOWNLOAD_SERVERS", "40"))
DOWNLOAD_CONCURRENCY: int = int(os.getenv("DNSBENCH_DOWNLOAD_CONCURRENCY", "6"))

# =============================================================================
# REMOTE LISTS
# =============================================================================

SERVER_LIST_BASE_URL: str = os.getenv(
    "DNSBENCH_SERVER_LIST_BASE_URL",
    "https://raw.githubusercontent.com/bluebeard9998/DNS_SERVERS/main",
)

DEFAULT_SERVER_LIST_URL: str = f"{SERVER_LIST_BASE_URL}/servers.txt"
TLS_HOST_MAP_URL: str = f"{SERVER_LIST_BASE_URL}/tls-host-map.txt"

# Named presets offered by `dnsbench servers fetch --preset`
SERVER_LIST_PRESETS: dict[str, str] = {
    "default": DEFAULT_SERVER_LIST_URL,
    "udp-tcp": f"{SERVER_LIST_BASE_URL}/udp-tcp.txt",
    "doh": f"{SERVER_LIST_BASE_URL}/DoH.txt",
    "dot": f"{SERVER_LIST_BASE_URL}/DoT.txt",
    "doq": f"{SERVER_LIST_BASE_URL}/DoQ.txt",
    "iran": f"{SERVER_LIST_BASE_URL}/iran.txt",
}

# =============================================================================
# EXPORT
# =============================================================================

EXPORT_DIR: Path = Path(os.getenv("DNSBENCH_EXPORT_DIR", "."))

# Optional persistent server list (one address per line)
SERVER_LIST_FILE: str = os.getenv("DNSBENCH_SERVER_LIST_FILE", "")

# =============================================================================
# GUI
# =============================================================================

GUI_HOST: str = os.getenv("DNSBENCH_GUI_HOST", "127.0.0.1")
GUI_PORT: int = int(os.getenv("DNSBENCH_GUI_PORT", "5000"))
