"""
DNS Bench - compare DNS servers by resolution latency and download speed.

Benchmarks a list of DNS servers (UDP, TCP, DoT, DoH) against one target
and ranks them, or measures how fast a file downloads from the address
each server hands out.
"""

__version__ = "1.0.0"

from .backend import EngineBackend, MeasurementBackend
from .coordinator import RunCoordinator, RunHandle, RunSnapshot
from .models import (
    BenchmarkParams,
    DnsResultRecord,
    DownloadResultRecord,
    RunKind,
    RunStatus,
    SpeedParams,
)
from .query_engine import DNSQueryEngine

__all__ = [
    "__version__",
    "BenchmarkParams",
    "DNSQueryEngine",
    "DnsResultRecord",
    "DownloadResultRecord",
    "EngineBackend",
    "MeasurementBackend",
    "RunCoordinator",
    "RunHandle",
    "RunKind",
    "RunSnapshot",
    "RunStatus",
    "SpeedParams",
]
