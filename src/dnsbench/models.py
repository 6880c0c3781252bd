"""
Data models for DNS Bench.

Defines the run bookkeeping types, the request parameters handed to the
measurement backend, and the per-server result records it returns.
"""

import ipaddress
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

import httpx

from .errors import InvalidParamsError


class RunKind(Enum):
    """Kinds of measurement run."""
    DNS = "dns"
    DOWNLOAD = "download"


class RunStatus(Enum):
    """Lifecycle state of a benchmark run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.CANCELLED, RunStatus.FAILED)


class Transport(Enum):
    """DNS transport protocols, keyed by server address scheme."""
    UDP = "udp"
    TCP = "tcp"
    DOT = "tls"    # DNS over TLS
    DOH = "https"  # DNS over HTTPS
    DOQ = "quic"   # DNS over QUIC
    H3 = "h3"      # DNS over HTTP/3


class DnssecStatus(Enum):
    """DNSSEC state of a single server result."""
    DISABLED = "disabled"
    VALIDATED = "validated"
    NOT_VALIDATED = "not_validated"


def is_ip_address(text: str) -> bool:
    """Check if text parses as an IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


def to_ascii_domain(domain: str) -> str:
    """
    Normalize a domain to its ASCII (punycode) form.

    Raises:
        InvalidParamsError: If the domain is not IDNA-encodable
    """
    try:
        return domain.encode("idna").decode("ascii")
    except UnicodeError as e:
        raise InvalidParamsError(f"Invalid domain format: {domain}") from e


def _clean_servers(servers) -> Optional[tuple[str, ...]]:
    if servers is None:
        return None
    cleaned = tuple(s.strip() for s in servers if s and s.strip())
    return cleaned


@dataclass(frozen=True)
class BenchmarkParams:
    """Request configuration for a DNS benchmark run."""
    domain_or_ip: str
    samples: int
    timeout_secs: int
    validate_dnssec: bool = False
    warm_up: bool = False
    custom_servers: Optional[tuple[str, ...]] = None

    @classmethod
    def create(
        cls,
        domain_or_ip: str,
        samples: int = 3,
        timeout_secs: int = 11,
        validate_dnssec: bool = False,
        warm_up: bool = False,
        custom_servers=None,
    ) -> "BenchmarkParams":
        """
        Build validated parameters from raw user input.

        The target is trimmed and must be an IP address or an
        IDNA-encodable domain. Counts below 1 are clamped to 1.

        Raises:
            InvalidParamsError: If the target is empty or malformed
        """
        target = (domain_or_ip or "").strip()
        if not target:
            raise InvalidParamsError("Enter a domain or IP address to benchmark")
        if not is_ip_address(target):
            to_ascii_domain(target)

        return cls(
            domain_or_ip=target,
            samples=max(1, int(samples)),
            timeout_secs=max(1, int(timeout_secs)),
            validate_dnssec=bool(validate_dnssec),
            warm_up=bool(warm_up),
            custom_servers=_clean_servers(custom_servers),
        )


@dataclass(frozen=True)
class SpeedParams:
    """Request configuration for a download speed run."""
    url: str
    duration_secs: int
    timeout_secs: int
    custom_servers: Optional[tuple[str, ...]] = None

    @classmethod
    def create(
        cls,
        url: str,
        duration_secs: int = 7,
        timeout_secs: int = 10,
        custom_servers=None,
    ) -> "SpeedParams":
        """
        Build validated parameters from raw user input.

        Raises:
            InvalidParamsError: If the URL is empty, unparsable, not
                http/https, or has no host
        """
        target = (url or "").strip()
        if not target:
            raise InvalidParamsError("Enter a file URL to download")

        try:
            parsed = httpx.URL(target)
        except httpx.InvalidURL as e:
            raise InvalidParamsError(f"Invalid URL: {e}") from e

        if parsed.scheme not in ("http", "https"):
            raise InvalidParamsError("Only http and https are supported")
        if not parsed.host:
            raise InvalidParamsError("URL missing host")

        return cls(
            url=target,
            duration_secs=max(1, int(duration_secs)),
            timeout_secs=max(1, int(timeout_secs)),
            custom_servers=_clean_servers(custom_servers),
        )

    @property
    def host(self) -> str:
        return httpx.URL(self.url).host


RunParams = Union[BenchmarkParams, SpeedParams]


def _from_mapping(cls, data: dict[str, Any]):
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class DnsResultRecord:
    """Benchmark outcome for a single DNS server."""
    server_address: str
    query_successful: bool = False
    success_percent: float = 0.0

    # Timing (independently optional)
    latency_avg_ms: Optional[float] = None
    avg_time: Optional[float] = None
    resolution_time_ms: Optional[float] = None
    jitter_avg_ms: Optional[float] = None

    # DNSSEC: dnssec_enabled=False means validation was not requested
    dnssec_enabled: Optional[bool] = None
    dnssec_validated: bool = False

    ipv4_ips: list[str] = field(default_factory=list)
    ipv6_ips: list[str] = field(default_factory=list)
    error_msg: Optional[str] = None

    def __post_init__(self):
        if self.ipv4_ips is None:
            self.ipv4_ips = []
        if self.ipv6_ips is None:
            self.ipv6_ips = []

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DnsResultRecord":
        """Build a record from a JSON-style mapping, ignoring unknown keys."""
        return _from_mapping(cls, data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DownloadResultRecord:
    """Bandwidth outcome for a single DNS server."""
    server_address: str
    resolved_ip: Optional[str] = None
    duration_ms: int = 0
    bytes_read: int = 0
    bandwidth_mbps: float = 0.0
    query_successful: bool = False
    http_status: Optional[int] = None
    error_msg: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DownloadResultRecord":
        """Build a record from a JSON-style mapping, ignoring unknown keys."""
        return _from_mapping(cls, data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


ResultRecord = Union[DnsResultRecord, DownloadResultRecord]


@dataclass
class BenchmarkRun:
    """One in-flight or completed measurement invocation."""
    id: int
    kind: RunKind
    params: RunParams
    status: RunStatus = RunStatus.PENDING
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def finish(self, status: RunStatus) -> None:
        """Move the run to a terminal status (first terminal status wins)."""
        if self.status.is_terminal:
            return
        self.status = status
        self.completed_at = datetime.now(timezone.utc)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()
