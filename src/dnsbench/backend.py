"""
Measurement backend.

The coordinator only talks to the MeasurementBackend interface. The
EngineBackend implementation runs the measurements in-process with the
DNS query engine and the speed tester.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from . import config
from .errors import BackendError, InvalidParamsError
from .models import (
    BenchmarkParams,
    DnsResultRecord,
    DownloadResultRecord,
    SpeedParams,
    is_ip_address,
    to_ascii_domain,
)
from .query_engine import DNSQueryEngine
from .servers import ServerListStore, TlsHostMap
from .speed_test import SpeedTester

logger = logging.getLogger(__name__)


class MeasurementBackend(ABC):
    """The two asynchronous measurement operations."""

    @abstractmethod
    async def run_dns_benchmark(self, params: BenchmarkParams) -> list[DnsResultRecord]:
        """Benchmark every configured DNS server; raises on failure."""

    @abstractmethod
    async def perform_download_speed_test(
        self, params: SpeedParams
    ) -> list[DownloadResultRecord]:
        """Measure download bandwidth through every server; raises on failure."""


class EngineBackend(MeasurementBackend):
    """In-process backend built on DNSQueryEngine and SpeedTester."""

    def __init__(
        self,
        store: Optional[ServerListStore] = None,
        tls_hosts: Optional[TlsHostMap] = None,
        max_dns_servers: int = config.MAX_DNS_SERVERS,
        dns_concurrency: int = config.DNS_CONCURRENCY,
        max_download_servers: int = config.MAX_DOWNLOAD_SERVERS,
        download_concurrency: int = config.DOWNLOAD_CONCURRENCY,
    ):
        self.store = store or ServerListStore()
        self.tls_hosts = tls_hosts or TlsHostMap()
        self.max_dns_servers = max_dns_servers
        self.dns_concurrency = dns_concurrency
        self.max_download_servers = max_download_servers
        self.download_concurrency = download_concurrency

    def _servers(self, custom: Optional[tuple[str, ...]], limit: int) -> list[str]:
        servers = list(custom) if custom is not None else self.store.get()
        if not servers:
            raise BackendError("No DNS servers configured")
        if len(servers) > limit:
            logger.info("Server list truncated from %d to %d entries", len(servers), limit)
            servers = servers[:limit]
        return servers

    async def run_dns_benchmark(self, params: BenchmarkParams) -> list[DnsResultRecord]:
        target = params.domain_or_ip
        if not is_ip_address(target):
            try:
                target = to_ascii_domain(target)
            except InvalidParamsError as e:
                return [
                    DnsResultRecord(
                        server_address="invalid_domain",
                        dnssec_enabled=params.validate_dnssec,
                        error_msg=str(e),
                    )
                ]

        servers = self._servers(params.custom_servers, self.max_dns_servers)
        engine = DNSQueryEngine(
            timeout=params.timeout_secs,
            validate_dnssec=params.validate_dnssec,
            tls_hosts=self.tls_hosts,
        )

        return await engine.benchmark(
            target,
            servers,
            samples=params.samples,
            warm_up=params.warm_up,
            concurrency=self.dns_concurrency,
        )

    async def perform_download_speed_test(
        self, params: SpeedParams
    ) -> list[DownloadResultRecord]:
        timeout = max(params.timeout_secs, params.duration_secs + config.DOWNLOAD_TIMEOUT_GRACE_SECS)
        servers = self._servers(params.custom_servers, self.max_download_servers)

        tester = SpeedTester(DNSQueryEngine(timeout=timeout, tls_hosts=self.tls_hosts))
        return await tester.run(
            params,
            servers,
            timeout_secs=timeout,
            concurrency=self.download_concurrency,
        )
