"""Shared fixtures for unit tests."""

import asyncio

import pytest

from dnsbench.backend import MeasurementBackend
from dnsbench.models import DnsResultRecord, DownloadResultRecord


class ControlledBackend(MeasurementBackend):
    """Backend whose calls resolve only when the test says so."""

    def __init__(self) -> None:
        """Initialize with no pending calls."""
        self.calls: list[tuple[object, asyncio.Future]] = []

    async def _pending(self, params):
        future = asyncio.get_running_loop().create_future()
        self.calls.append((params, future))
        return await future

    async def run_dns_benchmark(self, params):
        """Wait for the test to resolve the call."""
        return await self._pending(params)

    async def perform_download_speed_test(self, params):
        """Wait for the test to resolve the call."""
        return await self._pending(params)


@pytest.fixture
def controlled_backend() -> ControlledBackend:
    """Backend with manually resolved calls."""
    return ControlledBackend()


@pytest.fixture
def dns_records() -> list[DnsResultRecord]:
    """One fast usable server and one that timed out."""
    return [
        DnsResultRecord(
            server_address="8.8.8.8",
            query_successful=True,
            success_percent=100.0,
            latency_avg_ms=12.4,
            jitter_avg_ms=0.8,
            dnssec_enabled=False,
            ipv4_ips=["93.184.216.34"],
        ),
        DnsResultRecord(
            server_address="10.0.0.1",
            query_successful=False,
            success_percent=0.0,
            dnssec_enabled=False,
            error_msg="timeout",
        ),
    ]


@pytest.fixture
def download_records() -> list[DownloadResultRecord]:
    """Three servers with distinct bandwidths."""
    return [
        DownloadResultRecord(server_address="a", bandwidth_mbps=50.1, query_successful=True),
        DownloadResultRecord(server_address="b", bandwidth_mbps=12.3, query_successful=True),
        DownloadResultRecord(server_address="c", bandwidth_mbps=80.0, query_successful=True),
    ]
