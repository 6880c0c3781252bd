"""
Core DNS query engine.

Benchmarks DNS servers by resolving one target several times through
each server and aggregating the samples into a DnsResultRecord.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

import dns.flags
import dns.message
import dns.rcode
import dns.rdatatype
import dns.reversename

from .errors import DnsBenchError
from .models import DnsResultRecord, is_ip_address
from .servers import TlsHostMap
from .statistics import StatisticsEngine
from .transports import BaseTransport, create_transport, parse_server_address

logger = logging.getLogger(__name__)


@dataclass
class LookupOutcome:
    """Result of one (unaggregated) lookup sample."""
    success: bool = False
    ipv4: list[str] = field(default_factory=list)
    ipv6: list[str] = field(default_factory=list)
    authenticated: bool = False
    error: Optional[str] = None

    @property
    def addresses(self) -> list[str]:
        return self.ipv4 + self.ipv6


def _error_text(error: BaseException) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "Timeout"
    return str(error) or error.__class__.__name__


class DNSQueryEngine:
    """
    Per-server DNS benchmark engine.

    Each server gets its own transport; samples against one server run
    sequentially so they do not compete with each other.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        validate_dnssec: bool = False,
        tls_hosts: Optional[TlsHostMap] = None,
    ):
        """
        Initialize the query engine.

        Args:
            timeout: Per-lookup timeout in seconds
            validate_dnssec: Request DNSSEC records and report the AD flag
            tls_hosts: Certificate names for TLS servers given by IP
        """
        self.timeout = timeout
        self.validate_dnssec = validate_dnssec
        self.tls_hosts = tls_hosts

    def _create_query_message(
        self,
        name,
        rdtype: dns.rdatatype.RdataType,
    ) -> dns.message.Message:
        """Create a DNS query message."""
        message = dns.message.make_query(
            name,
            rdtype,
            want_dnssec=self.validate_dnssec,
        )
        if self.validate_dnssec:
            message.flags |= dns.flags.AD
        return message

    async def open_transport(self, server_address: str) -> BaseTransport:
        """
        Parse a server address and make its transport ready to query.

        Raises:
            UnsupportedServerError: For transports this build cannot speak
            ValueError: For malformed addresses
            OSError: If the server hostname cannot be resolved
        """
        endpoint = parse_server_address(server_address, self.tls_hosts)
        transport = create_transport(endpoint)
        await transport.prepare()
        return transport

    async def _query(
        self,
        transport: BaseTransport,
        name,
        rdtype: dns.rdatatype.RdataType,
    ) -> dns.message.Message:
        message = self._create_query_message(name, rdtype)
        response, _elapsed = await transport.query(message, timeout=self.timeout)

        rcode = response.rcode()
        if rcode != dns.rcode.NOERROR:
            raise LookupError(dns.rcode.to_text(rcode))
        return response

    async def _lookup_addresses(self, transport: BaseTransport, domain: str) -> LookupOutcome:
        """Resolve A and AAAA records together."""
        outcome = LookupOutcome()

        responses = await asyncio.gather(
            self._query(transport, domain, dns.rdatatype.A),
            self._query(transport, domain, dns.rdatatype.AAAA),
            return_exceptions=True,
        )

        for response in responses:
            if isinstance(response, BaseException):
                if isinstance(response, asyncio.CancelledError):
                    raise response
                if outcome.error is None:
                    outcome.error = _error_text(response)
                continue

            if response.flags & dns.flags.AD:
                outcome.authenticated = True

            for rrset in response.answer:
                for rdata in rrset:
                    if rrset.rdtype == dns.rdatatype.A:
                        outcome.ipv4.append(rdata.address)
                    elif rrset.rdtype == dns.rdatatype.AAAA:
                        outcome.ipv6.append(rdata.address)

        outcome.success = bool(outcome.ipv4 or outcome.ipv6)
        if not outcome.success and outcome.error is None:
            outcome.error = "No A/AAAA records found"
        return outcome

    async def _lookup_reverse(self, transport: BaseTransport, ip: str) -> LookupOutcome:
        """Reverse (PTR) lookup for an IP target."""
        response = await self._query(
            transport, dns.reversename.from_address(ip), dns.rdatatype.PTR
        )
        names = [
            rdata.to_text()
            for rrset in response.answer
            if rrset.rdtype == dns.rdatatype.PTR
            for rdata in rrset
        ]
        return LookupOutcome(
            success=bool(names),
            authenticated=bool(response.flags & dns.flags.AD),
            error=None if names else "No PTR records found",
        )

    async def lookup(
        self,
        transport: BaseTransport,
        target: str,
    ) -> LookupOutcome:
        """
        Run one lookup sample with a hard timeout.

        Never raises for measurement failures; they are reported in the
        outcome's error field.
        """
        try:
            if is_ip_address(target):
                coro = self._lookup_reverse(transport, target)
            else:
                coro = self._lookup_addresses(transport, target)
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            return LookupOutcome(error="Timeout")
        except Exception as e:
            return LookupOutcome(error=_error_text(e))

    async def benchmark_server(
        self,
        query: str,
        server_address: str,
        samples: int = 3,
        warm_up: bool = False,
    ) -> DnsResultRecord:
        """
        Benchmark a single server.

        Args:
            query: ASCII domain or IP address to resolve
            server_address: Server list entry
            samples: Number of timed lookups
            warm_up: Run one unmeasured lookup first

        Returns:
            Aggregated DnsResultRecord (never raises for server failures)
        """
        logger.info("Testing server: %s", server_address)

        try:
            transport = await self.open_transport(server_address)
        except (DnsBenchError, ValueError, OSError) as e:
            logger.warning("Resolver build error (%s): %s", server_address, e)
            return DnsResultRecord(
                server_address=server_address,
                dnssec_enabled=self.validate_dnssec,
                error_msg=str(e),
            )

        latencies_ms: list[float] = []
        successes = 0
        authenticated = False
        first_error: Optional[str] = None
        ipv4_all: set[str] = set()
        ipv6_all: set[str] = set()

        try:
            if warm_up:
                await self.lookup(transport, query)

            for _ in range(samples):
                start = time.perf_counter_ns()
                outcome = await self.lookup(transport, query)
                latencies_ms.append((time.perf_counter_ns() - start) / 1_000_000)

                if outcome.success:
                    successes += 1
                    authenticated = authenticated or outcome.authenticated
                    ipv4_all.update(outcome.ipv4)
                    ipv6_all.update(outcome.ipv6)
                elif first_error is None:
                    first_error = outcome.error
        finally:
            await transport.close()

        stats = StatisticsEngine.summarize(latencies_ms)
        latency = stats.avg_ms if stats else None

        return DnsResultRecord(
            server_address=server_address,
            query_successful=successes > 0,
            success_percent=StatisticsEngine.success_percent(successes, samples),
            latency_avg_ms=latency,
            avg_time=latency,
            resolution_time_ms=int(latency) if latency is not None else None,
            jitter_avg_ms=stats.jitter_ms if stats else None,
            dnssec_enabled=self.validate_dnssec,
            dnssec_validated=self.validate_dnssec and authenticated and successes > 0,
            ipv4_ips=sorted(ipv4_all),
            ipv6_ips=sorted(ipv6_all),
            error_msg=first_error,
        )

    async def benchmark(
        self,
        query: str,
        servers: Sequence[str],
        samples: int = 3,
        warm_up: bool = False,
        concurrency: int = 10,
    ) -> list[DnsResultRecord]:
        """
        Benchmark many servers with controlled concurrency.

        Args:
            query: ASCII domain or IP address to resolve
            servers: Server list entries
            samples: Timed lookups per server
            warm_up: Run one unmeasured lookup per server first
            concurrency: Maximum servers tested at once

        Returns:
            One record per server, in server order
        """
        semaphore = asyncio.Semaphore(concurrency)

        async def limited(server: str) -> DnsResultRecord:
            async with semaphore:
                return await self.benchmark_server(query, server, samples, warm_up)

        return list(await asyncio.gather(*(limited(s) for s in servers)))
