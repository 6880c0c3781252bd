"""Tests for per-server DNS benchmarking."""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock

import dns.flags
import dns.message
import dns.rcode
import dns.rdatatype
import dns.rrset
import pytest

from dnsbench.models import Transport
from dnsbench.query_engine import DNSQueryEngine
from dnsbench.transports import BaseTransport, ServerEndpoint


class FakeTransport(BaseTransport):
    """Answers queries from a fixed table without touching the network."""

    def __init__(
        self,
        answers: Optional[dict] = None,
        error: Optional[BaseException] = None,
        rcode: int = dns.rcode.NOERROR,
        authenticated: bool = False,
    ) -> None:
        """Initialize with the answers to hand out per record type."""
        super().__init__(
            ServerEndpoint(address="fake", transport=Transport.UDP, host="192.0.2.1", port=53)
        )
        self.answers = answers or {}
        self.error = error
        self.rcode = rcode
        self.authenticated = authenticated
        self.queries: list[dns.message.Message] = []
        self.closed = False

    async def query(self, message, timeout=5.0):
        """Build a response for the question in message."""
        self.queries.append(message)
        if self.error is not None:
            raise self.error

        response = dns.message.make_response(message)
        response.set_rcode(self.rcode)
        question = message.question[0]
        for text in self.answers.get(question.rdtype, []):
            response.answer.append(
                dns.rrset.from_text(question.name, 300, "IN", question.rdtype, text)
            )
        if self.authenticated:
            response.flags |= dns.flags.AD
        return response, 1.0

    async def close(self) -> None:
        """Remember that the engine released the transport."""
        self.closed = True


def _engine(transport: BaseTransport, **kwargs) -> DNSQueryEngine:
    engine = DNSQueryEngine(**kwargs)
    engine.open_transport = AsyncMock(return_value=transport)
    return engine


async def test_benchmark_server_success() -> None:
    """All samples succeed; addresses and timings are aggregated."""
    transport = FakeTransport(
        answers={
            dns.rdatatype.A: ["93.184.216.34"],
            dns.rdatatype.AAAA: ["2606:2800:220:1::1"],
        }
    )
    engine = _engine(transport, timeout=2.0)

    record = await engine.benchmark_server("example.com", "fake", samples=3)

    assert record.query_successful is True
    assert record.success_percent == 100.0
    assert record.ipv4_ips == ["93.184.216.34"]
    assert record.ipv6_ips == ["2606:2800:220:1::1"]
    assert record.latency_avg_ms is not None
    assert record.avg_time == record.latency_avg_ms
    assert record.resolution_time_ms == int(record.latency_avg_ms)
    assert record.jitter_avg_ms is not None
    assert record.dnssec_enabled is False
    assert record.dnssec_validated is False
    assert record.error_msg is None
    assert len(transport.queries) == 6
    assert transport.closed


async def test_benchmark_server_timeout() -> None:
    """Timed-out samples count as failures with a readable error."""
    transport = FakeTransport(error=asyncio.TimeoutError())
    engine = _engine(transport)

    record = await engine.benchmark_server("example.com", "fake", samples=2)

    assert record.query_successful is False
    assert record.success_percent == 0.0
    assert record.error_msg == "Timeout"
    assert record.ipv4_ips == []
    assert transport.closed


async def test_benchmark_server_nxdomain() -> None:
    """Non-NOERROR responses report the rcode name."""
    engine = _engine(FakeTransport(rcode=dns.rcode.NXDOMAIN))

    record = await engine.benchmark_server("missing.example", "fake", samples=1)

    assert record.query_successful is False
    assert record.error_msg == "NXDOMAIN"


async def test_benchmark_server_no_records() -> None:
    """An empty answer is a failure."""
    engine = _engine(FakeTransport())

    record = await engine.benchmark_server("empty.example", "fake", samples=1)

    assert record.query_successful is False
    assert record.error_msg == "No A/AAAA records found"


async def test_benchmark_server_dnssec_validated() -> None:
    """The AD flag marks the record validated and the DO bit is sent."""
    transport = FakeTransport(answers={dns.rdatatype.A: ["192.0.2.7"]}, authenticated=True)
    engine = _engine(transport, validate_dnssec=True)

    record = await engine.benchmark_server("secure.example", "fake", samples=1)

    assert record.dnssec_enabled is True
    assert record.dnssec_validated is True
    assert transport.queries[0].ednsflags & dns.flags.DO
    assert transport.queries[0].flags & dns.flags.AD


async def test_benchmark_server_dnssec_not_validated() -> None:
    """Without AD the record is not validated."""
    transport = FakeTransport(answers={dns.rdatatype.A: ["192.0.2.7"]})
    engine = _engine(transport, validate_dnssec=True)

    record = await engine.benchmark_server("plain.example", "fake", samples=1)

    assert record.dnssec_enabled is True
    assert record.dnssec_validated is False


async def test_benchmark_server_warm_up_is_not_timed() -> None:
    """Warm-up adds one unmeasured lookup."""
    transport = FakeTransport(answers={dns.rdatatype.A: ["192.0.2.7"]})
    engine = _engine(transport)

    record = await engine.benchmark_server("example.com", "fake", samples=2, warm_up=True)

    assert len(transport.queries) == 6
    assert record.success_percent == 100.0


async def test_benchmark_server_reverse_lookup() -> None:
    """IP targets are resolved with PTR queries."""
    transport = FakeTransport(answers={dns.rdatatype.PTR: ["dns.google."]})
    engine = _engine(transport)

    record = await engine.benchmark_server("8.8.8.8", "fake", samples=1)

    assert record.query_successful is True
    assert transport.queries[0].question[0].rdtype == dns.rdatatype.PTR
    assert str(transport.queries[0].question[0].name) == "8.8.8.8.in-addr.arpa."


async def test_benchmark_server_unsupported_transport() -> None:
    """Servers that cannot be reached become error records."""
    engine = DNSQueryEngine()

    record = await engine.benchmark_server("example.com", "quic://dns.adguard.com")

    assert record.query_successful is False
    assert "not supported" in record.error_msg
    assert record.latency_avg_ms is None


async def test_benchmark_keeps_server_order() -> None:
    """Results come back in server order regardless of completion order."""
    good = FakeTransport(answers={dns.rdatatype.A: ["192.0.2.7"]})
    bad = FakeTransport(error=OSError("unreachable"))
    engine = DNSQueryEngine()
    engine.open_transport = AsyncMock(side_effect=lambda address: {"a": bad, "b": good}[address])

    records = await engine.benchmark("example.com", ["a", "b"], samples=1, concurrency=1)

    assert [r.server_address for r in records] == ["a", "b"]
    assert records[0].error_msg == "unreachable"
    assert records[1].query_successful is True


async def test_lookup_never_raises() -> None:
    """Unexpected errors are captured in the outcome."""
    engine = DNSQueryEngine()

    outcome = await engine.lookup(FakeTransport(error=ValueError("bad wire data")), "example.com")

    assert outcome.success is False
    assert outcome.error == "bad wire data"


@pytest.mark.parametrize("samples", [1, 4])
async def test_success_percent_partial(samples: int) -> None:
    """Success percent reflects the share of good samples."""
    transport = FakeTransport(answers={dns.rdatatype.A: ["192.0.2.7"]})
    engine = _engine(transport)
    calls = {"n": 0}
    original = transport.query

    async def flaky(message, timeout=5.0):
        calls["n"] += 1
        # Fail both queries of the first sample
        if calls["n"] <= 2:
            raise OSError("flaky")
        return await original(message, timeout)

    transport.query = flaky

    record = await engine.benchmark_server("example.com", "fake", samples=samples)

    assert record.success_percent == pytest.approx((samples - 1) * 100.0 / samples)
    assert record.query_successful is (samples > 1)
    assert record.error_msg == "flaky"
