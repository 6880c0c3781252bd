"""
DNS transport implementations.

Provides transport classes for the server address forms in the server list:
- UDP (plain address or udp://, falls back to TCP on truncation)
- TCP (tcp://)
- DoT (tls://, DNS over TLS)
- DoH (https://, DNS over HTTPS)

quic:// and h3:// addresses parse, but no transport is available for them.
"""

import asyncio
import logging
import socket
import ssl
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import dns.asyncquery
import dns.message
import dns.query
import httpx

from .errors import UnsupportedServerError
from .models import Transport, is_ip_address
from .servers import TlsHostMap

logger = logging.getLogger(__name__)


DEFAULT_PORTS = {
    Transport.UDP: 53,
    Transport.TCP: 53,
    Transport.DOT: 853,
    Transport.DOH: 443,
    Transport.DOQ: 853,
    Transport.H3: 443,
}

DEFAULT_DOH_PATH = "/dns-query"


@dataclass
class ServerEndpoint:
    """A parsed server address."""
    address: str
    transport: Transport
    host: str
    port: int
    path: str = DEFAULT_DOH_PATH
    tls_hostname: Optional[str] = None

    @property
    def doh_url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"https://{host}:{self.port}{self.path}"


def _split_host_port(text: str, default_port: int) -> tuple[str, int]:
    """Split "host", "host:port", "[v6]:port" or a bare IPv6 address."""
    port_text = None
    if text.startswith("["):
        host, _, rest = text[1:].partition("]")
        if rest.startswith(":"):
            port_text = rest[1:]
    elif text.count(":") == 1:
        host, port_text = text.split(":")
    else:
        host = text

    if not host:
        raise ValueError(f"No host in server address: {text!r}")
    if port_text is None or port_text == "":
        return host, default_port
    try:
        return host, int(port_text)
    except ValueError:
        raise ValueError(f"Invalid port in server address: {text!r}") from None


def _tls_name(host: str, tls_hosts: Optional[TlsHostMap]) -> str:
    if not is_ip_address(host):
        return host
    name = tls_hosts.get(host) if tls_hosts is not None else None
    if name is None:
        logger.warning("No TLS host map entry for IP %s; using IP as TLS name", host)
        return host
    return name


def parse_server_address(
    address: str,
    tls_hosts: Optional[TlsHostMap] = None,
) -> ServerEndpoint:
    """
    Parse a server list entry.

    Args:
        address: Server address, e.g. "8.8.8.8" or "tls://dns.google"
        tls_hosts: IP -> certificate name map for TLS servers given by IP

    Returns:
        ServerEndpoint describing how to reach the server

    Raises:
        UnsupportedServerError: For DoQ and DNS-over-HTTP/3 addresses
        ValueError: If the address is malformed
    """
    address = address.strip()
    scheme, sep, rest = address.partition("://")
    scheme = scheme.lower() if sep else ""

    if scheme == "quic":
        raise UnsupportedServerError(f"DNS-over-QUIC is not supported: {address}")
    if scheme == "h3":
        raise UnsupportedServerError(f"DNS-over-HTTP/3 is not supported: {address}")

    if scheme == "https":
        try:
            url = httpx.URL(address)
        except httpx.InvalidURL as e:
            raise ValueError(f"Invalid DoH URL {address!r}: {e}") from None
        if not url.host:
            raise ValueError(f"No host in URL: {address!r}")

        path = url.raw_path.decode("ascii")
        if path in ("", "/"):
            path = DEFAULT_DOH_PATH

        return ServerEndpoint(
            address=address,
            transport=Transport.DOH,
            host=url.host,
            port=url.port or DEFAULT_PORTS[Transport.DOH],
            path=path,
            tls_hostname=_tls_name(url.host, tls_hosts),
        )

    if scheme == "tls":
        host, port = _split_host_port(rest, DEFAULT_PORTS[Transport.DOT])
        return ServerEndpoint(
            address=address,
            transport=Transport.DOT,
            host=host,
            port=port,
            tls_hostname=_tls_name(host, tls_hosts),
        )

    if scheme == "tcp":
        host, port = _split_host_port(rest, DEFAULT_PORTS[Transport.TCP])
        return ServerEndpoint(address=address, transport=Transport.TCP, host=host, port=port)

    if scheme in ("", "udp"):
        host, port = _split_host_port(rest if sep else address, DEFAULT_PORTS[Transport.UDP])
        return ServerEndpoint(address=address, transport=Transport.UDP, host=host, port=port)

    raise UnsupportedServerError(f"Unknown server scheme {scheme!r}: {address}")


async def resolve_host(host: str, port: int) -> str:
    """Resolve a server hostname with the system resolver (IPs pass through)."""
    if is_ip_address(host):
        return host

    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    if not infos:
        raise OSError(f"Could not resolve server host {host}")
    return infos[0][4][0]


def _elapsed_ms(start_ns: int) -> float:
    return (time.perf_counter_ns() - start_ns) / 1_000_000


class BaseTransport(ABC):
    """Base class for DNS transports."""

    transport_type: Transport

    def __init__(self, endpoint: ServerEndpoint):
        self.endpoint = endpoint
        self._ip: Optional[str] = None

    async def prepare(self) -> None:
        """Resolve the server host once, before any timed query."""
        self._ip = await resolve_host(self.endpoint.host, self.endpoint.port)

    @property
    def server_ip(self) -> str:
        if self._ip is None:
            raise RuntimeError("Transport used before prepare()")
        return self._ip

    @abstractmethod
    async def query(
        self,
        message: dns.message.Message,
        timeout: float = 5.0,
    ) -> tuple[dns.message.Message, float]:
        """
        Send a DNS query and return the response.

        Returns:
            Tuple of (response, elapsed_ms)
        """

    async def close(self) -> None:
        pass


class UDPTransport(BaseTransport):
    """Standard DNS over UDP."""

    transport_type = Transport.UDP

    async def query(
        self,
        message: dns.message.Message,
        timeout: float = 5.0,
    ) -> tuple[dns.message.Message, float]:
        """Send DNS query over UDP, retrying over TCP if truncated."""
        start = time.perf_counter_ns()

        # Run the synchronous UDP query in a thread pool
        loop = asyncio.get_running_loop()
        response, _used_tcp = await loop.run_in_executor(
            None,
            lambda: dns.query.udp_with_fallback(
                message,
                self.server_ip,
                timeout=timeout,
                port=self.endpoint.port,
            ),
        )

        return response, _elapsed_ms(start)


class TCPTransport(BaseTransport):
    """DNS over TCP."""

    transport_type = Transport.TCP

    async def query(
        self,
        message: dns.message.Message,
        timeout: float = 5.0,
    ) -> tuple[dns.message.Message, float]:
        start = time.perf_counter_ns()
        response = await dns.asyncquery.tcp(
            message,
            self.server_ip,
            timeout=timeout,
            port=self.endpoint.port,
        )
        return response, _elapsed_ms(start)


class DoTTransport(BaseTransport):
    """DNS over TLS (DoT)."""

    transport_type = Transport.DOT

    async def query(
        self,
        message: dns.message.Message,
        timeout: float = 5.0,
    ) -> tuple[dns.message.Message, float]:
        """Send DNS query over TLS; the timing includes the handshake."""
        ssl_context = ssl.create_default_context()

        start = time.perf_counter_ns()
        response = await dns.asyncquery.tls(
            message,
            self.server_ip,
            timeout=timeout,
            port=self.endpoint.port,
            ssl_context=ssl_context,
            server_hostname=self.endpoint.tls_hostname or self.endpoint.host,
        )
        return response, _elapsed_ms(start)


class DoHTransport(BaseTransport):
    """DNS over HTTPS (DoH)."""

    transport_type = Transport.DOH

    def __init__(self, endpoint: ServerEndpoint):
        super().__init__(endpoint)
        self._client: Optional[httpx.AsyncClient] = None

    async def prepare(self) -> None:
        # httpx resolves the host itself
        self._ip = self.endpoint.host

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP/2 client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                http2=True,
                timeout=httpx.Timeout(10.0, connect=5.0),
            )
        return self._client

    async def query(
        self,
        message: dns.message.Message,
        timeout: float = 5.0,
    ) -> tuple[dns.message.Message, float]:
        """Send DNS query over HTTPS (RFC 8484 POST)."""
        client = await self._get_client()

        extensions = {}
        if is_ip_address(self.endpoint.host) and self.endpoint.tls_hostname:
            extensions["sni_hostname"] = self.endpoint.tls_hostname

        # Measure full request time (includes connection if not pooled)
        start = time.perf_counter_ns()

        response = await client.post(
            self.endpoint.doh_url,
            content=message.to_wire(),
            headers={
                "Content-Type": "application/dns-message",
                "Accept": "application/dns-message",
            },
            timeout=timeout,
            extensions=extensions,
        )
        response.raise_for_status()
        dns_response = dns.message.from_wire(response.content)

        return dns_response, _elapsed_ms(start)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


def create_transport(endpoint: ServerEndpoint) -> BaseTransport:
    """
    Create a transport instance for a parsed server address.

    Args:
        endpoint: Parsed server address

    Returns:
        Appropriate transport instance

    Raises:
        UnsupportedServerError: If no transport exists for the endpoint
    """
    if endpoint.transport == Transport.UDP:
        return UDPTransport(endpoint)
    elif endpoint.transport == Transport.TCP:
        return TCPTransport(endpoint)
    elif endpoint.transport == Transport.DOT:
        return DoTTransport(endpoint)
    elif endpoint.transport == Transport.DOH:
        return DoHTransport(endpoint)
    else:
        raise UnsupportedServerError(
            f"No transport available for {endpoint.transport.value}: {endpoint.address}"
        )
