"""
DNS server list and TLS host map.

The server list holds one address per entry, in any of the forms the
transports understand:

    8.8.8.8
    tcp://9.9.9.9
    tls://1.1.1.1:853
    https://cloudflare-dns.com/dns-query

The TLS host map supplies the certificate name to use when a DoT/DoH
server is given by IP.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

import httpx

logger = logging.getLogger(__name__)


DEFAULT_DNS_SERVERS: tuple[str, ...] = (
    # Standard DNS (UDP/53)
    "8.8.8.8",          # Google Public DNS
    "8.8.4.4",
    "1.1.1.1",          # Cloudflare
    "1.0.0.1",
    "208.67.222.222",   # OpenDNS Home
    "208.67.220.220",
    "208.67.222.2",     # OpenDNS Sandbox
    "208.67.220.2",
    "9.9.9.9",          # Quad9 (malware blocking, DNSSEC)
    "149.112.112.112",
    "9.9.9.11",         # Quad9 with ECS
    "149.112.112.11",
    "9.9.9.10",         # Quad9 unsecured
    "149.112.112.10",
    "94.140.14.14",     # AdGuard
    "94.140.15.15",
    "94.140.14.140",    # AdGuard non-filtering
    "94.140.14.141",
    "77.88.8.8",        # Yandex Basic
    "77.88.8.1",
    "77.88.8.88",       # Yandex Safe
    "77.88.8.2",
    "185.228.168.9",    # CleanBrowsing Security
    "185.228.169.9",
    "76.76.2.0",        # Control D
    "76.76.10.0",
    "76.76.19.19",      # Alternate DNS
    "76.223.122.150",
    "216.146.35.35",    # Dyn
    "216.146.36.36",
    "74.82.42.42",      # Hurricane Electric
    "149.112.121.10",   # CIRA Canadian Shield
    "149.112.122.10",
    "8.26.56.26",       # Comodo Secure DNS
    "8.20.247.20",
    "223.5.5.5",        # AliDNS
    "223.6.6.6",
    "185.222.222.222",  # DNS.SB
    "45.11.45.11",
    "119.29.29.29",     # DNSPod
    "194.242.2.2",      # Mullvad
    "194.242.2.4",
    "45.90.28.0",       # NextDNS
    "45.90.30.0",
    "193.110.81.9",     # DNS0.EU
    "185.253.5.9",
    "185.95.218.42",    # Digitale Gesellschaft
    "185.95.218.43",
    "91.239.100.100",   # UncensoredDNS
    "89.233.43.71",

    # DNS-over-TLS (DoT)
    "tls://cloudflare-dns.com:853",
    "tls://dns.google:853",
    "tls://dns.quad9.net:853",
    "tls://dns.adguard.com:853",
    "tls://max.rethinkdns.com:853",
    "tls://dns.alidns.com:853",

    # DNS-over-HTTPS (DoH)
    "https://cloudflare-dns.com/dns-query",
    "https://security.cloudflare-dns.com/dns-query",
    "https://dns.google/dns-query",
    "https://dns.quad9.net/dns-query",
    "https://doh.dns.sb/dns-query",
    "https://doh.cleanbrowsing.org/doh/family-filter/",
    "https://dns.adguard-dns.com/dns-query",
    "https://dns-unfiltered.adguard-dns.com/dns-query",
    "https://doh.opendns.com/dns-query",
    "https://doh.uncensoreddns.org/dns-query",
    "https://sky.rethinkdns.com/dns-query",
    "https://dns.alidns.com/dns-query",
    "https://dnsforge.de/dns-query",

    # DNS-over-QUIC (DoQ)
    "quic://dns.adguard.com",
    "quic://unfiltered.adguard-dns.com",
)

# IP -> TLS name, for DoT/DoH servers given by address
DEFAULT_TLS_HOST_MAP: dict[str, str] = {
    "1.1.1.1": "cloudflare-dns.com",
    "1.0.0.1": "cloudflare-dns.com",
    "8.8.8.8": "dns.google",
    "8.8.4.4": "dns.google",
    "9.9.9.9": "dns.quad9.net",
    "149.112.112.112": "dns.quad9.net",
    "8.26.56.26": "cdns.comodo.com",
    "137.66.7.89": "max.rethinkdns.com",
}


def clean_servers(servers: Iterable[str]) -> list[str]:
    """Trim every entry and drop blank ones."""
    return [s.strip() for s in servers if s is not None and s.strip()]


def parse_server_text(text: str) -> list[str]:
    """Split multi-line text (LF or CRLF) into a clean server list."""
    return clean_servers(text.splitlines())


async def _fetch_text(url: str, client: Optional[httpx.AsyncClient] = None) -> str:
    if client is not None:
        response = await client.get(url)
        response.raise_for_status()
        return response.text

    async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0)) as own:
        response = await own.get(url)
        response.raise_for_status()
        return response.text


class ServerListStore:
    """In-process DNS server list, optionally backed by a text file."""

    def __init__(self, servers: Optional[Iterable[str]] = None):
        self._servers = clean_servers(servers if servers is not None else DEFAULT_DNS_SERVERS)

    def get(self) -> list[str]:
        """Current server list (a copy)."""
        return list(self._servers)

    def set(self, servers: Iterable[str]) -> None:
        """Replace the list; entries are trimmed and blanks dropped."""
        self._servers = clean_servers(servers)
        logger.debug("Server list replaced (%d entries)", len(self._servers))

    def reset(self) -> None:
        self._servers = list(DEFAULT_DNS_SERVERS)

    def load(self, path: Path) -> None:
        """Replace the list with the contents of a text file."""
        self.set(parse_server_text(Path(path).read_text(encoding="utf-8")))

    def save(self, path: Path) -> None:
        """Write the list to a text file, one server per line."""
        Path(path).write_text("\n".join(self._servers) + "\n", encoding="utf-8")

    async def refresh_from_url(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> int:
        """
        Replace the list with a remote text file.

        An empty download keeps the current list.

        Args:
            url: Plain-text list, one server per line
            client: Optional shared HTTP client

        Returns:
            Number of servers now in the list

        Raises:
            httpx.HTTPError: If the download fails
        """
        logger.info("Updating DNS servers from %s", url)
        servers = parse_server_text(await _fetch_text(url, client))

        if servers:
            self._servers = servers
            logger.info("Updated DNS servers. Total count: %d", len(servers))
        else:
            logger.warning("No servers found at %s; keeping current list", url)

        return len(self._servers)


class TlsHostMap:
    """Maps server IPs to the hostname expected in their TLS certificate."""

    def __init__(self, mapping: Optional[dict[str, str]] = None):
        self._map = dict(DEFAULT_TLS_HOST_MAP if mapping is None else mapping)

    def get(self, ip: str) -> Optional[str]:
        return self._map.get(ip)

    def __len__(self) -> int:
        return len(self._map)

    @staticmethod
    def parse(text: str) -> dict[str, str]:
        """Parse "host ip" lines into an ip -> host mapping."""
        mapping = {}
        for line in text.splitlines():
            parts = line.split()
            if len(parts) == 2:
                host, ip = parts
                mapping[ip] = host
        return mapping

    async def refresh_from_url(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> int:
        """Replace the map with a remote "host ip" list; returns entry count."""
        mapping = self.parse(await _fetch_text(url, client))
        if mapping:
            self._map = mapping
        else:
            logger.warning("No TLS host entries found at %s; keeping current map", url)
        return len(self._map)
