"""
Output formatting for DNS Bench results.

Provides multiple output formats:
- CSV: Spreadsheet-compatible export of every raw result
- JSON: Machine-readable export of every raw result
- Human-readable: Rich terminal tables of the display list
"""

import csv
import json
import re
from datetime import datetime, timezone
from io import StringIO
from typing import Any, Iterable, Optional, Sequence

import httpx
from rich import box
from rich.console import Console
from rich.table import Table

from .models import DnsResultRecord, DnssecStatus, DownloadResultRecord, RunKind
from .normalize import (
    NO_VALUE,
    canonical_jitter,
    canonical_latency,
    dnssec_status,
    format_ms,
    format_percent,
)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")

CSV_MIME_TYPE = "text/csv"
JSON_MIME_TYPE = "application/json"


def safe_name(text: Optional[str], fallback: str = "data") -> str:
    """Make text usable inside a file name."""
    base = (text or fallback).strip() or fallback
    return _UNSAFE_CHARS.sub("_", base)


def export_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp (millisecond precision) with ':' and '.' dashed."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    iso = now.strftime("%Y-%m-%dT%H:%M:%S") + f".{now.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def _url_host(url: str) -> Optional[str]:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return None
    if not parsed.host:
        return None
    return f"{parsed.host}:{parsed.port}" if parsed.port else parsed.host


def export_filename(
    kind: RunKind,
    target: str,
    now: Optional[datetime] = None,
    extension: str = "csv",
) -> str:
    """
    Build the suggested file name for an export.

    Args:
        kind: Which benchmark produced the results
        target: The queried domain/IP (DNS) or the download URL
        now: Timestamp to embed (default: current UTC time)
        extension: File extension without the dot

    Returns:
        e.g. dns-benchmark-example.com-2026-01-02T03-04-05-678Z.csv
    """
    ts = export_timestamp(now)
    if kind == RunKind.DNS:
        return f"dns-benchmark-{safe_name(target, 'query')}-{ts}.{extension}"
    host = _url_host(target) or "download"
    return f"download-speed-{safe_name(host, 'download')}-{ts}.{extension}"


def _cell(value: Any) -> str:
    """Encode a single CSV value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ";".join(str(v) for v in value)
    return str(value)


class CSVOutput:
    """CSV output formatter."""

    DNS_COLUMNS: tuple[str, ...] = (
        "server_address",
        "query_successful",
        "success_percent",
        "latency_avg_ms",
        "jitter_avg_ms",
        "resolution_time_ms",
        "avg_time",
        "dnssec_validated",
        "ipv4_ips",
        "ipv6_ips",
        "error_msg",
    )

    DOWNLOAD_COLUMNS: tuple[str, ...] = (
        "server_address",
        "resolved_ip",
        "query_successful",
        "http_status",
        "duration_ms",
        "bytes_read",
        "bandwidth_mbps",
        "error_msg",
    )

    @staticmethod
    def _write(columns: Sequence[str], records: Iterable[Any]) -> str:
        output = StringIO()
        # QUOTE_MINIMAL quotes fields holding a delimiter, quote, CR or LF
        writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")

        writer.writerow(columns)
        for record in records:
            writer.writerow([_cell(getattr(record, name)) for name in columns])

        return output.getvalue()

    @staticmethod
    def format_dns(records: Iterable[DnsResultRecord]) -> str:
        """
        Format DNS results as CSV.

        Rows follow input order; callers pass raw or pre-sorted records.

        Args:
            records: DNS results to export

        Returns:
            CSV string
        """
        return CSVOutput._write(CSVOutput.DNS_COLUMNS, records)

    @staticmethod
    def format_download(records: Iterable[DownloadResultRecord]) -> str:
        """
        Format download speed results as CSV.

        Args:
            records: Download results to export

        Returns:
            CSV string
        """
        return CSVOutput._write(CSVOutput.DOWNLOAD_COLUMNS, records)

    @staticmethod
    def format(kind: RunKind, records: Iterable[Any]) -> str:
        if kind == RunKind.DNS:
            return CSVOutput.format_dns(records)
        return CSVOutput.format_download(records)


class JSONOutput:
    """JSON output formatter."""

    @staticmethod
    def format(records: Iterable[Any], indent: int = 2) -> str:
        """
        Format result records as a JSON array.

        Args:
            records: DNS or download results
            indent: JSON indentation level

        Returns:
            JSON string
        """
        return json.dumps([r.to_dict() for r in records], indent=indent)


class RichConsoleOutput:
    """Rich library console output with colors and tables."""

    _DNSSEC_LABELS = {
        DnssecStatus.DISABLED: "[yellow]Disabled[/yellow]",
        DnssecStatus.VALIDATED: "[green]Validated[/green]",
        DnssecStatus.NOT_VALIDATED: "[red]No[/red]",
    }

    @staticmethod
    def print_dns(
        records: Sequence[DnsResultRecord],
        console: Optional[Console] = None,
        title: str = "DNS Server Performance",
    ) -> None:
        """
        Print the DNS display list.

        Args:
            records: Records to show, already filtered and sorted
            console: Console to print to (default: stdout)
            title: Table title
        """
        console = console or Console()

        if not records:
            console.print("[dim]No usable results.[/dim]")
            return

        table = Table(title=title, box=box.ROUNDED, header_style="bold magenta")

        table.add_column("#", justify="right", style="dim")
        table.add_column("Server", style="cyan")
        table.add_column("Latency", justify="right", style="green")
        table.add_column("Jitter", justify="right", style="yellow")
        table.add_column("Success", justify="right")
        table.add_column("DNSSEC")
        table.add_column("Addresses", style="dim", overflow="ellipsis")

        for rank, record in enumerate(records, start=1):
            if record.error_msg:
                detail = record.error_msg
            else:
                detail = ", ".join((record.ipv4_ips + record.ipv6_ips)[:3])

            table.add_row(
                str(rank),
                record.server_address,
                format_ms(canonical_latency(record)),
                format_ms(canonical_jitter(record)),
                format_percent(record.success_percent),
                RichConsoleOutput._DNSSEC_LABELS[dnssec_status(record)],
                detail,
            )

        console.print(table)

    @staticmethod
    def print_download(
        records: Sequence[DownloadResultRecord],
        console: Optional[Console] = None,
        title: str = "Download Speed per DNS Server",
    ) -> None:
        """Print the download display list (fastest first)."""
        console = console or Console()

        if not records:
            console.print("[dim]No results.[/dim]")
            return

        table = Table(title=title, box=box.ROUNDED, header_style="bold magenta")

        table.add_column("#", justify="right", style="dim")
        table.add_column("Server", style="cyan")
        table.add_column("Resolved IP", style="dim")
        table.add_column("HTTP", justify="right")
        table.add_column("Bandwidth", justify="right", style="green")
        table.add_column("Error", style="red", overflow="ellipsis")

        for rank, record in enumerate(records, start=1):
            table.add_row(
                str(rank),
                record.server_address,
                record.resolved_ip or "",
                str(record.http_status) if record.http_status is not None else NO_VALUE,
                f"{record.bandwidth_mbps:.2f} Mbps",
                record.error_msg or "",
            )

        console.print(table)
