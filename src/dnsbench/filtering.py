"""
Selection and ordering of results for display.

All functions are pure: they never mutate their input and always return
a new list. Sorting relies on Python's stable sort, so records that
compare equal keep their original relative order.
"""

import math
from typing import Iterable

from .models import DnsResultRecord, DownloadResultRecord
from .normalize import canonical_latency


def is_usable(record: DnsResultRecord) -> bool:
    """A record is shown only if at least one query succeeded."""
    return bool(record.query_successful) and record.success_percent > 0


def usable_dns(records: Iterable[DnsResultRecord]) -> list[DnsResultRecord]:
    """Keep usable records, preserving input order."""
    return [r for r in records if is_usable(r)]


def _latency_key(record: DnsResultRecord) -> float:
    latency = canonical_latency(record)
    return math.inf if latency is None else latency


def sort_dns(records: Iterable[DnsResultRecord]) -> list[DnsResultRecord]:
    """Ascending canonical latency; records without latency go last."""
    return sorted(records, key=_latency_key)


def sort_download(records: Iterable[DownloadResultRecord]) -> list[DownloadResultRecord]:
    """Descending bandwidth."""
    return sorted(records, key=lambda r: r.bandwidth_mbps, reverse=True)


def display_dns(records: Iterable[DnsResultRecord]) -> list[DnsResultRecord]:
    """The DNS list as rendered: usable records, fastest first."""
    return sort_dns(usable_dns(records))
