"""
Canonical metrics for DNS benchmark results.

Servers report latency through several optional fields, depending on
which backend revision produced the record. The helpers here resolve
them into one canonical value and format it for display.
"""

from typing import Any, Iterable, Optional

from .models import DnsResultRecord, DnssecStatus


# Fallback order for the canonical latency value
LATENCY_PRIORITY: tuple[str, ...] = ("latency_avg_ms", "avg_time", "resolution_time_ms")

NO_VALUE = "–"


def first_present(record: Any, field_names: Iterable[str]) -> Optional[Any]:
    """
    Return the first attribute of record that is not None.

    Args:
        record: Object to read attributes from
        field_names: Attribute names in priority order

    Returns:
        The first non-None value, or None if every field is absent
    """
    for name in field_names:
        value = getattr(record, name, None)
        if value is not None:
            return value
    return None


def canonical_latency(record: DnsResultRecord) -> Optional[float]:
    """Canonical latency in ms; 0 and sub-millisecond values are real values."""
    value = first_present(record, LATENCY_PRIORITY)
    return None if value is None else float(value)


def canonical_jitter(record: DnsResultRecord) -> Optional[float]:
    """Jitter is reported verbatim, never derived from other fields."""
    if record.jitter_avg_ms is None:
        return None
    return float(record.jitter_avg_ms)


def dnssec_status(record: DnsResultRecord) -> DnssecStatus:
    if record.dnssec_enabled is False:
        return DnssecStatus.DISABLED
    if record.dnssec_validated:
        return DnssecStatus.VALIDATED
    return DnssecStatus.NOT_VALIDATED


def format_ms(value: Optional[float]) -> str:
    """Format milliseconds: one decimal below 1ms, whole numbers otherwise."""
    if value is None:
        return NO_VALUE
    if value < 1:
        return f"{value:.1f} ms"
    return f"{round(value)} ms"


def format_percent(value: Optional[float]) -> str:
    if value is None:
        return NO_VALUE
    return f"{round(value)}%"
