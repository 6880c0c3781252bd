"""Tests for the usability filter and display ordering."""

from dnsbench.filtering import display_dns, is_usable, sort_dns, sort_download, usable_dns
from dnsbench.models import DnsResultRecord, DownloadResultRecord


def _dns(name: str, **fields) -> DnsResultRecord:
    fields.setdefault("query_successful", True)
    fields.setdefault("success_percent", 100.0)
    return DnsResultRecord(server_address=name, **fields)


def test_usable_requires_success_and_positive_percent() -> None:
    """Both the success flag and a non-zero rate are required."""
    assert is_usable(_dns("a"))
    assert not is_usable(_dns("b", query_successful=False))
    assert not is_usable(_dns("c", success_percent=0.0))


def test_usable_dns_scenario(dns_records) -> None:
    """Only the successful server of the two is kept."""
    assert usable_dns(dns_records) == [dns_records[0]]


def test_sort_dns_ascending_with_missing_latency_last() -> None:
    """Records without any latency keep their relative order at the end."""
    records = [
        _dns("none-1"),
        _dns("slow", latency_avg_ms=40.0),
        _dns("fast", avg_time=5.0),
        _dns("none-2"),
        _dns("mid", resolution_time_ms=20),
    ]

    ordered = [r.server_address for r in sort_dns(records)]

    assert ordered == ["fast", "mid", "slow", "none-1", "none-2"]


def test_sort_dns_is_stable_for_ties() -> None:
    """Equal latencies keep input order."""
    records = [_dns(name, latency_avg_ms=10.0) for name in ("x", "y", "z")]

    assert [r.server_address for r in sort_dns(records)] == ["x", "y", "z"]


def test_sort_dns_does_not_mutate_input() -> None:
    """A new list is returned."""
    records = [_dns("b", latency_avg_ms=2.0), _dns("a", latency_avg_ms=1.0)]

    sort_dns(records)

    assert [r.server_address for r in records] == ["b", "a"]


def test_sort_download_scenario(download_records) -> None:
    """Highest bandwidth first."""
    ordered = sort_download(download_records)

    assert [r.bandwidth_mbps for r in ordered] == [80.0, 50.1, 12.3]


def test_sort_download_is_stable_for_ties() -> None:
    """Equal bandwidths keep input order."""
    records = [
        DownloadResultRecord(server_address=name, bandwidth_mbps=10.0) for name in ("p", "q")
    ] + [DownloadResultRecord(server_address="r", bandwidth_mbps=20.0)]

    assert [r.server_address for r in sort_download(records)] == ["r", "p", "q"]


def test_display_dns_keeps_usable_records_without_latency() -> None:
    """A usable record with no latency fields is shown last."""
    records = [
        _dns("no-latency"),
        _dns("failed", query_successful=False, success_percent=0.0, latency_avg_ms=1.0),
        _dns("measured", latency_avg_ms=30.0),
    ]

    assert [r.server_address for r in display_dns(records)] == ["measured", "no-latency"]
