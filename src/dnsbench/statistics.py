"""
Statistical summary of per-server DNS samples.

Calculates the aggregate figures reported for each server:
- Average latency across all samples (successful or not)
- Jitter as the mean absolute deviation from that average
- Success rate
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np


@dataclass
class SampleStats:
    """Aggregated timings for one server."""
    count: int
    avg_ms: float
    jitter_ms: float
    min_ms: float
    max_ms: float
    median_ms: float


class StatisticsEngine:
    """Calculates summary statistics from raw sample timings."""

    @staticmethod
    def summarize(latencies_ms: Sequence[float]) -> Optional[SampleStats]:
        """
        Summarize a server's sample latencies.

        Args:
            latencies_ms: Elapsed time of every sample, in milliseconds

        Returns:
            SampleStats, or None when there are no samples
        """
        if len(latencies_ms) == 0:
            return None

        latencies = np.asarray(latencies_ms, dtype=float)
        avg = float(np.mean(latencies))

        # A single sample has no spread; report 0 rather than "no data"
        if len(latencies) > 1:
            jitter = float(np.mean(np.abs(latencies - avg)))
        else:
            jitter = 0.0

        return SampleStats(
            count=len(latencies),
            avg_ms=avg,
            jitter_ms=jitter,
            min_ms=float(np.min(latencies)),
            max_ms=float(np.max(latencies)),
            median_ms=float(np.median(latencies)),
        )

    @staticmethod
    def success_percent(successes: int, samples: int) -> float:
        """Percentage of successful samples."""
        if samples <= 0:
            return 0.0
        return successes * 100.0 / samples

    @staticmethod
    def bandwidth_mbps(bytes_read: int, elapsed_ms: float) -> float:
        """Throughput in megabits per second."""
        seconds = elapsed_ms / 1000.0
        if seconds <= 0:
            return 0.0
        return bytes_read * 8 / 1_000_000 / seconds
