"""Statistical aggregation across measurement rounds."""

from __future__ import annotations

from typing import Iterable, Sequence

from .models import MeasurementResult, SeriesStats, Statistics


def series_stats(values: Sequence[float]) -> SeriesStats:
    if not values:
        return SeriesStats()
    return SeriesStats(
        mean=sum(values) / len(values),
        min=min(values),
        max=max(values),
    )


def summarize(outcome: Iterable[MeasurementResult]) -> Statistics:
    """Mean/min/max of download and upload throughput across all rounds."""
    results = list(outcome)
    return Statistics(
        download=series_stats([result.download_mbps for result in results]),
        upload=series_stats([result.upload_mbps for result in results]),
        samples=len(results),
    )


def compute_jitter(values: Sequence[float]) -> float:
    """Compute jitter as average absolute difference between consecutive samples."""
    if len(values) < 2:
        return 0.0
    diffs = [abs(values[i + 1] - values[i]) for i in range(len(values) - 1)]
    return round(sum(diffs) / len(diffs), 3)
