"""Shared dataclasses for measurements."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional, Tuple


class Strategy(str, enum.Enum):
    """How measurement rounds are spread across servers."""

    SINGLE_SERVER = "single-server"
    MULTI_SERVER = "multi-server"


@dataclass(frozen=True)
class RunConfig:
    server_ids: Tuple[str, ...] = ()
    measurement_count: int = 1
    strategy: Strategy = Strategy.SINGLE_SERVER
    skip_download: bool = False
    skip_upload: bool = False
    timeout: float = 30.0
    concurrent_streams: int = 0
    test_duration: float = 0.0


@dataclass(frozen=True)
class ServerHandle:
    id: str
    name: str
    country: str
    distance: float
    latency_ms: float
    sponsor: str = ""
    host: str = ""
    url: str = ""

    @property
    def label(self) -> str:
        return f"{self.name} ({self.country})"


@dataclass(frozen=True)
class PhaseSample:
    """What the backend reports for a single download or upload transfer."""

    throughput_mbps: float
    latency_ms: float
    jitter_ms: float


@dataclass(frozen=True)
class MeasurementResult:
    server: ServerHandle
    measurement_index: int
    timestamp: datetime
    download_mbps: float
    upload_mbps: float
    latency_ms: float
    jitter_ms: float
    duration_seconds: float


@dataclass(frozen=True)
class SeriesStats:
    mean: float = 0.0
    min: float = 0.0
    max: float = 0.0


@dataclass(frozen=True)
class Statistics:
    download: SeriesStats
    upload: SeriesStats
    samples: int


@dataclass(frozen=True)
class RunOutcome:
    """Ordered results of one complete run."""

    run_id: str
    strategy: Strategy
    results: Tuple[MeasurementResult, ...]
    statistics: Optional[Statistics] = field(default=None)

    def __iter__(self) -> Iterator[MeasurementResult]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)
