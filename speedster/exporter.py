"""CSV export of the measurement history."""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Iterator, List

from sqlalchemy.orm import sessionmaker

from .config import AppConfig
from .db import Measurement, get_session

HEADER = [
    "timestamp",
    "run_id",
    "measurement_index",
    "strategy",
    "server_id",
    "server_name",
    "server_country",
    "download_mbps",
    "upload_mbps",
    "latency_ms",
    "jitter_ms",
    "duration_seconds",
]


class CSVExporter:
    def __init__(self, config: AppConfig, session_factory: sessionmaker):
        self.config = config
        self.Session = session_factory

    def build_csv(self) -> io.StringIO:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(HEADER)

        for row in self._iter_rows():
            writer.writerow(row)

        buffer.seek(0)
        return buffer

    def _iter_rows(self) -> Iterator[List]:
        with get_session(self.Session) as session:
            query = session.query(Measurement).order_by(Measurement.timestamp, Measurement.measurement_index)
            for measurement in query.all():
                yield self._row_for_measurement(measurement)

    @staticmethod
    def _row_for_measurement(measurement: Measurement) -> List:
        return [
            measurement.timestamp.isoformat(),
            measurement.run_id,
            measurement.measurement_index,
            measurement.strategy,
            measurement.server_id,
            measurement.server_name or "",
            measurement.server_country or "",
            measurement.download_mbps,
            measurement.upload_mbps,
            measurement.latency_ms,
            measurement.jitter_ms,
            measurement.duration_seconds,
        ]

    def write_snapshot(self) -> Path:
        buffer = self.build_csv()
        target = self.config.paths.data_dir / self.config.export.csv_name
        target.write_text(buffer.getvalue(), encoding="utf-8")
        return target
