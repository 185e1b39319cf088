"""Drives measurement rounds against the selected servers.

A run is all-or-nothing: the first failing phase aborts the whole run and no
result, not even from earlier successful rounds, reaches the telemetry sink.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence

from opentelemetry.trace import Span, Status, StatusCode

from ..telemetry import TelemetryHandle
from .cancellation import CancellationToken
from .errors import MeasurementError, NetworkError, SelectionError
from .models import MeasurementResult, PhaseSample, RunConfig, RunOutcome, ServerHandle
from .selector import select_servers
from .stats import summarize

LOGGER = logging.getLogger(__name__)


class MeasurementBackend(Protocol):
    def fetch_catalog(self, token: CancellationToken, include_ids: Sequence[str] = ()) -> List[ServerHandle]:
        ...

    def download_test(self, server: ServerHandle, token: CancellationToken) -> PhaseSample:
        ...

    def upload_test(self, server: ServerHandle, token: CancellationToken) -> PhaseSample:
        ...


def _server_attributes(server: ServerHandle) -> dict:
    return {
        "speedtest.server.id": server.id,
        "speedtest.server.name": server.name,
        "speedtest.server.country": server.country,
        "speedtest.server.distance": server.distance,
    }


class MeasurementOrchestrator:
    def __init__(self, backend: MeasurementBackend, telemetry: TelemetryHandle):
        self.backend = backend
        self.telemetry = telemetry

    def execute(self, config: RunConfig, token: CancellationToken) -> RunOutcome:
        """Fetch the catalog, select servers and run every round under one root span."""
        with self.telemetry.tracer.start_as_current_span("speedtest.execution") as span:
            span.set_attributes(
                {
                    "measurement_count": config.measurement_count,
                    "measurement_strategy": config.strategy.value,
                }
            )
            servers = self.select(config, token)
            outcome = self.run(config, servers, token)
            if outcome.statistics is not None:
                stats = outcome.statistics
                span.set_attributes(
                    {
                        "speedtest.download.mbps.avg": stats.download.mean,
                        "speedtest.download.mbps.min": stats.download.min,
                        "speedtest.download.mbps.max": stats.download.max,
                        "speedtest.upload.mbps.avg": stats.upload.mean,
                        "speedtest.upload.mbps.min": stats.upload.min,
                        "speedtest.upload.mbps.max": stats.upload.max,
                    }
                )
            span.set_status(Status(StatusCode.OK, "speed test completed successfully"))
            return outcome

    def select(self, config: RunConfig, token: CancellationToken) -> List[ServerHandle]:
        with self.telemetry.tracer.start_as_current_span("speedtest.server_selection") as span:
            token.raise_if_cancelled()
            try:
                catalog = self.backend.fetch_catalog(token, include_ids=config.server_ids)
            except NetworkError as exc:
                if token.cancelled:
                    raise MeasurementError(f"server catalog fetch aborted: {token.reason}") from exc
                raise
            token.raise_if_cancelled()
            LOGGER.info("Fetched %d candidate servers", len(catalog))

            servers = select_servers(catalog, config.server_ids, config.strategy, config.measurement_count)
            span.set_attributes(
                {
                    "server_count": len({server.id for server in servers}),
                    "strategy": config.strategy.value,
                }
            )
            return servers

    def run(
        self,
        config: RunConfig,
        servers: Sequence[ServerHandle],
        token: CancellationToken,
    ) -> RunOutcome:
        """Run ``measurement_count`` rounds strictly in order.

        Round *i* uses ``servers[i % len(servers)]``, so a single handle is
        reused for every round.
        """
        if not servers:
            raise SelectionError("no servers selected")

        results: List[MeasurementResult] = []
        for offset in range(config.measurement_count):
            server = servers[offset % len(servers)]
            results.append(self._run_round(config, server, offset + 1, token))

        statistics = summarize(results) if config.measurement_count > 1 else None
        outcome = RunOutcome(
            run_id=uuid.uuid4().hex,
            strategy=config.strategy,
            results=tuple(results),
            statistics=statistics,
        )

        for result in outcome:
            self.telemetry.record_result(result)
        return outcome

    def _run_round(
        self,
        config: RunConfig,
        server: ServerHandle,
        index: int,
        token: CancellationToken,
    ) -> MeasurementResult:
        with self.telemetry.tracer.start_as_current_span(f"speedtest.measurement_{index}") as span:
            span.set_attributes({"measurement_index": index, **_server_attributes(server)})
            LOGGER.info("Measurement %d/%d against %s [%s]", index, config.measurement_count, server.label, server.id)

            timestamp = datetime.now(timezone.utc)
            started = time.perf_counter()
            download: Optional[PhaseSample] = None
            upload: Optional[PhaseSample] = None

            if not config.skip_download:
                download = self._run_phase("download", server, index, token)
                span.set_attribute("speedtest.download.mbps", download.throughput_mbps)

            if not config.skip_upload:
                upload = self._run_phase("upload", server, index, token)
                span.set_attribute("speedtest.upload.mbps", upload.throughput_mbps)

            # the last phase that ran owns latency/jitter
            last = upload or download
            result = MeasurementResult(
                server=server,
                measurement_index=index,
                timestamp=timestamp,
                download_mbps=download.throughput_mbps if download else 0.0,
                upload_mbps=upload.throughput_mbps if upload else 0.0,
                latency_ms=last.latency_ms if last else server.latency_ms,
                jitter_ms=last.jitter_ms if last else 0.0,
                duration_seconds=round(time.perf_counter() - started, 3),
            )
            span.set_status(Status(StatusCode.OK, "measurement completed successfully"))
            return result

    def _run_phase(self, phase: str, server: ServerHandle, index: int, token: CancellationToken) -> PhaseSample:
        with self.telemetry.tracer.start_as_current_span(f"speedtest.{phase}_test") as span:
            span.set_attributes({"server.id": server.id, "server.name": server.name})
            token.raise_if_cancelled()

            test = self.backend.download_test if phase == "download" else self.backend.upload_test
            try:
                sample = test(server, token)
            except NetworkError as exc:
                if token.cancelled:
                    raise MeasurementError(f"{phase} test for measurement {index} aborted: {token.reason}") from exc
                raise NetworkError(f"{phase} test failed for measurement {index}: {exc}") from exc

            token.raise_if_cancelled()
            _annotate_phase(span, phase, sample)
            return sample


def _annotate_phase(span: Span, phase: str, sample: PhaseSample) -> None:
    span.set_attributes(
        {
            f"{phase}.mbps": sample.throughput_mbps,
            f"{phase}.latency_ms": sample.latency_ms,
            f"{phase}.jitter_ms": sample.jitter_ms,
        }
    )
