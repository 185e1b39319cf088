"""OpenTelemetry wiring: tracer, gauges and exporter lifecycle."""

from __future__ import annotations

import logging
import socket
from typing import Callable, List, Optional

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import (
    HOST_NAME,
    SERVICE_NAME,
    SERVICE_NAMESPACE,
    ProcessResourceDetector,
    Resource,
)
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_ON

from .config import AppConfig
from .measurements.models import MeasurementResult

LOGGER = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "speedster"


class TelemetryHandle:
    """Tracer plus the four result gauges, owned by the composition root."""

    def __init__(
        self,
        tracer: trace.Tracer,
        meter: metrics.Meter,
        shutdown_hooks: Optional[List[Callable[[], None]]] = None,
    ) -> None:
        self.tracer = tracer
        self._shutdown_hooks = shutdown_hooks or []
        self.download_gauge = meter.create_gauge(
            "speedtest_download_mbps", unit="Mbps", description="Download speed in Mbps"
        )
        self.upload_gauge = meter.create_gauge(
            "speedtest_upload_mbps", unit="Mbps", description="Upload speed in Mbps"
        )
        self.latency_gauge = meter.create_gauge(
            "speedtest_latency_ms", unit="ms", description="Latency in milliseconds"
        )
        self.jitter_gauge = meter.create_gauge(
            "speedtest_jitter_ms", unit="ms", description="Jitter in milliseconds"
        )

    @classmethod
    def from_providers(cls, tracer_provider, meter_provider) -> "TelemetryHandle":
        hooks = []
        for provider in (meter_provider, tracer_provider):
            if hasattr(provider, "shutdown"):
                hooks.append(provider.shutdown)
        return cls(
            tracer_provider.get_tracer(INSTRUMENTATION_NAME),
            meter_provider.get_meter(INSTRUMENTATION_NAME),
            hooks,
        )

    @classmethod
    def noop(cls) -> "TelemetryHandle":
        return cls.from_providers(trace.NoOpTracerProvider(), metrics.NoOpMeterProvider())

    def record_result(self, result: MeasurementResult) -> None:
        attributes = {
            "server_id": result.server.id,
            "server_name": result.server.name,
            "server_country": result.server.country,
            "measurement_index": result.measurement_index,
        }
        self.download_gauge.set(result.download_mbps, attributes)
        self.upload_gauge.set(result.upload_mbps, attributes)
        self.latency_gauge.set(result.latency_ms, attributes)
        self.jitter_gauge.set(result.jitter_ms, attributes)

    def shutdown(self) -> None:
        for hook in self._shutdown_hooks:
            try:
                hook()
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.warning("Error during telemetry shutdown: %s", exc)
        self._shutdown_hooks = []


def _build_resource(config: AppConfig) -> Resource:
    """Service identity plus host name and process runtime attributes."""
    attributes = {SERVICE_NAME: config.telemetry.service_name, HOST_NAME: socket.gethostname()}
    if config.telemetry.service_namespace:
        attributes[SERVICE_NAMESPACE] = config.telemetry.service_namespace
    return ProcessResourceDetector().detect().merge(Resource.create(attributes))


def init_telemetry(config: AppConfig) -> TelemetryHandle:
    """Create OTLP/HTTP exporting providers, or no-op ones when disabled.

    Endpoints and headers come from the standard ``OTEL_EXPORTER_OTLP_*``
    environment variables read by the exporters themselves.
    """
    if not config.telemetry.enabled:
        LOGGER.info("Telemetry disabled, results will only be logged")
        return TelemetryHandle.noop()

    LOGGER.info("Initializing OpenTelemetry (service %s)", config.telemetry.service_name)
    resource = _build_resource(config)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(),
        export_interval_millis=config.telemetry.export_interval_seconds * 1000,
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[reader])

    tracer_provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))

    return TelemetryHandle.from_providers(tracer_provider, meter_provider)
