import threading

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from speedster.config import load_config
from speedster.measurements.models import PhaseSample, ServerHandle
from speedster.telemetry import TelemetryHandle


def make_server(server_id, latency_ms=10.0, country="Germany"):
    return ServerHandle(
        id=server_id,
        name=f"City {server_id}",
        country=country,
        distance=12.5,
        latency_ms=latency_ms,
        sponsor=f"ISP {server_id}",
        host=f"speedtest{server_id}.example.net:8080",
        url=f"http://speedtest{server_id}.example.net:8080/speedtest/upload.php",
    )


class FakeBackend:
    """In-process stand-in for the speedtest-cli backend.

    ``failures`` maps ``(phase, call_number)`` to the exception raised by that
    call, call numbers counting from 1 per phase.
    """

    DOWNLOAD_LATENCY = 11.0
    UPLOAD_LATENCY = 13.0

    def __init__(self, catalog=(), download_mbps=(100.0,), upload_mbps=(20.0,)):
        self.catalog = list(catalog)
        self.download_mbps = list(download_mbps)
        self.upload_mbps = list(upload_mbps)
        self.failures = {}
        self.calls = []
        self.include_ids = None

    def fetch_catalog(self, token, include_ids=()):
        self.calls.append(("catalog", None))
        self.include_ids = tuple(include_ids)
        return list(self.catalog)

    def _phase(self, phase, server, series, latency):
        number = sum(1 for name, _ in self.calls if name == phase) + 1
        self.calls.append((phase, server.id))
        if (phase, number) in self.failures:
            raise self.failures[(phase, number)]
        value = series[(number - 1) % len(series)]
        return PhaseSample(throughput_mbps=value, latency_ms=latency, jitter_ms=latency / 10)

    def download_test(self, server, token):
        return self._phase("download", server, self.download_mbps, self.DOWNLOAD_LATENCY)

    def upload_test(self, server, token):
        return self._phase("upload", server, self.upload_mbps, self.UPLOAD_LATENCY)

    def phase_calls(self):
        return [call for call in self.calls if call[0] != "catalog"]


class BlockingBackend(FakeBackend):
    """Download blocks until the token is cancelled, like speedtest-cli's transfer threads."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()

    def download_test(self, server, token):
        self.calls.append(("download", server.id))
        self.entered.set()
        token.wait(5)
        return PhaseSample(throughput_mbps=1.0, latency_ms=1.0, jitter_ms=0.0)


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def metric_reader():
    return InMemoryMetricReader()


@pytest.fixture
def telemetry(span_exporter, metric_reader):
    tracer_provider = TracerProvider()
    tracer_provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    meter_provider = MeterProvider(metric_readers=[metric_reader])
    handle = TelemetryHandle.from_providers(tracer_provider, meter_provider)
    yield handle
    handle.shutdown()


@pytest.fixture
def gauge_points(metric_reader):
    def _points(name):
        data = metric_reader.get_metrics_data()
        if data is None:
            return []
        points = []
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    if metric.name == name:
                        points.extend(metric.data.data_points)
        return points

    return _points


@pytest.fixture
def five_servers():
    latencies = {"101": 40.0, "102": 12.0, "103": 55.0, "104": 8.0, "105": 20.0}
    return [make_server(server_id, latency) for server_id, latency in latencies.items()]


@pytest.fixture
def app_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return load_config(environ={})
