"""Application bootstrap helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .config import AppConfig, load_config
from .db import init_db
from .exporter import CSVExporter
from .logging_setup import configure_logging
from .measurements.manager import MeasurementManager
from .measurements.orchestrator import MeasurementOrchestrator
from .measurements.speedtest_runner import SpeedtestClient
from .scheduler import SchedulerService
from .telemetry import TelemetryHandle, init_telemetry


class ApplicationContext:
    """Holds shared singletons for the service.

    The run configuration is validated first, so a ``ConfigError`` surfaces
    before telemetry exporters or network clients are created.
    """

    def __init__(self, config: AppConfig, telemetry: Optional[TelemetryHandle] = None, verbose: bool = False):
        self.config = config
        configure_logging(config, verbose=verbose)
        self.run_config = config.run_config()

        self.telemetry = telemetry or init_telemetry(config)
        section = config.speedtest
        self.backend = SpeedtestClient(
            timeout=self.run_config.timeout,
            concurrent_streams=self.run_config.concurrent_streams,
            test_duration=self.run_config.test_duration,
            catalog_size=section.catalog_size,
            secure=section.secure,
        )
        self.orchestrator = MeasurementOrchestrator(self.backend, self.telemetry)

        self.Session = init_db(config.paths.data_dir) if config.history.enabled else None
        self.measurements = MeasurementManager(
            self.run_config,
            self.orchestrator,
            session_factory=self.Session,
            run_deadline=section.run_deadline,
        )
        self.exporter = CSVExporter(config, self.Session) if self.Session is not None else None
        self.scheduler = SchedulerService(config, self.measurements, self.exporter)

    def shutdown(self) -> None:
        self.scheduler.shutdown()
        self.telemetry.shutdown()


def bootstrap(config_path: Optional[str] = None, verbose: bool = False) -> ApplicationContext:
    """Load configuration and wire dependencies."""

    config_file = Path(config_path).resolve() if config_path else None
    config = load_config(str(config_file)) if config_file else load_config()
    return ApplicationContext(config, verbose=verbose)
