"""Configuration loading helpers for the speed test service."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import yaml

from .measurements.errors import ConfigError
from .measurements.models import RunConfig
from .measurements.strategy import resolve

LOGGER = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|us|µs|ns|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 1e-3, "us": 1e-6, "µs": 1e-6, "ns": 1e-9}


@dataclass
class PathsConfig:
    data_dir: Path
    logs_dir: Path


@dataclass
class SpeedtestConfig:
    server_ids: Union[str, List[str]] = ""
    measurement_count: int = 1
    strategy: str = "single-server"
    skip_download: bool = False
    skip_upload: bool = False
    timeout: float = 30.0
    concurrent_streams: int = 0
    test_duration: float = 0.0
    catalog_size: int = 10
    secure: bool = True
    run_deadline: float = 0.0


@dataclass
class TelemetryConfig:
    enabled: bool = True
    service_name: str = "speedster"
    service_namespace: str = ""
    export_interval_seconds: int = 10


@dataclass
class SchedulerConfig:
    enabled: bool = True
    interval_minutes: int = 60


@dataclass
class HistoryConfig:
    enabled: bool = True


@dataclass
class ExportConfig:
    csv_name: str = "results.csv"


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class AppConfig:
    root_dir: Path
    paths: PathsConfig
    speedtest: SpeedtestConfig = field(default_factory=SpeedtestConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def run_config(self) -> RunConfig:
        """Validate the speedtest section; raises ``ConfigError`` on bad combinations."""
        section = self.speedtest
        return resolve(
            section.server_ids,
            section.measurement_count,
            section.strategy,
            skip_download=section.skip_download,
            skip_upload=section.skip_upload,
            timeout=section.timeout,
            concurrent_streams=section.concurrent_streams,
            test_duration=section.test_duration,
        )


def parse_duration(raw: Union[str, int, float]) -> float:
    """Parse ``30s`` / ``1m30s`` / ``500ms`` style durations or plain seconds."""
    if isinstance(raw, (int, float)):
        return float(raw)
    if not isinstance(raw, str):
        raise ValueError(f"invalid duration {raw!r}")
    text = raw.strip()
    try:
        return float(text)
    except ValueError:
        pass
    parts = _DURATION_PART.findall(text)
    if not parts or "".join(value + unit for value, unit in parts) != text:
        raise ValueError(f"invalid duration {raw!r}")
    return sum(float(value) * _DURATION_UNITS[unit] for value, unit in parts)


def _parse_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ("1", "t", "true", "yes", "on"):
        return True
    if lowered in ("0", "f", "false", "no", "off"):
        return False
    raise ValueError(f"invalid boolean {raw!r}")


_ENV_OVERRIDES = {
    "SPEEDTEST_SERVER_ID": ("server_ids", str),
    "SPEEDTEST_MEASUREMENT_COUNT": ("measurement_count", int),
    "SPEEDTEST_MEASUREMENT_STRATEGY": ("strategy", str),
    "SPEEDTEST_SKIP_DOWNLOAD": ("skip_download", _parse_bool),
    "SPEEDTEST_SKIP_UPLOAD": ("skip_upload", _parse_bool),
    "SPEEDTEST_TIMEOUT": ("timeout", parse_duration),
    "SPEEDTEST_CONCURRENT_STREAMS": ("concurrent_streams", int),
    "SPEEDTEST_TEST_DURATION": ("test_duration", parse_duration),
}


_INT_FIELDS = ("measurement_count", "concurrent_streams", "catalog_size")
_DURATION_FIELDS = ("timeout", "test_duration", "run_deadline")


def _coerce_speedtest(section: SpeedtestConfig) -> None:
    """Normalize YAML scalars; anything that does not convert is a ``ConfigError``."""
    for key in _INT_FIELDS + _DURATION_FIELDS:
        value = getattr(section, key)
        try:
            setattr(section, key, int(value) if key in _INT_FIELDS else parse_duration(value))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid speedtest.{key} {value!r}: {exc}") from exc


def _apply_env_overrides(config: AppConfig, environ: Mapping[str, str]) -> None:
    for key, (attribute, parser) in _ENV_OVERRIDES.items():
        value = environ.get(key)
        if not value:
            continue
        try:
            setattr(config.speedtest, attribute, parser(value))
        except ValueError:
            LOGGER.warning("Ignoring unparsable %s=%r", key, value)

    if environ.get("OTEL_SERVICE_NAME"):
        config.telemetry.service_name = environ["OTEL_SERVICE_NAME"]
    if environ.get("OTEL_SERVICE_NAMESPACE"):
        config.telemetry.service_namespace = environ["OTEL_SERVICE_NAMESPACE"]

    # the loader is lenient about the count, resolve() is not
    if config.speedtest.measurement_count < 1:
        config.speedtest.measurement_count = 1


def _as_path(base: Path, maybe_path: Optional[str]) -> Path:
    if not maybe_path:
        raise ValueError("Path configuration entries cannot be empty")
    path = (base / maybe_path).resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load application configuration from YAML file and the environment.

    An explicitly given path must exist. Without one, ``config.yaml`` in the
    working directory is used when present and built-in defaults otherwise.
    """
    root_dir = Path(path).resolve().parent if path else Path.cwd()
    source_path = Path(path) if path else root_dir / "config.yaml"

    data: Dict = {}
    if source_path.exists():
        with source_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    elif path:
        raise FileNotFoundError(f"Missing configuration file at {source_path}")

    paths_data = data.get("paths", {})
    paths = PathsConfig(
        data_dir=_as_path(root_dir, paths_data.get("data_dir", "data")),
        logs_dir=_as_path(root_dir, paths_data.get("logs_dir", "logs")),
    )

    try:
        config = AppConfig(
            root_dir=root_dir,
            paths=paths,
            speedtest=SpeedtestConfig(**data.get("speedtest", {})),
            telemetry=TelemetryConfig(**data.get("telemetry", {})),
            scheduler=SchedulerConfig(**data.get("scheduler", {})),
            history=HistoryConfig(**data.get("history", {})),
            export=ExportConfig(**data.get("export", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )
    except TypeError as exc:
        raise ConfigError(f"invalid configuration in {source_path}: {exc}") from exc

    _coerce_speedtest(config.speedtest)
    _apply_env_overrides(config, os.environ if environ is None else environ)
    return config
