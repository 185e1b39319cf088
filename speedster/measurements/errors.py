"""Exceptions raised by the measurement pipeline."""

from __future__ import annotations


class SpeedtestError(Exception):
    """Base class for every failure that terminates a measurement run."""


class ConfigError(SpeedtestError, ValueError):
    """Invalid strategy / measurement count / server ID combination."""


class SelectionError(SpeedtestError):
    """Empty server catalog or a pinned server that the catalog does not know."""


class NetworkError(SpeedtestError):
    """Catalog fetch or transfer failure reported by the measurement backend."""


class MeasurementError(SpeedtestError):
    """The run was cancelled or ran past its deadline."""
