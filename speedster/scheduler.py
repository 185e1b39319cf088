"""Periodic measurement scheduling."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import AppConfig
from .exporter import CSVExporter
from .measurements.errors import SpeedtestError
from .measurements.manager import MeasurementManager

LOGGER = logging.getLogger(__name__)

JOB_ID = "scheduled-measurements"


class SchedulerService:
    def __init__(
        self,
        config: AppConfig,
        measurement_manager: MeasurementManager,
        exporter: Optional[CSVExporter] = None,
    ) -> None:
        self.config = config
        self.measurements = measurement_manager
        self.exporter = exporter
        self.scheduler = BlockingScheduler(timezone="UTC")
        self.started = False

    def run_cycle(self) -> bool:
        """Run the pipeline once. Failures are logged and reported as ``False``."""
        LOGGER.info("Starting measurement cycle at %s", datetime.now(timezone.utc).isoformat())
        try:
            self.measurements.run_speedtest()
        except SpeedtestError as exc:
            LOGGER.error("Speed test failed: %s", exc)
            return False

        if self.exporter is not None:
            target = self.exporter.write_snapshot()
            LOGGER.debug("Wrote CSV snapshot to %s", target)
        return True

    def start(self) -> None:
        """Block, running a cycle immediately and then every ``interval_minutes``."""
        if self.started:
            LOGGER.warning("Scheduler already started, ignoring duplicate start request")
            return

        if not self.config.scheduler.enabled:
            LOGGER.warning("Scheduler is disabled in configuration, running a single cycle")
            self.run_cycle()
            return

        interval = self.config.scheduler.interval_minutes
        self.scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(minutes=interval),
            id=JOB_ID,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
        )
        self.started = True
        LOGGER.info("Scheduler started with interval %s minutes", interval)
        self.scheduler.start()

    def shutdown(self) -> None:
        self.measurements.cancel("shutdown requested")
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
