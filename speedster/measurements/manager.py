"""Measurement pipeline entry point and result history."""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from ..db import Measurement, get_session
from .cancellation import CancellationToken
from .models import MeasurementResult, RunConfig, RunOutcome
from .orchestrator import MeasurementOrchestrator

LOGGER = logging.getLogger(__name__)


class MeasurementManager:
    """Runs the pipeline for a validated :class:`RunConfig` and stores what succeeded."""

    def __init__(
        self,
        run_config: RunConfig,
        orchestrator: MeasurementOrchestrator,
        session_factory: Optional[sessionmaker] = None,
        run_deadline: float = 0.0,
    ):
        self.run_config = run_config
        self.orchestrator = orchestrator
        self.Session = session_factory
        self.run_deadline = run_deadline
        self.active_token: Optional[CancellationToken] = None

    def run_speedtest(self, token: Optional[CancellationToken] = None) -> RunOutcome:
        """Execute one complete run; any error propagates and nothing is stored."""
        token = token or CancellationToken(timeout=self.run_deadline or None)
        self.active_token = token
        try:
            outcome = self.orchestrator.execute(self.run_config, token)
        finally:
            token.close()
            self.active_token = None

        self._log_outcome(outcome)
        if self.Session is not None:
            self._persist(outcome)
        return outcome

    def cancel(self, reason: str = "interrupted") -> None:
        if self.active_token is not None:
            self.active_token.cancel(reason)

    def _log_outcome(self, outcome: RunOutcome) -> None:
        for result in outcome:
            LOGGER.info(
                "Measurement %d: %s [%s] down %.2f Mbps / up %.2f Mbps, latency %.1f ms, jitter %.1f ms (%.1fs)",
                result.measurement_index,
                result.server.label,
                result.server.id,
                result.download_mbps,
                result.upload_mbps,
                result.latency_ms,
                result.jitter_ms,
                result.duration_seconds,
            )
        stats = outcome.statistics
        if stats is not None:
            LOGGER.info(
                "Summary over %d measurements: download avg %.2f (min %.2f / max %.2f) Mbps, "
                "upload avg %.2f (min %.2f / max %.2f) Mbps",
                stats.samples,
                stats.download.mean,
                stats.download.min,
                stats.download.max,
                stats.upload.mean,
                stats.upload.min,
                stats.upload.max,
            )

    def _persist(self, outcome: RunOutcome) -> None:
        with get_session(self.Session) as session:
            session.add_all(_to_record(outcome, result) for result in outcome)
        LOGGER.info("Stored %d measurements for run %s", len(outcome), outcome.run_id)

    def get_measurements(self) -> List[Measurement]:
        """Stored rounds, oldest first."""
        if self.Session is None:
            return []
        with get_session(self.Session) as session:
            query = session.query(Measurement).order_by(Measurement.timestamp, Measurement.id)
            return query.all()


def _to_record(outcome: RunOutcome, result: MeasurementResult) -> Measurement:
    return Measurement(
        run_id=outcome.run_id,
        timestamp=result.timestamp,
        measurement_index=result.measurement_index,
        strategy=outcome.strategy.value,
        server_id=result.server.id,
        server_name=result.server.name,
        server_country=result.server.country,
        server_sponsor=result.server.sponsor,
        server_distance_km=result.server.distance,
        download_mbps=result.download_mbps,
        upload_mbps=result.upload_mbps,
        latency_ms=result.latency_ms,
        jitter_ms=result.jitter_ms,
        duration_seconds=result.duration_seconds,
    )
