"""Speedtest backend built on the ``speedtest-cli`` library."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import speedtest

from .cancellation import CancellationToken
from .errors import NetworkError
from .models import PhaseSample, ServerHandle
from .stats import compute_jitter

LOGGER = logging.getLogger(__name__)

LATENCY_SAMPLES = 3


@contextmanager
def _network_errors(action: str) -> Iterator[None]:
    try:
        yield
    except (speedtest.SpeedtestException, OSError) as exc:
        raise NetworkError(f"{action} failed: {exc}") from exc


def _bandwidth_to_mbps(bits_per_second: Optional[float]) -> float:
    if not bits_per_second:
        return 0.0
    return round(bits_per_second / 1_000_000, 2)


def _to_handle(raw: Dict, latency_ms: float) -> ServerHandle:
    return ServerHandle(
        id=str(raw.get("id")),
        name=raw.get("name", ""),
        country=raw.get("country", ""),
        distance=float(raw.get("d") or 0.0),
        latency_ms=float(latency_ms),
        sponsor=raw.get("sponsor", ""),
        host=raw.get("host", ""),
        url=raw.get("url", ""),
    )


def _to_raw(server: ServerHandle) -> Dict:
    return {
        "id": server.id,
        "name": server.name,
        "country": server.country,
        "sponsor": server.sponsor,
        "host": server.host,
        "url": server.url,
        "d": server.distance,
    }


class SpeedtestClient:
    """Catalog and transfer backend used by the orchestrator.

    A fresh ``speedtest.Speedtest`` session is opened per call with the
    cancellation token's event as its shutdown event, so transfer threads stop
    as soon as the run is cancelled.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        concurrent_streams: int = 0,
        test_duration: float = 0.0,
        catalog_size: int = 10,
        secure: bool = True,
    ) -> None:
        self.timeout = timeout
        self.concurrent_streams = concurrent_streams
        self.test_duration = test_duration
        self.catalog_size = catalog_size
        self.secure = secure

    def _open_session(self, token: CancellationToken) -> speedtest.Speedtest:
        token.raise_if_cancelled()
        with _network_errors("speedtest configuration"):
            session = speedtest.Speedtest(
                timeout=self.timeout,
                secure=self.secure,
                shutdown_event=token.event,
            )
        if self.test_duration:
            length = int(max(1, round(self.test_duration)))
            session.config["length"]["download"] = length
            session.config["length"]["upload"] = length
        return session

    def fetch_catalog(self, token: CancellationToken, include_ids: Sequence[str] = ()) -> List[ServerHandle]:
        """Return the nearest servers plus any pinned ones, each with a fresh latency estimate."""
        session = self._open_session(token)
        with _network_errors("fetching servers"):
            session.get_servers()
            candidates = list(session.get_closest_servers(limit=self.catalog_size))

        wanted = set(include_ids)
        if wanted:
            for group in session.servers.values():
                candidates.extend(raw for raw in group if str(raw.get("id")) in wanted)

        handles: List[ServerHandle] = []
        seen = set()
        for raw in candidates:
            server_id = str(raw.get("id"))
            if server_id in seen:
                continue
            seen.add(server_id)
            token.raise_if_cancelled()
            try:
                best = session.get_best_server([raw])
            except speedtest.SpeedtestBestServerFailure as exc:
                LOGGER.debug("Skipping unreachable server %s: %s", server_id, exc)
                continue
            handles.append(_to_handle(raw, best["latency"]))

        LOGGER.debug("Server catalog: %s", ", ".join(f"{h.id}={h.latency_ms}ms" for h in handles))
        return handles

    def _sample_latency(self, session: speedtest.Speedtest, raw: Dict) -> Tuple[float, float]:
        samples = []
        for _ in range(LATENCY_SAMPLES):
            best = session.get_best_server([raw])
            samples.append(float(best["latency"]))
        return round(sum(samples) / len(samples), 3), compute_jitter(samples)

    def download_test(self, server: ServerHandle, token: CancellationToken) -> PhaseSample:
        session = self._open_session(token)
        with _network_errors(f"download test against server {server.id}"):
            latency_ms, jitter_ms = self._sample_latency(session, _to_raw(server))
            bits = session.download(threads=self.concurrent_streams or None)
        token.raise_if_cancelled()
        mbps = _bandwidth_to_mbps(bits)
        LOGGER.debug("Download from %s: %.2f Mbps, latency %.1f ms", server.id, mbps, latency_ms)
        return PhaseSample(throughput_mbps=mbps, latency_ms=latency_ms, jitter_ms=jitter_ms)

    def upload_test(self, server: ServerHandle, token: CancellationToken) -> PhaseSample:
        session = self._open_session(token)
        with _network_errors(f"upload test against server {server.id}"):
            latency_ms, jitter_ms = self._sample_latency(session, _to_raw(server))
            bits = session.upload(threads=self.concurrent_streams or None)
        token.raise_if_cancelled()
        mbps = _bandwidth_to_mbps(bits)
        LOGGER.debug("Upload to %s: %.2f Mbps, latency %.1f ms", server.id, mbps, latency_ms)
        return PhaseSample(throughput_mbps=mbps, latency_ms=latency_ms, jitter_ms=jitter_ms)
