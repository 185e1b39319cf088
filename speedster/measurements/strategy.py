"""Validation of the run configuration into a :class:`RunConfig`."""

from __future__ import annotations

import logging
from typing import Iterable, List, Union

from .errors import ConfigError
from .models import RunConfig, Strategy

LOGGER = logging.getLogger(__name__)


def parse_strategy(raw: str) -> Strategy:
    """Map a strategy name onto :class:`Strategy`, falling back to single-server."""
    try:
        return Strategy((raw or "").strip().lower())
    except ValueError:
        LOGGER.warning(
            "Invalid measurement strategy '%s', defaulting to '%s'",
            raw,
            Strategy.SINGLE_SERVER.value,
        )
        return Strategy.SINGLE_SERVER


def parse_server_ids(raw: Union[str, Iterable[str], None]) -> List[str]:
    """Split a comma-separated list of server IDs.

    A list is treated as its items joined by commas, so ``["1,2", 3]`` yields
    three IDs. Whitespace is trimmed and empty entries dropped. Order and
    duplicates are kept as given.
    """
    if not raw:
        return []
    if isinstance(raw, int):
        raw = str(raw)
    items = [raw] if isinstance(raw, str) else [str(item) for item in raw]
    parts = [part for item in items for part in item.split(",")]
    return [part.strip() for part in parts if part.strip()]


def validate_server_ids(server_ids: List[str], strategy: Strategy, measurement_count: int) -> None:
    id_count = len(server_ids)

    if strategy is Strategy.SINGLE_SERVER and id_count > 1:
        raise ConfigError(
            f"in {strategy.value} mode, you can only specify 0 or 1 server ID (found {id_count})"
        )

    if strategy is Strategy.MULTI_SERVER and id_count not in (0, measurement_count):
        raise ConfigError(
            f"in {strategy.value} mode with {measurement_count} measurements, you must provide "
            f"exactly {measurement_count} server IDs or none (found {id_count})"
        )


def resolve(
    raw_server_ids: Union[str, Iterable[str], None],
    measurement_count: int,
    raw_strategy: str,
    **passthrough,
) -> RunConfig:
    """Build a validated :class:`RunConfig`.

    ``passthrough`` carries the skip flags and the backend tuning values
    (``timeout``, ``concurrent_streams``, ``test_duration``) untouched.
    Raises :class:`ConfigError` before anything touches the network.
    """
    if isinstance(measurement_count, bool) or not isinstance(measurement_count, int):
        raise ConfigError(f"measurement count must be an integer (found {measurement_count!r})")
    if measurement_count < 1:
        raise ConfigError(f"measurement count must be at least 1 (found {measurement_count})")

    strategy = parse_strategy(raw_strategy)
    server_ids = parse_server_ids(raw_server_ids)
    validate_server_ids(server_ids, strategy, measurement_count)

    return RunConfig(
        server_ids=tuple(server_ids),
        measurement_count=measurement_count,
        strategy=strategy,
        **passthrough,
    )
