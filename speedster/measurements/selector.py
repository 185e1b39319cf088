"""Pick the server used by each measurement round."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from .errors import SelectionError
from .models import ServerHandle, Strategy

LOGGER = logging.getLogger(__name__)


def _resolve_pins(servers: Sequence[ServerHandle], server_ids: Sequence[str]) -> List[ServerHandle]:
    by_id: Dict[str, ServerHandle] = {}
    for server in servers:
        by_id.setdefault(server.id, server)

    missing = [server_id for server_id in server_ids if server_id not in by_id]
    if missing:
        raise SelectionError(
            f"failed to find servers with IDs {list(server_ids)}: unknown {', '.join(missing)}"
        )
    return [by_id[server_id] for server_id in server_ids]


def select_servers(
    servers: Sequence[ServerHandle],
    server_ids: Sequence[str],
    strategy: Strategy,
    measurement_count: int,
) -> List[ServerHandle]:
    """Return one server per round, in round order.

    Single-server mode repeats one handle for every round. Multi-server mode
    uses the pins as given, or the lowest-latency servers, wrapping around when
    the catalog holds fewer servers than rounds.
    """
    if not servers:
        raise SelectionError("no servers found")

    if server_ids:
        targets = _resolve_pins(servers, server_ids)
    elif strategy is Strategy.MULTI_SERVER:
        # sorted() is stable, ties keep catalog order
        targets = sorted(servers, key=lambda server: server.latency_ms)
    else:
        targets = [min(servers, key=lambda server: server.latency_ms)]

    if strategy is Strategy.SINGLE_SERVER:
        return [targets[0]] * measurement_count

    if server_ids:
        return targets

    available = len(targets)
    if measurement_count > available:
        LOGGER.warning(
            "Requested %d measurements but only %d servers available, reusing servers",
            measurement_count,
            available,
        )
    return [targets[index % available] for index in range(measurement_count)]
