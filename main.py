"""Entry point for running the speed test service."""

from __future__ import annotations

import argparse
import logging
import signal
import sys

from speedster import bootstrap
from speedster.measurements.errors import ConfigError

LOGGER = logging.getLogger("speedster")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Periodic internet speed test exporter")
    parser.add_argument("--config", help="Path to config.yaml", default=None)
    parser.add_argument("--once", action="store_true", help="Run a single measurement cycle and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    try:
        context = bootstrap(args.config, verbose=args.verbose)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    def _handle_signal(signum, _frame):
        LOGGER.info("Received %s, cleaning up...", signal.Signals(signum).name)
        context.scheduler.shutdown()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    LOGGER.info("Starting speed test with config: %s", context.run_config)
    try:
        if args.once:
            return 0 if context.scheduler.run_cycle() else 1
        context.scheduler.start()
        return 0
    finally:
        context.shutdown()
        LOGGER.info("Speed test service exiting")


if __name__ == "__main__":
    sys.exit(main())
