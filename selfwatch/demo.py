"""
A small program that runs itself under selfwatch.

    python -m selfwatch.demo --message "hello" --lifetime 3

The supervisor restarts the worker every time it exits; press Ctrl+C to stop both.
"""
import sys
import time
import logging
import argparse

import selfwatch
from selfwatch.log import setup_logging

log = logging.getLogger("selfwatch.demo")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="selfwatch demo program")
    parser.add_argument("-M", "--message", default="Worker is alive.", help="line printed by the worker every second")
    parser.add_argument("--lifetime", type=float, default=0, help="worker exits after this many seconds (0 = never)")
    parser.add_argument("--interval", type=float, default=None, help="supervisor check interval in seconds")
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def run_worker(args: argparse.Namespace) -> None:
    started = time.monotonic()
    try:
        while not args.lifetime or time.monotonic() - started < args.lifetime:
            log.info(args.message)
            time.sleep(1)
    except KeyboardInterrupt:
        log.info("Worker interrupted. Exiting.")


def main() -> None:
    """The main entry point for the demo program."""
    parser = build_parser()
    known, _ = parser.parse_known_args()
    setup_logging(logging.DEBUG if known.verbose else logging.INFO)

    overrides = {"header": "--- selfwatch demo ---", "footer": "See you next time!"}
    if known.interval:
        overrides["check_interval"] = known.interval

    try:
        routed = selfwatch.parse(parser, config=selfwatch.load_config(**overrides))
    except selfwatch.SelfwatchError as e:
        log.critical(f"Supervisor failed: {e}")
        sys.exit(1)

    if routed.is_worker:
        run_worker(routed.namespace)


if __name__ == "__main__":
    main()
