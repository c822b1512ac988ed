"""CLI entrypoint for the restategen watcher."""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path

from .config import ConfigError, load_config
from .extraction import ExtractionError
from .logging import configure_logging, get_logger
from .orchestrator import Orchestrator
from .watcher import WatcherError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restategen",
        description=(
            "Watch an Encore project and keep generated Restate adapters and "
            "the central ~restate index in sync with its handlers."
        ),
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the project root (defaults to current directory).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint: run until interrupted."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    root = Path(args.path).expanduser().resolve()
    if not root.is_dir():
        parser.exit(1, f"Project root not found: {root}\n")

    try:
        config = load_config(root)
    except ConfigError as exc:
        parser.exit(1, f"restategen: {exc}\n")

    configure_logging(verbose=config.verbose, log_file=config.log_file)
    logger = get_logger("cli")

    orchestrator = Orchestrator(config)
    signal.signal(signal.SIGTERM, lambda signum, frame: orchestrator.stop())

    try:
        orchestrator.run()
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    except (ExtractionError, WatcherError) as exc:
        logger.error("%s", exc)
        parser.exit(1, f"restategen: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
