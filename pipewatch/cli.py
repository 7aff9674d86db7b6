"""Pipewatch CLI: load the configuration and start the dashboard."""

import argparse
import functools
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import ConfigError, ConfigStoreError, get_state_dir, load_config, resolve_config_path
from .logs import configure_logging

LOG_FILENAME = "pipewatch.log"

EXIT_CONFIG = 1
EXIT_STORE = 2

logger = logging.getLogger("pipewatch")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipewatch",
        description="A terminal dashboard for GitLab CI/CD pipelines",
    )
    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config", "-c",
        metavar="FILE",
        help="Alternate path to the configuration file",
    )
    parser.add_argument(
        "--print-config-path", "-p",
        action="store_true",
        help="Print the path to the configuration file and exit",
    )
    return parser


def log_path() -> Path:
    return get_state_dir() / LOG_FILENAME


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    config_path = resolve_config_path(args.config)

    if args.print_config_path:
        print(config_path)
        sys.exit(0)

    try:
        config = load_config(config_path)
    except ConfigStoreError as e:
        print(f"pipewatch: {e}", file=sys.stderr)
        sys.exit(EXIT_STORE)
    except ConfigError as e:
        print(f"pipewatch: {e}", file=sys.stderr)
        print(f"Edit {config_path} or set PIPEWATCH_SERVER_URL and PIPEWATCH_TOKEN.", file=sys.stderr)
        sys.exit(EXIT_CONFIG)

    try:
        configure_logging(log_path(), config.log_level)
    except OSError as e:
        print(f"pipewatch: cannot open log file {log_path()}: {e}", file=sys.stderr)
        sys.exit(EXIT_STORE)

    logger.info("pipewatch %s starting, config %s", __version__, config_path)

    # Imported late so that --help and config errors never pay for Textual
    from .dashboard import PipewatchApp

    try:
        app = PipewatchApp(config, config_loader=functools.partial(load_config, config_path))
        app.run()
    except Exception:
        logger.exception("Dashboard crashed")
        raise


if __name__ == "__main__":
    main()
