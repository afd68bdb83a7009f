"""
main.py

Responsibility: Command-line entry point. Parses arguments, configures
logging, loads the configuration and serves the app with uvicorn.
Does NOT: contain reconciliation logic or define HTTP routes.
"""

from __future__ import annotations

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version

import uvicorn

from app import create_app
from config import DEFAULT_CONFIG_PATH, load_config
from exceptions import ConfigLoadError
from logger import LOG_LEVELS, configure_logging
from scheduler import DEFAULT_GRACE_PERIOD

logger = logging.getLogger(__name__)


def _version() -> str:
    try:
        return version("ddns-keeper")
    except PackageNotFoundError:
        return "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ddns-keeper",
        description="Keeps DNS records pointed at this host's current address.",
    )
    parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG_PATH, help="path to the YAML or JSON configuration file"
    )
    parser.add_argument(
        "-l", "--log-level", default="info", choices=sorted(LOG_LEVELS), help="log verbosity"
    )
    parser.add_argument("--host", default="0.0.0.0", help="health endpoint bind address")
    parser.add_argument("--port", type=int, default=8080, help="health endpoint port")
    parser.add_argument(
        "--grace-period",
        type=float,
        default=DEFAULT_GRACE_PERIOD,
        help="seconds in-flight updates may run after a shutdown signal",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_version()}")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        specs = load_config(args.config)
    except ConfigLoadError as exc:
        logger.error("Failed to load configuration: %s", exc)
        return 1

    app = create_app(specs, grace_period=args.grace_period)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None, log_level=args.log_level)
    return 0


if __name__ == "__main__":
    sys.exit(main())
