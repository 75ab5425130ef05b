"""
main.py

Responsibility: Command-line entry point. Parses arguments, loads the config,
configures logging, then either runs the one-shot health check or serves the
application with uvicorn.
Does NOT: build services itself; app.py owns wiring.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn

from app import APP_VERSION, build_health_service, create_app, create_http_client
from config import AppConfig, load_config
from exceptions import ConfigurationError
from logger import setup_logging, uvicorn_level

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ipfailover",
        description="Keeps DNS records pointed at a reachable primary or secondary IP address.",
    )
    parser.add_argument("--config", metavar="PATH", help="path to the YAML configuration file")
    parser.add_argument(
        "--health-check",
        action="store_true",
        help="run one readiness check, print the report and exit 0 (healthy) or 1",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    return parser


async def run_health_check(config: AppConfig) -> bool:
    """Runs HealthService.check() once with a short-lived HTTP client."""
    async with create_http_client(config) as client:
        report = await build_health_service(config, client).check()

    for component, status in report.components.items():
        print(f"{component}: {status}")
    print(f"status: {report.status.value}")
    return report.healthy


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.config:
        print("error: --config is required", file=sys.stderr)
        return 2

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    setup_logging(config.log_level)

    if args.health_check:
        return 0 if asyncio.run(run_health_check(config)) else 1

    logger.info("Starting ipfailover %s on %s:%d.", APP_VERSION, config.listen_host, config.listen_port)
    uvicorn.run(
        create_app(config),
        host=config.listen_host,
        port=config.listen_port,
        log_level=uvicorn_level(config.log_level),
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
