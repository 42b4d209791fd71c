"""Command line entry point for the twemproxy exporter."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Optional, Sequence

import uvicorn

from .config import Settings, parse_interval
from .errors import ConfigError, SinkRegistrationError
from .main import build_app

logger = logging.getLogger("twemproxy_exporter")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="twemproxy-exporter",
        description="Export twemproxy stats as Prometheus metrics",
    )
    parser.add_argument("--config", help="Path to the nutcracker YAML config")
    parser.add_argument("--twemphost", help="twemproxy stats address (host:port)")
    parser.add_argument("--interval", help="Poll interval, e.g. 3s, 500ms or 10")
    parser.add_argument("--port", type=int, help="Port to serve metrics on")
    parser.add_argument("--path", help="HTTP path of the metrics endpoint")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with command line flags on top."""
    overrides: dict[str, Any] = {}
    if args.config:
        overrides["config_path"] = args.config
    if args.twemphost:
        overrides["twemproxy_host"] = args.twemphost
    if args.interval:
        overrides["interval"] = parse_interval(args.interval)
    if args.port:
        overrides["metrics_port"] = args.port
    if args.path:
        overrides["metrics_path"] = args.path
    if args.log_level:
        overrides["log_level"] = args.log_level
    return Settings(**overrides)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings(args)
    except (ConfigError, ValueError) as e:
        print(f"Cannot start twemproxy exporter: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        app = build_app(settings)
    except (ConfigError, SinkRegistrationError) as e:
        logger.error("Cannot start twemproxy exporter: %s", e)
        return 1

    logger.info(
        "Serving %s on %s:%d, polling %s",
        settings.metrics_path,
        settings.listen_host,
        settings.metrics_port,
        settings.twemproxy_host,
    )
    uvicorn.run(
        app,
        host=settings.listen_host,
        port=settings.metrics_port,
        log_level=settings.log_level.lower(),
    )
    logger.info("Twemproxy exporter exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())
