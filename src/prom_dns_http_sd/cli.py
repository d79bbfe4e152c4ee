#!/usr/bin/env python3
"""prom-dns-http-sd - Prometheus HTTP service discovery from DNS zones

Periodically lists zones and records from a DNS provider, filters them with
the rules from a config file and serves the result as Prometheus HTTP_SD
documents, one per rule path.

Supported DNS Providers:
    - yandex-cloud/yandex: Yandex Cloud DNS
    (more coming soon)

Options (flag, then environment variable):

    --config-path                CONFIG_PATH
        Application config file path (required).

    --yc-auth-json-file-path     YC_AUTH_JSON_FILE_PATH
        Yandex Cloud service-account authorized key (iam.json). When unset,
        the compute instance service account is used.

    --data-update-interval       DATA_UPDATE_INTERVAL
        Interval between targets updates, e.g. "90s", "5m", "1h30m"
        (default: 1h).

    --listen-address             LISTEN_ADDRESS
        HTTP listen address (default: :8080).

    --log-level                  LOG_LEVEL
        DEBUG, INFO, WARNING, ERROR (default: INFO).

    --recompute-on-change        RECOMPUTE_ON_CHANGE
        Also recompute targets right after the config file changes, instead
        of waiting for the next interval (default: false).

Endpoints:
    GET /healthz      200 with empty body
    GET <rule path>   JSON array of {"targets": [...], "labels": {...}}
                      404 for unknown paths
"""

from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from dataclasses import dataclass
from typing import Any, List, Optional

from . import __version__
from .engine import RefreshEngine
from .providers import supported_providers
from .server import build_server
from .store import DocumentStore
from .triggers import ConfigFileTrigger, IntervalTrigger

logger = logging.getLogger(__name__)

DEFAULT_DATA_UPDATE_INTERVAL = "1h"
DEFAULT_LISTEN_ADDRESS = ":8080"

_DURATION_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


# =============================================================================
# Utility Functions
# =============================================================================


def parse_duration(value: str) -> float:
    """Parse a duration like "1h", "5m", "1h30m" or "90s" into seconds."""
    text = (value or "").strip()
    if not text:
        raise ValueError("empty duration")

    total = 0.0
    pos = 0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos != len(text):
        raise ValueError(f"invalid duration '{value}'")
    if total <= 0:
        raise ValueError(f"duration must be positive, got '{value}'")
    return total


def _parse_bool(value: Any, *, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


# =============================================================================
# Settings
# =============================================================================


@dataclass(frozen=True)
class Settings:
    """Process settings resolved from flags and the environment."""

    config_path: str
    credentials_path: str
    interval_seconds: float
    listen_address: str
    log_level: str
    recompute_on_change: bool


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prom-dns-http-sd",
        description="Prometheus HTTP service discovery from DNS provider zones.",
    )
    parser.add_argument(
        "--config-path",
        default=os.getenv("CONFIG_PATH", ""),
        help="Application config file path.",
    )
    parser.add_argument(
        "--yc-auth-json-file-path",
        default=os.getenv("YC_AUTH_JSON_FILE_PATH", ""),
        help="Yandex Cloud iam.json file path.",
    )
    parser.add_argument(
        "--data-update-interval",
        default=os.getenv("DATA_UPDATE_INTERVAL", DEFAULT_DATA_UPDATE_INTERVAL),
        help="Interval between targets data updating (default: %(default)s).",
    )
    parser.add_argument(
        "--listen-address",
        default=os.getenv("LISTEN_ADDRESS", DEFAULT_LISTEN_ADDRESS),
        help="HTTP listen address (default: %(default)s).",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Log level (default: %(default)s).",
    )
    parser.add_argument(
        "--recompute-on-change",
        action="store_true",
        default=_parse_bool(os.getenv("RECOMPUTE_ON_CHANGE")),
        help="Recompute targets immediately after the config file changes.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_settings(argv: Optional[List[str]] = None) -> Settings:
    """Parse settings; invalid values exit the process through argparse."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.config_path:
        parser.error("--config-path (or CONFIG_PATH) is required")
    try:
        interval = parse_duration(args.data_update_interval)
    except ValueError as e:
        parser.error(f"incorrect duration format: {e}")

    return Settings(
        config_path=args.config_path,
        credentials_path=args.yc_auth_json_file_path,
        interval_seconds=interval,
        listen_address=args.listen_address,
        log_level=args.log_level,
        recompute_on_change=args.recompute_on_change,
    )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# =============================================================================
# Main
# =============================================================================


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    settings = load_settings(argv)
    configure_logging(settings.log_level)

    logger.info(f"prom-dns-http-sd {__version__}")
    logger.info(f"Supported providers: {', '.join(supported_providers())}")
    logger.info(f"Config file: {settings.config_path}")
    logger.info(f"Update interval: {settings.interval_seconds:g}s")

    store = DocumentStore()
    engine = RefreshEngine(
        store=store,
        config_path=settings.config_path,
        credentials_path=settings.credentials_path,
    )

    try:
        server = build_server(store, settings.listen_address)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot listen on {settings.listen_address}: {e}")
        sys.exit(1)

    interval_trigger = IntervalTrigger(engine, settings.interval_seconds)
    file_trigger = ConfigFileTrigger(engine, recompute_on_change=settings.recompute_on_change)

    interval_trigger.start()
    file_trigger.start()

    logger.info(f"Listening on {settings.listen_address}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    finally:
        server.server_close()
        file_trigger.stop()
        interval_trigger.stop(timeout=1)

        snapshot = store.snapshot()
        if snapshot.client is not None:
            snapshot.client.close()


if __name__ == "__main__":
    main()
