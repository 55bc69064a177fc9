"""Command line health check for a configured database."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import AppConfig, ConfigError, load_config
from .database import REQUIRED_SCHEMA_VERSION, IngestDatabase
from .drivers import ConnectionBackendError, UnknownBackendError
from .supervisor import SchemaVersionError
from .tls import TLSConfigError


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ingestdb",
        description="Connect to the configured database and report its schema version.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.toml")
    parser.add_argument("--backend", default=None, help="Driver name to use (default from config)")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Total connect budget in seconds; <= 0 retries forever",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    if args.backend:
        config = config.model_copy(update={"backend": args.backend})
    if args.timeout is not None:
        config = config.with_retry(connect_timeout=args.timeout)
    return config


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        config = _apply_overrides(load_config(args.config), args)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    target = f"{config.database.host}:{config.database.port}/{config.database.database}"
    try:
        database = IngestDatabase.open(config.database, policy=config.retry, backend=config.backend)
    except (ConnectionBackendError, SchemaVersionError, TLSConfigError, UnknownBackendError) as exc:
        print(f"error: {target}: {exc}", file=sys.stderr)
        return 1

    with database:
        print(f"connected to {target} ({config.backend})")
        print(f"schema version: {database.version}")
        if database.supports(REQUIRED_SCHEMA_VERSION):
            print("file registration: available")
        else:
            print(f"file registration: unavailable (requires schema v{REQUIRED_SCHEMA_VERSION})")
    return 0


__all__ = ["main", "parse_args"]
