"""Command-line interface for the DzakCloud site backend."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from dzakcloud.config import Settings, load_settings
from dzakcloud.database import Database
from dzakcloud.migrate import import_legacy_data

logger = logging.getLogger("dzakcloud.main")

_DEFAULT_PORT = 3000


def _default_port() -> int:
    raw = os.getenv("PORT")
    if raw and raw.strip().isdigit():
        return int(raw.strip())
    return _DEFAULT_PORT


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (defaults to DZAKCLOUD_CONFIG or config/site.yaml)",
    )

    parser = argparse.ArgumentParser(description="DzakCloud site backend utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", parents=[common], help="Create the database tables")

    import_parser = subparsers.add_parser(
        "import-legacy",
        parents=[common],
        help="Import users.json, payments.json and contacts.json into the database",
    )
    import_parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding the legacy JSON files (defaults to the configured data directory)",
    )

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=_default_port(),
        help=f"Port for the HTTP API (default: PORT or {_DEFAULT_PORT})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "import-legacy"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings(config: str | None) -> Settings:
    config_path = Path(config).expanduser().resolve(strict=False) if config else None
    return load_settings(config_path)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path, pool_size=settings.pool_size)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from dzakcloud.service import create_app
    import uvicorn

    logger.info("Starting site API on http://%s:%s", host, port)
    app = create_app(settings, database=database)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _import_legacy(database: Database, data_dir: Path) -> int:
    if not data_dir.is_dir():
        print(f"Legacy data directory {data_dir} does not exist.")
        return 1

    report = import_legacy_data(database, data_dir)
    for result in (report.users, report.payments, report.contacts):
        if not result.found:
            print(f"{result.source}: not found, skipped")
            continue
        print(
            f"{result.source}: {result.inserted} imported, {result.skipped} already present,"
            f" {result.failed} rejected"
        )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    args = _parse_args(argv)
    settings = _load_settings(getattr(args, "config", None))
    database = _initialise_database(settings)

    try:
        if args.command == "serve":
            _serve(settings=settings, database=database, host=args.host, port=args.port)
        elif args.command == "import-legacy":
            data_dir = Path(args.data_dir).expanduser() if args.data_dir else settings.legacy_data_dir
            return _import_legacy(database, data_dir)
        elif args.command == "init-db":
            print("Database initialisation complete.")
    finally:
        database.close()
        logger.info("Database connections closed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
