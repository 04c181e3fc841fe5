"""Command-line interface for the marketplace admin portal."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from portal.config import PortalSettings, load_settings
from portal.database import Database
from portal.errors import WorkflowFailed
from portal.store import DocumentStore
from portal.workflow import SellerApplicationWorkflow

logger = logging.getLogger("marketplace.portal.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Marketplace admin portal utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (defaults to PORTAL_CONFIG when set)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the portal database")
    subparsers.add_parser(
        "reconcile-sellers",
        help="Grant the seller role to owners of approved applications who lack it",
    )

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP portal")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the portal")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port for the portal (default: 8000)")
    serve_parser.add_argument(
        "--ssl-certfile",
        default=None,
        help="Path to the TLS certificate chain in PEM format",
    )
    serve_parser.add_argument(
        "--ssl-keyfile",
        default=None,
        help="Path to the TLS private key in PEM format",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "reconcile-sellers"}

    global_args: list[str] = []
    if args_list[:1] == ["--config"] and len(args_list) >= 2:
        global_args, args_list = args_list[:2], args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(global_args + args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(global_args + args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(global_args + args_list)


def _initialise_database(settings: PortalSettings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(
    *,
    settings: PortalSettings,
    database: Database,
    host: str,
    port: int,
    ssl_certfile: str | None,
    ssl_keyfile: str | None,
) -> None:
    from portal.application import create_application
    import uvicorn

    if bool(ssl_certfile) ^ bool(ssl_keyfile):
        raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

    protocol = "https" if ssl_certfile and ssl_keyfile else "http"
    logger.info("Starting admin portal on %s://%s:%s", protocol, host, port)

    try:
        app = create_application(settings=settings, database=database)
    except RuntimeError as exc:
        raise SystemExit(str(exc)) from exc

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
    )


def _reconcile_sellers(database: Database) -> int:
    workflow = SellerApplicationWorkflow(DocumentStore(database))
    try:
        repaired = workflow.reconcile()
    except WorkflowFailed as exc:
        print(f"Reconciliation failed: {exc.message}", file=sys.stderr)
        return 1

    if not repaired:
        print("All approved sellers already hold the seller role.")
    else:
        print(f"Granted the seller role to {len(repaired)} user(s):")
        for uid in repaired:
            print(f"  {uid}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    args = _parse_args(argv)
    settings = load_settings(Path(args.config) if args.config else None)
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(
            settings=settings,
            database=database,
            host=args.host,
            port=args.port,
            ssl_certfile=args.ssl_certfile,
            ssl_keyfile=args.ssl_keyfile,
        )
    elif args.command == "reconcile-sellers":
        return _reconcile_sellers(database)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
