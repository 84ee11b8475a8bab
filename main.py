"""Development entrypoint for the Polity governance API."""

from __future__ import annotations

import argparse
import asyncio
import logging

import uvicorn

from polity.api.runtime import ApiState
from polity.config import get_settings
from polity.database import get_table_names

logger = logging.getLogger("polity")


def _serve(args: argparse.Namespace) -> None:
    uvicorn.run(
        "polity.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level.lower(),
    )


def _init_db(_: argparse.Namespace) -> None:
    state = ApiState()
    try:
        logger.info("Schema ready: %s", ", ".join(get_table_names(state.engine)))
    finally:
        state.engine.dispose()


def _sweep(_: argparse.Namespace) -> None:
    async def run() -> None:
        state = ApiState()
        try:
            report = await state.sweeps.sweep_now()
        finally:
            await state.shutdown()
        logger.info(
            "Sweep resolved %d proposal(s) and %d rebellion(s)",
            report.proposals,
            report.rebellions,
        )

    asyncio.run(run())


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Polity governance API server")
    parser.add_argument(
        "--log-level",
        default=get_settings().log_level,
        help="Logging level for the CLI and the server",
    )
    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser("serve", help="Serve the HTTP API (default)")
    serve.add_argument("--host", default="127.0.0.1", help="Host interface to bind")
    serve.add_argument("--port", type=int, default=8000, help="TCP port to listen on")
    serve.add_argument("--reload", action="store_true", help="Enable autoreload (dev mode)")
    serve.set_defaults(handler=_serve)

    commands.add_parser("init-db", help="Create tables without running migrations").set_defaults(
        handler=_init_db
    )
    commands.add_parser("sweep", help="Resolve overdue proposals and uprisings once").set_defaults(
        handler=_sweep
    )

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper())
    if args.command is None:
        args = parser.parse_args(["--log-level", args.log_level, "serve"])
    args.handler(args)


if __name__ == "__main__":
    main()
