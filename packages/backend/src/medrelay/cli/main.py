"""medrelay CLI — run the relay and manage its local resources.

Usage:
    medrelay serve                     # Run the relay (uvicorn)
    medrelay serve --port 9000 --reload
    medrelay token U1                  # Mint a development access token for uid U1
    medrelay init-db                   # Create the documents table (sql backend)
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import sys

import click

from medrelay import __version__
from medrelay.config import settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop: normal CLI invocation
        return asyncio.run(coro)
    else:
        # Already inside an event loop (e.g. test runner), run in a thread
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(__version__, prog_name="medrelay")
def cli():
    """medrelay — real-time relay for telemedicine clients."""


@cli.command()
@click.option("--host", default=None, help="Bind address (default: MEDRELAY_HOST).")
@click.option("--port", default=None, type=int, help="Port (default: MEDRELAY_PORT).")
@click.option("--reload", is_flag=True, help="Reload on code changes (development).")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the relay server."""
    import uvicorn

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    uvicorn.run(
        "medrelay.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@cli.command()
@click.argument("uid")
@click.option("--minutes", default=None, type=int, help="Token lifetime in minutes.")
def token(uid: str, minutes: int | None):
    """Mint an access token for UID (development only)."""
    from medrelay.auth.jwt import create_access_token

    if settings.environment != "development":
        click.secho("Error: tokens can only be minted in development", fg="red", err=True)
        sys.exit(1)
    click.echo(create_access_token(uid, expires_minutes=minutes))


@cli.command("init-db")
def init_db():
    """Create the documents table for the sql store backend."""
    from medrelay.db.engine import create_tables, dispose_engine

    async def _init():
        try:
            await create_tables()
        finally:
            await dispose_engine()

    _run(_init())
    click.secho("documents table ready", fg="green")


def main():
    cli()


if __name__ == "__main__":
    main()
