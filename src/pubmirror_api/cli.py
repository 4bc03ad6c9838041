# SPDX-License-Identifier: MIT
"""CLI entry point for the pubmirror command."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click

from .config import APIConfig
from .logs import setup_logging


class Context:
    """CLI context object passed to commands."""

    def __init__(self) -> None:
        self.verbose: bool = False

    def load_config(self) -> APIConfig:
        return APIConfig.from_env()


pass_context = click.make_pass_decorator(Context, ensure=True)


def echo_error(message: str) -> None:
    """Print an error message to stderr."""
    click.secho(f"Error: {message}", fg="red", err=True)


def echo_success(message: str) -> None:
    """Print a success message."""
    click.secho(message, fg="green")


@click.group()
@click.version_option(package_name="pubmirror")
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable debug logging.",
)
@pass_context
def cli(ctx: Context, verbose: bool) -> None:
    """Private pub registry mirroring an upstream registry.

    Settings are read from PUBMIRROR_* environment variables; command
    options override them.

    \b
    Examples:
        pubmirror serve --port 4000
        pubmirror serve --database relational --database-url sqlite:///pub.db
        pubmirror prefetch http 1.2.0
    """
    ctx.verbose = verbose


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True, help="Interface to bind.")
@click.option("--port", default=4000, show_default=True, type=int, help="Port to bind.")
@click.option("--upstream-url", help="Upstream registry base URL.")
@click.option(
    "--storage-path",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for cached and published archives.",
)
@click.option(
    "--database",
    type=click.Choice(["document", "relational"]),
    help="Metadata store backend.",
)
@click.option(
    "--database-url", help="SQLAlchemy URL (relational) or MongoDB URL (document)."
)
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Persist cached API responses here instead of in memory.",
)
@click.option("--proxy-origin", help="Public origin used in archive URLs.")
@pass_context
def serve(
    ctx: Context,
    host: str,
    port: int,
    upstream_url: Optional[str],
    storage_path: Optional[Path],
    database: Optional[str],
    database_url: Optional[str],
    cache_dir: Optional[Path],
    proxy_origin: Optional[str],
) -> None:
    """Run the mirror server."""
    import uvicorn

    from .app import create_app

    config = ctx.load_config()
    if upstream_url:
        config.upstream.url = upstream_url
    if storage_path:
        config.storage.local_path = str(storage_path)
    if database:
        config.database.backend = database
    if database_url:
        config.database.url = database_url
    if cache_dir:
        config.cache.directory = str(cache_dir)
    if proxy_origin:
        config.proxy_origin = proxy_origin

    setup_logging("DEBUG" if ctx.verbose or config.debug else "INFO", config.json_logs)
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)


async def _prefetch(config: APIConfig, name: str, version: str) -> bool:
    from .package_store import FileStore

    store = FileStore(
        Path(config.storage.local_path),
        upstream=config.upstream.url,
        timeout=config.upstream.timeout,
    )
    try:
        return await store.download_and_cache(name, version)
    finally:
        await store.aclose()


@cli.command()
@click.argument("name")
@click.argument("version")
@pass_context
def prefetch(ctx: Context, name: str, version: str) -> None:
    """Fetch an archive from upstream into the local cache."""
    config = ctx.load_config()
    setup_logging("DEBUG" if ctx.verbose else "WARNING", config.json_logs)

    if not asyncio.run(_prefetch(config, name, version)):
        echo_error(f"Could not fetch {name} {version} from {config.upstream.url}")
        sys.exit(1)
    echo_success(f"Cached {name} {version}")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
