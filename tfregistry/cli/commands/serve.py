"""``tfregistry serve``: run the registry HTTP server under uvicorn."""

from __future__ import annotations

import typer
import uvicorn
from rich.console import Console

from tfregistry.api.app import create_app
from tfregistry.config import config
from tfregistry.storage.guard import StorageConfigError

console = Console()


def serve_cmd(
    host: str = typer.Option(None, "--host", help="Bind address (defaults to TFREGISTRY_HOST)."),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (defaults to PORT)."),
) -> None:
    """Serve the module and provider registry protocols.

    The storage configuration is validated before the server binds; an
    unusable configuration exits with status 1.
    """
    try:
        application = create_app(config)
    except StorageConfigError as exc:
        console.print(f"[red]Storage configuration error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    uvicorn.run(
        application,
        host=host or config.host,
        port=port or config.port,
        log_level=config.log_level.lower(),
        log_config=None,
    )
