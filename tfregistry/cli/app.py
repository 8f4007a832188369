"""Main Typer application: imports and registers all CLI commands.

Entry point: ``tfregistry`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from tfregistry.cli.commands.materialize import materialize_cmd
from tfregistry.cli.commands.serve import serve_cmd
from tfregistry.cli.commands.status import status_cmd
from tfregistry.config import config

app = typer.Typer(
    name="tfregistry",
    help="tfregistry: private Terraform module and provider registry.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def configure_logging(level: str) -> None:
    """Route all log records through one RichHandler on the root logger."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.addHandler(RichHandler(rich_tracebacks=True, show_path=False))
    root.setLevel(level.upper())


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to TFREGISTRY_LOG_LEVEL).",
    ),
) -> None:
    configure_logging(log_level or config.log_level)


# Register subcommands
app.command(name="serve", help="Run the registry HTTP server.")(serve_cmd)
app.command(name="materialize", help="Materialize one module version into the store.")(
    materialize_cmd
)
app.command(name="status", help="Check git, storage and metadata configuration.")(status_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
