"""``tfregistry status``: check that this deployment can materialize modules.

Reports on the ``git`` binary, the storage backend settings and the
metadata service configuration. Nothing is contacted over the network.
"""

from __future__ import annotations

import shutil
import subprocess

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tfregistry.config import RegistryConfig, config
from tfregistry.storage.guard import StorageConfigError, enforce_storage_constraints

console = Console()


def _check_git(settings: RegistryConfig) -> tuple[bool, str]:
    """Check if the configured ``git`` binary is available on PATH."""
    git_path = shutil.which(settings.git_binary)
    if not git_path:
        return False, f"{settings.git_binary!r} not found on PATH"
    try:
        result = subprocess.run(
            [git_path, "--version"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        version = result.stdout.strip() or "unknown"
        return True, f"{git_path} ({version})"
    except (subprocess.SubprocessError, OSError):
        return True, f"{git_path} (version check failed)"


def _check_storage(settings: RegistryConfig) -> tuple[bool, str]:
    try:
        backend = enforce_storage_constraints(settings)
    except StorageConfigError as exc:
        return False, str(exc)
    if backend == "AWS":
        where = f"s3://{settings.aws_bucket_name} ({settings.aws_region})"
        if settings.aws_endpoint:
            where += f" via {settings.aws_endpoint}"
    elif backend == "AZURE":
        where = f"{settings.azure_account_name}/{settings.azure_container_name}"
    elif backend == "GCP":
        where = f"gs://{settings.gcp_bucket_name}"
    else:
        where = str(settings.local_storage_path)
    return True, f"{backend}: {where}"


def _check_metadata(settings: RegistryConfig) -> tuple[bool, str]:
    if not settings.api_url.strip():
        return False, "metadata API URL is not set"
    auth = "bearer token" if settings.api_token else "no token"
    return True, f"{settings.api_url.rstrip('/')}{settings.graphql_path} ({auth})"


def status_cmd() -> None:
    """Check git, storage and metadata configuration.

    Exits with status 1 when any check fails.
    """
    checks: list[tuple[str, bool, str]] = [
        ("git", *_check_git(config)),
        ("Storage", *_check_storage(config)),
        ("Metadata API", *_check_metadata(config)),
        ("Public hostname", True, config.hostname),
    ]

    table = Table(
        show_header=True,
        header_style="bold cyan",
        expand=True,
    )
    table.add_column("Component", min_width=16)
    table.add_column("Status", width=10, justify="center")
    table.add_column("Details")

    all_ok = True
    for name, ok, detail in checks:
        status = "[green]OK[/green]" if ok else "[red]FAIL[/red]"
        if not ok:
            all_ok = False
        table.add_row(name, status, detail)

    if all_ok:
        overall = "[bold green]Ready to materialize modules.[/bold green]"
        border_style = "green"
    else:
        overall = "[bold red]Some checks failed.[/bold red]"
        border_style = "red"

    console.print()
    console.print(
        Panel(
            table,
            title="[bold]tfregistry Status[/bold]",
            subtitle=overall,
            border_style=border_style,
            padding=(1, 2),
        )
    )
    console.print()

    if not all_ok:
        raise typer.Exit(code=1)
