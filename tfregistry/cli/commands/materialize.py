"""``tfregistry materialize``: build and upload one module archive by hand.

Useful to pre-warm the store or to debug a module whose first download
fails. The source location is given on the command line instead of being
looked up in the metadata service.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from tfregistry.config import config
from tfregistry.core.cache import MaterializationCache, MaterializationError
from tfregistry.core.context import CancelScope
from tfregistry.models.coordinates import (
    ModuleCoordinate,
    NoCredential,
    SourceDescriptor,
    SshKeyCredential,
    TokenCredential,
    VcsCredential,
)
from tfregistry.storage.factory import build_object_store
from tfregistry.storage.guard import StorageConfigError

console = Console()


def _credential(
    token: str | None,
    vcs_type: str,
    ssh_key_file: Path | None,
    ssh_key_type: str,
) -> VcsCredential:
    if token and ssh_key_file:
        raise typer.BadParameter("--token and --ssh-key-file are mutually exclusive")
    if token:
        return TokenCredential(vcs_type=vcs_type, token=token)
    if ssh_key_file:
        return SshKeyCredential(key_type=ssh_key_type, private_key=ssh_key_file.read_text())
    return NoCredential()


def materialize_cmd(
    organization: str = typer.Argument(..., help="Organization name."),
    name: str = typer.Argument(..., help="Module name."),
    provider: str = typer.Argument(..., help="Module provider."),
    version: str = typer.Argument(..., help="Module version."),
    source: str = typer.Option(..., "--source", "-s", help="Repository URL to clone."),
    folder: str = typer.Option("", "--folder", help="Module directory inside the repository."),
    tag_prefix: str = typer.Option("", "--tag-prefix", help="Prefix of the version tag."),
    token: str = typer.Option(
        None, "--token", envvar="TFREGISTRY_VCS_TOKEN", help="VCS access token (HTTPS)."
    ),
    vcs_type: str = typer.Option("GITHUB", "--vcs-type", help="VCS type of the token."),
    ssh_key_file: Path = typer.Option(
        None, "--ssh-key-file", exists=True, dir_okay=False, help="Private key for SSH clones."
    ),
    ssh_key_type: str = typer.Option("rsa", "--ssh-key-type", help="SSH key type."),
) -> None:
    """Materialize ORGANIZATION/NAME/PROVIDER/VERSION into the configured store.

    Prints the public download path. Exits with status 1 if the coordinate is
    invalid, the storage configuration is unusable, or any stage fails.
    """
    try:
        coordinate = ModuleCoordinate(
            organization=organization, name=name, provider=provider, version=version
        )
    except ValueError as exc:
        console.print(f"[red]Invalid coordinate:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    descriptor = SourceDescriptor(
        source_url=source,
        folder=folder,
        tag_prefix=tag_prefix,
        credential=_credential(token, vcs_type, ssh_key_file, ssh_key_type),
    )

    try:
        cache = MaterializationCache.from_config(config, build_object_store(config))
    except StorageConfigError as exc:
        console.print(f"[red]Storage configuration error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    try:
        path = cache.materialize(
            coordinate, descriptor, scope=CancelScope(config.materialize_timeout_seconds)
        )
    except MaterializationError as exc:
        console.print(
            Panel(
                f"[bold red]{coordinate}[/bold red] failed at stage "
                f"[bold]{exc.stage.value}[/bold]\n\n{exc.cause}",
                title="[bold]Materialization failed[/bold]",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc

    console.print()
    console.print(
        Panel(
            "\n".join([
                f"[bold green]{coordinate} is in the store.[/bold green]",
                f"Backend: [cyan]{cache.store.backend}[/cyan]",
                f"Download: [bold]{path}[/bold]",
            ]),
            title="[bold]Materialized[/bold]",
            border_style="green",
        )
    )
