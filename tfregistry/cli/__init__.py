"""tfregistry CLI: Typer-based command-line interface.

Provides the ``tfregistry`` command with subcommands for running the
registry server, materializing a single module version by hand and
checking the deployment's configuration.

All output uses Rich for formatted terminal display.
"""
