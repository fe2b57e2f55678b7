"""
pluginctl — CLI entrypoint.

Usage:
    pluginctl --help
    pluginctl plugin search
    pluginctl plugin install cluster --target k8s
"""

from __future__ import annotations

import os
import sys

import click

from pluginctl import __version__
from pluginctl.core.observability.logging_config import (
    LOG_FILE_ENV,
    LOG_FILE_LEVEL_ENV,
    resolve_level,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="pluginctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--context",
    "context_name",
    default=None,
    help="Context whose plugins to manage (default: current context from config.yaml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    context_name: str | None,
) -> None:
    """pluginctl — discover, install and manage CLI plugins."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["context"] = context_name

    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(LOG_FILE_ENV),
        log_file_level=os.environ.get(LOG_FILE_LEVEL_ENV),
    )

    if not quiet:
        ctx.call_on_close(_check_recommended_version)


def _check_recommended_version() -> None:
    from pluginctl.core.services.version_check import check_recommended_version

    check_recommended_version(__version__, sys.stderr)


# ── Register sub-command groups from pluginctl/ui/cli/ ────────────

from pluginctl.ui.cli.plugin import plugin

cli.add_command(plugin)


if __name__ == "__main__":
    cli()
