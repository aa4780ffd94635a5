"""
Wallpaper Harvester — CLI Entry Point

Usage:
    python -m wallpaper_harvester harvest [--config appsettings.yaml] [--sequential]
    python -m wallpaper_harvester check-config [--json]
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import click

from . import __version__
from .cli.config import check_config
from .cli.harvest import harvest
from .logging_config import setup_logging

# Initialize logging
setup_logging()


@click.group()
@click.version_option(__version__, prog_name="wallpaper-harvester")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Wallpaper Harvester — Clone and update wallpaper repositories."""
    ctx.ensure_object(dict)


cli.add_command(harvest)
cli.add_command(check_config)


if __name__ == "__main__":
    cli()
