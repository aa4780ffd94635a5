"""
CLI config commands — check a harvest configuration without syncing.

Usage:
    wallpaper-harvester check-config [--config FILE] [--json]
"""

from __future__ import annotations

import json

import click

from ..config.loader import DEFAULT_CONFIG_FILE, load_settings
from ..config.validator import ConfigValidator
from ..validation import ConfigurationError
from .harvest import EXIT_CONFIG_ERROR


@click.command("check-config")
@click.option("--config", "-c", "config_file", default=DEFAULT_CONFIG_FILE, show_default=True,
              help="Path to config file")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check_config(ctx: click.Context, config_file: str, as_json: bool) -> None:
    """Check the repository list and mirror directory."""
    try:
        settings = load_settings(config_file)
    except ConfigurationError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "errors": [str(e)]}, indent=2))
        else:
            click.secho(f"✗ {e}", fg="red", err=True)
        raise SystemExit(EXIT_CONFIG_ERROR)

    report = ConfigValidator(settings).log_status()

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        if not report.valid:
            raise SystemExit(EXIT_CONFIG_ERROR)
        return

    click.echo("\n📋 Harvest Configuration\n")
    click.echo(f"  Config:       {config_file}")
    click.echo(f"  Directory:    {report.directory}")
    click.echo(f"  Repositories: {report.repositories}")
    click.echo(f"  Mode:         {settings.mode.value} (max {settings.max_workers} workers)")
    click.echo()

    for warning in report.warnings:
        click.secho(f"  ⚠ {warning}", fg="yellow")
    for error in report.errors:
        click.secho(f"  ✗ {error}", fg="red")

    if report.valid:
        click.secho("✓ Configuration OK", fg="green", bold=True)
        return

    click.echo()
    click.secho(f"Configuration has {len(report.errors)} error(s)", fg="red", bold=True)
    raise SystemExit(EXIT_CONFIG_ERROR)
