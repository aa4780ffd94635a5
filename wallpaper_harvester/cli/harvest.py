"""
CLI harvest command — clone and update all configured repositories.

Usage:
    wallpaper-harvester harvest [--config FILE] [--directory DIR]
                                [--parallel | --sequential] [--verbose] [--json]

Exit codes:
    0   every repository synced
    1   at least one repository failed
    2   configuration or mirror directory error
    130 cancelled (SIGINT/SIGTERM)
"""

from __future__ import annotations

import json
import logging
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import click

from ..config.loader import DEFAULT_CONFIG_FILE, load_settings
from ..logging_config import set_level
from ..mirror.models import HarvestResult
from ..mirror.orchestrator import Harvester
from ..reliability.retry import OperationCancelled
from ..validation import ConfigurationError, DirectoryAccessError, ValidationError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REPOSITORY_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_CANCELLED = 130


@contextmanager
def cancel_on_signals(cancel: threading.Event) -> Iterator[threading.Event]:
    """Set cancel on SIGINT/SIGTERM for the duration of the block."""

    def handler(signum, frame):
        logger.warning(f"Received {signal.Signals(signum).name}, cancelling harvest")
        cancel.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, handler)
        except ValueError:
            # Handlers can only be installed from the main thread
            logger.debug(f"Cannot install {sig.name} handler outside the main thread")

    try:
        yield cancel
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def _print_result(result: HarvestResult) -> None:
    click.echo()
    color = "green" if result.all_succeeded else "yellow"
    click.secho(
        f"📦 Harvest complete: {result.succeeded}/{result.total} succeeded, "
        f"{result.failed} failed",
        fg=color,
        bold=True,
    )
    for repo in result.failed_repos:
        click.secho(f"  ✗ {repo}", fg="red")


@click.command("harvest")
@click.option("--config", "-c", "config_file", default=DEFAULT_CONFIG_FILE, show_default=True,
              help="Path to config file")
@click.option("--directory", "-d", default=None, help="Mirror directory (overrides config)")
@click.option("--parallel", "-p", is_flag=True, help="Sync repositories concurrently")
@click.option("--sequential", "-s", is_flag=True, help="Sync repositories one at a time")
@click.option("--workers", type=click.IntRange(min=1), default=None,
              help="Maximum concurrent syncs")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging with transfer progress")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def harvest(
    ctx: click.Context,
    config_file: str,
    directory: Optional[str],
    parallel: bool,
    sequential: bool,
    workers: Optional[int],
    verbose: bool,
    as_json: bool,
) -> None:
    """Clone missing repositories and update existing mirrors."""
    if parallel and sequential:
        raise click.UsageError("--parallel and --sequential are mutually exclusive")

    overrides = {
        "directory": directory,
        "parallel": True if parallel else (False if sequential else None),
        "max_workers": workers,
        "verbose": True if verbose else None,
    }

    try:
        settings = load_settings(Path(config_file), overrides=overrides)
    except ConfigurationError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        raise SystemExit(EXIT_CONFIG_ERROR)

    if settings.verbose:
        set_level("DEBUG")

    harvester = Harvester(
        settings.to_run_configuration(),
        retry_policy=settings.build_retry_policy(),
    )

    cancel = threading.Event()
    with cancel_on_signals(cancel):
        try:
            result = harvester.harvest(settings.repository_list, cancel=cancel)
        except OperationCancelled:
            click.secho("⚠ Harvest cancelled", fg="yellow", err=True)
            raise SystemExit(EXIT_CANCELLED)
        except (ValidationError, DirectoryAccessError) as e:
            click.secho(f"✗ {e}", fg="red", err=True)
            raise SystemExit(EXIT_CONFIG_ERROR)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_result(result)

    if not result.all_succeeded:
        raise SystemExit(EXIT_REPOSITORY_FAILED)
