"""
Harvest Events — Named log signals emitted during a run.

Every signal is an ordinary log record with an ``event`` attribute plus
any structured fields, so the JSON formatter can pick them up and tests
can assert on them through caplog.

## Usage

    from wallpaper_harvester.observability.events import emit, REPOSITORY_CLONED

    emit(logger, logging.INFO, REPOSITORY_CLONED, f"Cloned {repo}", repo=repo)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

REPOSITORY_INVALID = "repository.invalid"
REPOSITORY_DUPLICATE = "repository.duplicate"
REPOSITORY_CLONED = "repository.cloned"
REPOSITORY_UPDATED = "repository.updated"
REPOSITORY_CLONE_FAILED = "repository.clone_failed"
REPOSITORY_UPDATE_FAILED = "repository.update_failed"
REPOSITORY_RETRY = "repository.retry"
REPOSITORY_PROGRESS = "repository.progress"
HARVEST_EMPTY = "harvest.empty"
HARVEST_COMPLETED = "harvest.completed"
DIRECTORY_CREATED = "directory.created"

# Fields the JSON formatter copies from a record when present
EVENT_FIELDS = (
    "event",
    "repo",
    "attempt",
    "max_attempts",
    "delay",
    "error",
    "percent",
    "received",
    "total",
    "succeeded",
    "failed",
    "path",
)


def emit(
    logger: logging.Logger,
    level: int,
    event: str,
    message: str,
    exc_info: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Log message at level, tagged with event and structured fields."""
    extra = {"event": event}
    extra.update(fields)
    logger.log(level, message, exc_info=exc_info, extra=extra)
