"""
Repository Set — Turn configured entries into the repositories to sync.

Malformed entries and entries whose mirror path collides with an earlier
entry are dropped with a warning. Dropped entries never count toward
the harvest totals.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from ..observability.events import (
    REPOSITORY_DUPLICATE,
    REPOSITORY_INVALID,
    emit,
)
from .models import RepositorySpec

logger = logging.getLogger(__name__)


def filter_valid_repositories(entries: Iterable[str]) -> List[RepositorySpec]:
    """
    Keep the entries that parse as owner/name, in configured order.

    Mirror paths are keyed by repository name, so a second entry with the
    same name (ignoring case) as an earlier one is rejected too.
    """
    valid: List[RepositorySpec] = []
    claimed: Dict[str, RepositorySpec] = {}

    for raw in entries:
        spec = RepositorySpec.parse(raw)
        if spec is None:
            emit(
                logger,
                logging.WARNING,
                REPOSITORY_INVALID,
                f"Invalid repository format: {raw}",
                repo=raw,
            )
            continue

        key = spec.name.lower()
        if key in claimed:
            emit(
                logger,
                logging.WARNING,
                REPOSITORY_DUPLICATE,
                f"Duplicate mirror name: {spec.full_name} collides with "
                f"{claimed[key].full_name}, skipping",
                repo=spec.full_name,
            )
            continue

        claimed[key] = spec
        valid.append(spec)

    return valid
