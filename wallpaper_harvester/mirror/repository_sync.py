"""
Repository Sync — Bring one local mirror up to date.

Clones the repository if <directory>/<name> is absent, otherwise fetches
origin and hard-resets to the remote branch. Either way the git call goes
through the retry policy, and the result comes back as a SyncOutcome.
Cancellation is not a failure: OperationCancelled propagates to the caller.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from ..observability.events import (
    REPOSITORY_CLONE_FAILED,
    REPOSITORY_CLONED,
    REPOSITORY_PROGRESS,
    REPOSITORY_UPDATE_FAILED,
    REPOSITORY_UPDATED,
    emit,
)
from ..reliability.retry import (
    OperationCancelled,
    RetryContext,
    RetryPolicy,
    raise_if_cancelled,
    summarize_error,
)
from .git_sync import ProgressCallback, TransferProgress, VersionControl
from .models import DEFAULT_GIT_HOST, RepositorySpec, SyncAction, SyncOutcome

logger = logging.getLogger(__name__)


def _progress_logger(repo: RepositorySpec, action: SyncAction) -> ProgressCallback:
    """Debug-level progress reporter for verbose runs."""
    label = "Clone transfer" if action == SyncAction.CLONE else "Fetch progress"
    text_label = "Clone" if action == SyncAction.CLONE else "Fetch"

    def report(progress: TransferProgress) -> None:
        if progress.has_counts:
            emit(
                logger,
                logging.DEBUG,
                REPOSITORY_PROGRESS,
                f"[{repo.full_name}] {label}: {progress.percent}% "
                f"({progress.received}/{progress.total})",
                repo=repo.full_name,
                percent=progress.percent,
                received=progress.received,
                total=progress.total,
            )
        else:
            emit(
                logger,
                logging.DEBUG,
                REPOSITORY_PROGRESS,
                f"[{repo.full_name}] {text_label}: {progress.message}",
                repo=repo.full_name,
            )

    return report


def sync_repository(
    repo: RepositorySpec,
    directory: Path,
    git: VersionControl,
    policy: Optional[RetryPolicy] = None,
    cancel: Optional[threading.Event] = None,
    verbose: bool = False,
    host: str = DEFAULT_GIT_HOST,
) -> SyncOutcome:
    """
    Clone or update the mirror of repo under directory.

    Returns:
        SyncOutcome with success=False and the last error when the retry
        policy gives up

    Raises:
        OperationCancelled: If cancel is set before or during the sync
    """
    raise_if_cancelled(cancel, repo.full_name)

    policy = policy or RetryPolicy()
    path = repo.mirror_path(directory)
    action = SyncAction.UPDATE if git.exists(path) else SyncAction.CLONE
    on_progress = _progress_logger(repo, action) if verbose else None
    context = RetryContext(label=repo.full_name)

    if action == SyncAction.UPDATE:
        def operation() -> None:
            git.fetch_and_hard_reset(path, on_progress=on_progress, cancel=cancel)
    else:
        url = repo.remote_url(host)

        def operation() -> None:
            git.clone(url, path, on_progress=on_progress, cancel=cancel)

    try:
        policy.run(operation, cancel=cancel, label=repo.full_name, context=context)
    except OperationCancelled:
        raise
    except Exception as e:
        if action == SyncAction.UPDATE:
            event, verb = REPOSITORY_UPDATE_FAILED, "update"
        else:
            event, verb = REPOSITORY_CLONE_FAILED, "clone"
        emit(
            logger,
            logging.ERROR,
            event,
            f"Failed to {verb} {repo.full_name}",
            exc_info=e if verbose else None,
            repo=repo.full_name,
            attempt=context.attempt,
            error=summarize_error(e),
        )
        return SyncOutcome.failed(repo, action, e, attempts=context.attempt)

    if action == SyncAction.UPDATE:
        emit(logger, logging.INFO, REPOSITORY_UPDATED, f"Updated {repo.full_name}",
             repo=repo.full_name, attempt=context.attempt)
    else:
        emit(logger, logging.INFO, REPOSITORY_CLONED, f"Cloned {repo.full_name}",
             repo=repo.full_name, attempt=context.attempt)

    return SyncOutcome.succeeded(repo, action, attempts=context.attempt)
