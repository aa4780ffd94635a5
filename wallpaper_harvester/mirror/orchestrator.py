"""
Harvester — Orchestrates a full mirror sync run.

This is the main entry point for a harvest. It validates the configured
repositories, ensures the mirror directory, runs one repository sync per
valid entry (on a bounded thread pool or one at a time), and folds every
outcome into a HarvestResult.

## Usage from other modules:

    from wallpaper_harvester.mirror.orchestrator import Harvester

    harvester = Harvester(RunConfiguration(directory=Path("~/Pictures/Wallpapers")))
    result = harvester.harvest(["owner/repo"], cancel=threading.Event())
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ..observability.events import HARVEST_COMPLETED, HARVEST_EMPTY, emit
from ..reliability.retry import OperationCancelled, RetryPolicy, raise_if_cancelled
from ..validation import ensure_directory_exists
from .git_sync import GitClient, VersionControl
from .models import HarvestResult, RepositorySpec, RunConfiguration, SyncOutcome
from .repository_set import filter_valid_repositories
from .repository_sync import sync_repository

logger = logging.getLogger(__name__)


class HarvestTally:
    """
    Success/failure counters shared by concurrent repository syncs.

    record() only touches in-memory counters under the lock, so the lock
    is never held across git I/O.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._succeeded = 0
        self._failed = 0
        self._failed_repos: List[str] = []

    def record(self, outcome: SyncOutcome) -> None:
        with self._lock:
            if outcome.success:
                self._succeeded += 1
            else:
                self._failed += 1
                self._failed_repos.append(outcome.repo.full_name)

    def result(self) -> HarvestResult:
        with self._lock:
            return HarvestResult(
                total=self._succeeded + self._failed,
                succeeded=self._succeeded,
                failed=self._failed,
                failed_repos=tuple(sorted(self._failed_repos)),
            )


class Harvester:
    """
    Runs a harvest over a list of configured repository strings.

    One failing repository never stops the others. Cancellation stops the
    run and surfaces as OperationCancelled rather than a partial result.
    """

    def __init__(
        self,
        config: RunConfiguration,
        git: Optional[VersionControl] = None,
        retry_policy: Optional[RetryPolicy] = None,
        ensure_directory: Callable[[Path], Path] = ensure_directory_exists,
    ):
        self.config = config
        self.git = git or GitClient()
        self.retry_policy = retry_policy or RetryPolicy()
        self.ensure_directory = ensure_directory

    def harvest(
        self,
        repositories: Optional[Sequence[str]],
        cancel: Optional[threading.Event] = None,
    ) -> HarvestResult:
        """
        Clone or update every valid repository.

        Raises:
            OperationCancelled: If cancel is set before or during the run
            ValidationError, DirectoryAccessError: If the mirror directory
                is unusable (nothing is synced in that case)
        """
        raise_if_cancelled(cancel, "Harvest")

        entries = list(repositories or [])
        if not entries:
            emit(logger, logging.WARNING, HARVEST_EMPTY, "No repositories configured")
            return HarvestResult.empty()

        self.ensure_directory(self.config.directory)

        valid = filter_valid_repositories(entries)
        tally = HarvestTally()

        if valid:
            mode = "concurrently" if self.config.is_concurrent else "sequentially"
            logger.info(f"Syncing {len(valid)} repositories {mode} into {self.config.directory}")

            if self.config.is_concurrent:
                self._run_concurrent(valid, tally, cancel)
            else:
                self._run_sequential(valid, tally, cancel)

        raise_if_cancelled(cancel, "Harvest")

        result = tally.result()
        emit(
            logger,
            logging.INFO,
            HARVEST_COMPLETED,
            f"Completed: {result.succeeded}/{result.total} succeeded, {result.failed} failed",
            succeeded=result.succeeded,
            total=result.total,
            failed=result.failed,
        )
        return result

    # ─── Scheduling ────────────────────────────────────────

    def _sync_one(self, repo: RepositorySpec, cancel: Optional[threading.Event]) -> SyncOutcome:
        try:
            return sync_repository(
                repo,
                self.config.directory,
                self.git,
                policy=self.retry_policy,
                cancel=cancel,
                verbose=self.config.verbose,
                host=self.config.host,
            )
        except OperationCancelled:
            raise
        except Exception as e:
            # sync_repository reports git failures itself; this is anything else
            logger.exception(f"Unexpected error while syncing {repo.full_name}")
            return SyncOutcome.failed(repo, None, e)

    def _run_sequential(
        self,
        repos: List[RepositorySpec],
        tally: HarvestTally,
        cancel: Optional[threading.Event],
    ) -> None:
        for repo in repos:
            raise_if_cancelled(cancel, "Harvest")
            tally.record(self._sync_one(repo, cancel))

    def _run_concurrent(
        self,
        repos: List[RepositorySpec],
        tally: HarvestTally,
        cancel: Optional[threading.Event],
    ) -> None:
        workers = min(self.config.max_workers, len(repos))
        cancelled: Optional[OperationCancelled] = None

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="harvest")
        try:
            futures: Dict[Future, RepositorySpec] = {
                executor.submit(self._sync_one, repo, cancel): repo for repo in repos
            }
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                try:
                    tally.record(future.result())
                except OperationCancelled as e:
                    if cancelled is None:
                        cancelled = e
                        # Nothing queued may start once the run is cancelled
                        for pending in futures:
                            pending.cancel()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        if cancelled is not None:
            raise cancelled
