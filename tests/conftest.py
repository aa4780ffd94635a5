"""
Shared fixtures for harvest tests.

FakeGit stands in for the git CLI so no test touches the network. It
records every call and can be told to fail per repository name.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import pytest

from wallpaper_harvester.mirror.git_sync import GitCommandError, VersionControl
from wallpaper_harvester.reliability.retry import RetryPolicy

Failure = Union[BaseException, List[BaseException]]


class FakeGit(VersionControl):
    """
    In-memory version-control capability.

    failures maps a repository name to either one exception (raised on
    every attempt) or a list of exceptions (raised one per attempt, after
    which the call succeeds).
    """

    def __init__(
        self,
        existing: Iterable[str] = (),
        failures: Optional[Dict[str, Failure]] = None,
    ):
        self.existing = set(existing)
        self.failures = dict(failures or {})
        self.calls: List[Tuple[str, str]] = []
        self.urls: List[str] = []
        self._lock = threading.Lock()

    def exists(self, path: Path) -> bool:
        return Path(path).name in self.existing

    def clone(self, url, path, on_progress=None, cancel=None) -> None:
        name = Path(path).name
        with self._lock:
            self.calls.append(("clone", name))
            self.urls.append(url)
        self._maybe_fail(name)

    def fetch_and_hard_reset(self, path, on_progress=None, cancel=None) -> Optional[str]:
        name = Path(path).name
        with self._lock:
            self.calls.append(("update", name))
        self._maybe_fail(name)
        return "origin/main"

    def calls_for(self, name: str) -> List[str]:
        return [action for action, called in self.calls if called == name]

    def _maybe_fail(self, name: str) -> None:
        with self._lock:
            failure = self.failures.get(name)
            if failure is None:
                return
            if isinstance(failure, list):
                if not failure:
                    return
                error = failure.pop(0)
            else:
                error = failure
        raise error


def git_error(stderr: str) -> GitCommandError:
    """A GitCommandError shaped like a failed clone."""
    return GitCommandError(
        f"git clone failed (exit 128): {stderr}",
        ["git", "clone"],
        128,
        stderr,
    )


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def no_wait_policy() -> RetryPolicy:
    """Default retry policy without the backoff sleeps."""
    return RetryPolicy(base_delay=0, max_delay=0)

