"""
Mirror Models — Repository identifiers, run settings, and harvest results.

A harvest turns configured "owner/name" strings into RepositorySpec values,
runs one sync per repository, and folds every SyncOutcome into a HarvestResult.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

DEFAULT_GIT_HOST = "github.com"
DEFAULT_MAX_WORKERS = 4


class ConcurrencyMode(str, Enum):
    """How repository syncs are scheduled within one run."""
    CONCURRENT = "concurrent"
    SEQUENTIAL = "sequential"


class SyncAction(str, Enum):
    """What a per-repository sync did (or tried to do)."""
    CLONE = "clone"
    UPDATE = "update"


@dataclass(frozen=True)
class RepositorySpec:
    """A remote repository identified as owner/name."""

    owner: str
    name: str

    @classmethod
    def parse(cls, raw: str) -> Optional["RepositorySpec"]:
        """
        Parse an "owner/name" string.

        Returns None unless the string has exactly one "/" and both
        sides are non-blank. Whitespace around either side is dropped.
        """
        if not isinstance(raw, str):
            return None

        parts = raw.strip().split("/")
        if len(parts) != 2:
            return None

        owner, name = (part.strip() for part in parts)
        if not owner or not name:
            return None

        return cls(owner=owner, name=name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def remote_url(self, host: str = DEFAULT_GIT_HOST) -> str:
        """HTTPS clone URL on the given host."""
        return f"https://{host}/{self.owner}/{self.name}.git"

    def mirror_path(self, directory: Path) -> Path:
        """Local mirror location: <directory>/<name>."""
        return Path(directory) / self.name

    def __str__(self) -> str:
        return self.full_name


@dataclass
class RunConfiguration:
    """Settings for a single harvest run."""

    directory: Path
    mode: ConcurrencyMode = ConcurrencyMode.CONCURRENT
    verbose: bool = False
    max_workers: int = DEFAULT_MAX_WORKERS
    host: str = DEFAULT_GIT_HOST

    def __post_init__(self) -> None:
        self.directory = Path(self.directory).expanduser()
        self.mode = ConcurrencyMode(self.mode)
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

    @property
    def is_concurrent(self) -> bool:
        return self.mode == ConcurrencyMode.CONCURRENT


@dataclass
class SyncOutcome:
    """
    Result of one per-repository sync.

    action is None only when the sync failed before choosing between
    clone and update.
    """

    repo: RepositorySpec
    success: bool
    action: Optional[SyncAction]
    error: Optional[BaseException] = None
    attempts: int = 1

    @classmethod
    def succeeded(cls, repo: RepositorySpec, action: SyncAction, attempts: int = 1) -> "SyncOutcome":
        return cls(repo=repo, success=True, action=action, attempts=attempts)

    @classmethod
    def failed(
        cls,
        repo: RepositorySpec,
        action: Optional[SyncAction],
        error: BaseException,
        attempts: int = 1,
    ) -> "SyncOutcome":
        return cls(repo=repo, success=False, action=action, error=error, attempts=attempts)


@dataclass(frozen=True)
class HarvestResult:
    """
    Run-level report.

    total always equals succeeded + failed, and failed always equals
    the number of entries in failed_repos.
    """

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_repos: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.total != self.succeeded + self.failed:
            raise ValueError(
                f"Inconsistent result: total={self.total}, "
                f"succeeded={self.succeeded}, failed={self.failed}"
            )
        if self.failed != len(self.failed_repos):
            raise ValueError(
                f"Inconsistent result: failed={self.failed} but "
                f"{len(self.failed_repos)} failed repositories listed"
            )

    @classmethod
    def empty(cls) -> "HarvestResult":
        return cls()

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failed_repos": list(self.failed_repos),
        }
