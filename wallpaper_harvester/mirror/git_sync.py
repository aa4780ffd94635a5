"""
Git Sync — Clone and hard-reset local mirrors with the git CLI.

Short commands go through subprocess.run. Clone and fetch stream stderr
so transfer progress can be reported and so a cancelled run can stop the
child process instead of waiting for it.

Git runs with GIT_TERMINAL_PROMPT=0 (a private repository fails instead of
hanging on a password prompt) and LC_ALL=C (error text stays in English
for the failure classifier).
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Sequence

from ..reliability.retry import OperationCancelled

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT = 30
TRANSFER_TIMEOUT = 600

# "Receiving objects:  45% (450/1000), 1.20 MiB | 2.00 MiB/s"
_PROGRESS_RE = re.compile(
    r"^(?:remote:\s*)?(?P<phase>[A-Za-z][A-Za-z ]*?):\s+(?P<percent>\d{1,3})%\s+\((?P<received>\d+)/(?P<total>\d+)\)"
)
_LINE_SPLIT_RE = re.compile(rb"[\r\n]")


class GitCommandError(Exception):
    """A git command exited non-zero, timed out, or could not be started."""

    def __init__(
        self,
        message: str,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        self.message = message
        self.command = list(command) if command else []
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


@dataclass
class TransferProgress:
    """One progress report from a clone or fetch."""

    phase: str
    message: str
    percent: Optional[int] = None
    received: Optional[int] = None
    total: Optional[int] = None

    @property
    def has_counts(self) -> bool:
        return self.total is not None


ProgressCallback = Callable[[TransferProgress], None]


def parse_progress_line(line: str) -> TransferProgress:
    """
    Parse one line of git --progress output.

    Counted phases ("Receiving objects: 45% (450/1000)") fill in percent
    and object counts. Anything else is returned as a text-only report.
    """
    text = line.strip()
    match = _PROGRESS_RE.match(text)
    if not match:
        phase = "remote" if text.startswith("remote:") else "message"
        return TransferProgress(phase=phase, message=text)

    received = int(match.group("received"))
    total = int(match.group("total"))
    percent = (100 * received) // total if total > 0 else 0
    return TransferProgress(
        phase=match.group("phase").strip(),
        message=text,
        percent=percent,
        received=received,
        total=total,
    )


def _git_env() -> Dict[str, str]:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["LC_ALL"] = "C"
    return env


def _git(repo: Optional[Path], *args: str, timeout: int = COMMAND_TIMEOUT) -> subprocess.CompletedProcess:
    """Run a git command in the repo directory."""
    cmd = ["git"] + list(args)
    try:
        return subprocess.run(
            cmd,
            cwd=str(repo) if repo else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_git_env(),
        )
    except subprocess.TimeoutExpired as e:
        raise GitCommandError(
            f"git {args[0]} timed out after {timeout}s", cmd, None, ""
        ) from e
    except OSError as e:
        raise GitCommandError(f"Could not run git: {e}", cmd, None, "") from e


def _git_checked(repo: Optional[Path], *args: str, timeout: int = COMMAND_TIMEOUT) -> str:
    """Run a git command and return stripped stdout, raising on failure."""
    result = _git(repo, *args, timeout=timeout)
    if result.returncode != 0:
        error = result.stderr.strip() or result.stdout.strip() or "no output"
        raise GitCommandError(
            f"git {args[0]} failed (exit {result.returncode}): {error}",
            ["git"] + list(args),
            result.returncode,
            result.stderr,
        )
    return result.stdout.strip()


def _notify(on_progress: Optional[ProgressCallback], progress: TransferProgress) -> None:
    """Progress is advisory; a failing callback must not fail the transfer."""
    if on_progress is None:
        return
    try:
        on_progress(progress)
    except Exception:
        logger.debug("Progress callback raised, ignoring", exc_info=True)


def _watch_process(
    process: subprocess.Popen,
    cancel: Optional[threading.Event],
    deadline: float,
    flags: Dict[str, bool],
) -> None:
    """Stop the child when the run is cancelled or the deadline passes."""
    waiter = cancel or threading.Event()
    while process.poll() is None:
        if cancel is not None and cancel.is_set():
            flags["cancelled"] = True
            process.terminate()
            return
        if time.monotonic() >= deadline:
            flags["timed_out"] = True
            process.kill()
            return
        waiter.wait(timeout=0.1)


def _git_transfer(
    repo: Optional[Path],
    *args: str,
    on_progress: Optional[ProgressCallback] = None,
    cancel: Optional[threading.Event] = None,
    timeout: int = TRANSFER_TIMEOUT,
) -> None:
    """
    Run a network git command (clone/fetch), streaming stderr.

    Raises:
        OperationCancelled: If cancel was set while the command ran
        GitCommandError: On non-zero exit, timeout, or if git is missing
    """
    cmd = ["git"] + list(args)
    try:
        process = subprocess.Popen(
            cmd,
            cwd=str(repo) if repo else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            env=_git_env(),
        )
    except OSError as e:
        raise GitCommandError(f"Could not run git: {e}", cmd, None, "") from e

    flags = {"cancelled": False, "timed_out": False}
    watcher = threading.Thread(
        target=_watch_process,
        args=(process, cancel, time.monotonic() + timeout, flags),
        name=f"git-{args[0]}-watch",
        daemon=True,
    )
    watcher.start()

    # Keep the tail of non-progress output for the error message
    tail: Deque[str] = deque(maxlen=20)
    buffer = b""
    try:
        assert process.stderr is not None
        while True:
            chunk = process.stderr.read1(4096)
            if not chunk:
                break
            buffer += chunk
            *lines, buffer = _LINE_SPLIT_RE.split(buffer)
            for raw in lines:
                _handle_line(raw, tail, on_progress)
        if buffer:
            _handle_line(buffer, tail, on_progress)
        returncode = process.wait()
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()
        if process.stderr is not None:
            process.stderr.close()
        watcher.join(timeout=1)

    if flags["cancelled"] or (cancel is not None and cancel.is_set()):
        raise OperationCancelled(f"git {args[0]} cancelled")

    if flags["timed_out"]:
        raise GitCommandError(
            f"git {args[0]} timed out after {timeout}s", cmd, returncode, "\n".join(tail)
        )

    if returncode != 0:
        stderr = "\n".join(tail)
        error = " ".join(list(tail)[-3:]) or "no output"
        raise GitCommandError(
            f"git {args[0]} failed (exit {returncode}): {error}", cmd, returncode, stderr
        )


def _handle_line(raw: bytes, tail: Deque[str], on_progress: Optional[ProgressCallback]) -> None:
    line = raw.decode("utf-8", errors="replace").strip()
    if not line:
        return
    progress = parse_progress_line(line)
    if not progress.has_counts:
        tail.append(line)
    _notify(on_progress, progress)


class VersionControl(ABC):
    """
    Interface for the version-control capability used by a repository sync.

    exists() decides clone vs update. clone() and fetch_and_hard_reset()
    raise on failure and raise OperationCancelled when the run is
    cancelled mid-transfer.
    """

    @abstractmethod
    def exists(self, path: Path) -> bool:
        pass

    @abstractmethod
    def clone(
        self,
        url: str,
        path: Path,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        pass

    @abstractmethod
    def fetch_and_hard_reset(
        self,
        path: Path,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[str]:
        pass


class GitClient(VersionControl):
    """Version-control capability backed by the git CLI."""

    def __init__(
        self,
        transfer_timeout: int = TRANSFER_TIMEOUT,
        command_timeout: int = COMMAND_TIMEOUT,
    ):
        self.transfer_timeout = transfer_timeout
        self.command_timeout = command_timeout

    def exists(self, path: Path) -> bool:
        """True if a local mirror directory is already present."""
        return Path(path).is_dir()

    def clone(
        self,
        url: str,
        path: Path,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """
        Clone url into path.

        A partially written directory is removed on failure so the next
        attempt starts clean.
        """
        path = Path(path)
        args: List[str] = ["clone"]
        if on_progress is not None:
            args.append("--progress")
        args += ["--", url, str(path)]

        try:
            _git_transfer(
                None,
                *args,
                on_progress=on_progress,
                cancel=cancel,
                timeout=self.transfer_timeout,
            )
        except (GitCommandError, OperationCancelled):
            if path.exists():
                shutil.rmtree(path, ignore_errors=True)
            raise

    def current_branch(self, path: Path) -> Optional[str]:
        """Checked-out branch name, or None on a detached HEAD."""
        result = _git(Path(path), "symbolic-ref", "--short", "-q", "HEAD", timeout=self.command_timeout)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def remote_branch_exists(self, path: Path, branch: str) -> bool:
        result = _git(
            Path(path),
            "rev-parse", "--verify", "--quiet", f"refs/remotes/origin/{branch}",
            timeout=self.command_timeout,
        )
        return result.returncode == 0

    def fetch_and_hard_reset(
        self,
        path: Path,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[str]:
        """
        Fetch origin and reset the working tree to origin/<current branch>.

        Local commits and edits are discarded; a mirror never merges.

        Returns:
            The ref the mirror was reset to, or None if there was nothing
            to reset to (detached HEAD, or no matching remote branch)
        """
        path = Path(path)
        args: List[str] = ["fetch"]
        if on_progress is not None:
            args.append("--progress")
        args.append("origin")

        _git_transfer(
            path,
            *args,
            on_progress=on_progress,
            cancel=cancel,
            timeout=self.transfer_timeout,
        )

        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Update cancelled after fetch")

        branch = self.current_branch(path)
        if branch is None:
            logger.debug(f"{path}: detached HEAD, skipping reset")
            return None

        if not self.remote_branch_exists(path, branch):
            logger.debug(f"{path}: no origin/{branch}, skipping reset")
            return None

        target = f"origin/{branch}"
        _git_checked(path, "reset", "--hard", target, timeout=self.command_timeout)
        return target
