"""
Tests for wallpaper_harvester/mirror/git_sync.py

Most tests mock _git / _git_transfer so no repository or network is
needed. TestLocalRepositories runs the real git binary against
repositories created under tmp_path and is skipped without git.
"""

import shutil
import subprocess
import threading
from collections import deque
from pathlib import Path
from unittest import mock

import pytest

from wallpaper_harvester.mirror import git_sync
from wallpaper_harvester.mirror.git_sync import (
    GitClient,
    GitCommandError,
    TransferProgress,
    parse_progress_line,
)
from wallpaper_harvester.reliability.retry import OperationCancelled


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _mock_git_result(returncode: int = 0, stdout: str = "", stderr: str = ""):
    """Create a mock subprocess.CompletedProcess."""
    return subprocess.CompletedProcess(
        args=["git"], returncode=returncode, stdout=stdout, stderr=stderr,
    )


# ---------------------------------------------------------------------------
# parse_progress_line()
# ---------------------------------------------------------------------------

class TestParseProgressLine:

    def test_receiving_objects(self):
        progress = parse_progress_line("Receiving objects:  45% (450/1000), 1.20 MiB | 2.00 MiB/s")
        assert progress.phase == "Receiving objects"
        assert progress.percent == 45
        assert progress.received == 450
        assert progress.total == 1000
        assert progress.has_counts is True

    def test_remote_counting(self):
        progress = parse_progress_line("remote: Counting objects: 100% (10/10), done.")
        assert progress.phase == "Counting objects"
        assert progress.percent == 100

    def test_percent_computed_from_counts(self):
        progress = parse_progress_line("Resolving deltas:  33% (1/3)")
        assert progress.percent == 33

    def test_remote_text(self):
        progress = parse_progress_line("remote: Enumerating objects: 5, done.")
        assert progress.phase == "remote"
        assert progress.has_counts is False

    def test_plain_message(self):
        progress = parse_progress_line("Cloning into 'walls'...")
        assert progress.phase == "message"
        assert progress.message == "Cloning into 'walls'..."


class TestHandleLine:

    def test_progress_lines_not_kept_in_tail(self):
        tail = deque(maxlen=20)
        git_sync._handle_line(b"Receiving objects:  10% (1/10)", tail, None)
        git_sync._handle_line(b"fatal: early EOF", tail, None)
        assert list(tail) == ["fatal: early EOF"]

    def test_failing_callback_is_ignored(self):
        def explode(progress):
            raise RuntimeError("callback bug")

        git_sync._handle_line(b"Receiving objects:  10% (1/10)", deque(), explode)

    def test_callback_receives_progress(self):
        seen = []
        git_sync._handle_line(b"Receiving objects:  10% (1/10)", deque(), seen.append)
        assert isinstance(seen[0], TransferProgress)
        assert seen[0].received == 1


# ---------------------------------------------------------------------------
# _git / _git_checked
# ---------------------------------------------------------------------------

class TestGitCommand:

    @mock.patch("wallpaper_harvester.mirror.git_sync.subprocess.run")
    def test_disables_prompts(self, mock_run, tmp_path):
        mock_run.return_value = _mock_git_result()
        git_sync._git(tmp_path, "status")

        env = mock_run.call_args.kwargs["env"]
        assert env["GIT_TERMINAL_PROMPT"] == "0"
        assert env["LC_ALL"] == "C"
        assert mock_run.call_args.kwargs["cwd"] == str(tmp_path)

    @mock.patch("wallpaper_harvester.mirror.git_sync.subprocess.run")
    def test_timeout_becomes_git_error(self, mock_run, tmp_path):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd=["git"], timeout=30)

        with pytest.raises(GitCommandError, match="timed out"):
            git_sync._git(tmp_path, "reset", "--hard", "origin/main")

    @mock.patch("wallpaper_harvester.mirror.git_sync.subprocess.run")
    def test_missing_git_binary(self, mock_run, tmp_path):
        mock_run.side_effect = FileNotFoundError("git")

        with pytest.raises(GitCommandError, match="Could not run git"):
            git_sync._git(tmp_path, "status")

    @mock.patch("wallpaper_harvester.mirror.git_sync._git")
    def test_checked_raises_with_stderr(self, mock_git, tmp_path):
        mock_git.return_value = _mock_git_result(returncode=128, stderr="fatal: bad object\n")

        with pytest.raises(GitCommandError) as exc_info:
            git_sync._git_checked(tmp_path, "reset", "--hard", "origin/main")

        assert exc_info.value.returncode == 128
        assert "fatal: bad object" in exc_info.value.stderr
        assert "exit 128" in str(exc_info.value)


# ---------------------------------------------------------------------------
# GitClient.clone()
# ---------------------------------------------------------------------------

class TestClone:

    @mock.patch("wallpaper_harvester.mirror.git_sync._git_transfer")
    def test_clone_arguments(self, mock_transfer, tmp_path):
        target = tmp_path / "walls"
        GitClient(transfer_timeout=60).clone("https://github.com/o/walls.git", target)

        args, kwargs = mock_transfer.call_args
        assert args == (None, "clone", "--", "https://github.com/o/walls.git", str(target))
        assert kwargs["timeout"] == 60
        assert kwargs["on_progress"] is None

    @mock.patch("wallpaper_harvester.mirror.git_sync._git_transfer")
    def test_clone_with_progress(self, mock_transfer, tmp_path):
        callback = mock.Mock()
        GitClient().clone("https://github.com/o/walls.git", tmp_path / "walls", on_progress=callback)

        args, kwargs = mock_transfer.call_args
        assert "--progress" in args
        assert kwargs["on_progress"] is callback

    @mock.patch("wallpaper_harvester.mirror.git_sync._git_transfer")
    def test_failed_clone_removes_partial_directory(self, mock_transfer, tmp_path):
        target = tmp_path / "walls"

        def partial_clone(*args, **kwargs):
            (target / ".git").mkdir(parents=True)
            raise GitCommandError("git clone failed (exit 128): fatal: early EOF")

        mock_transfer.side_effect = partial_clone

        with pytest.raises(GitCommandError):
            GitClient().clone("https://github.com/o/walls.git", target)

        assert not target.exists()

    @mock.patch("wallpaper_harvester.mirror.git_sync._git_transfer")
    def test_cancelled_clone_removes_partial_directory(self, mock_transfer, tmp_path):
        target = tmp_path / "walls"

        def cancelled(*args, **kwargs):
            target.mkdir()
            raise OperationCancelled("git clone cancelled")

        mock_transfer.side_effect = cancelled

        with pytest.raises(OperationCancelled):
            GitClient().clone("https://github.com/o/walls.git", target)

        assert not target.exists()

    def test_exists(self, tmp_path):
        client = GitClient()
        assert client.exists(tmp_path) is True
        assert client.exists(tmp_path / "missing") is False


# ---------------------------------------------------------------------------
# GitClient.fetch_and_hard_reset()
# ---------------------------------------------------------------------------

class TestFetchAndHardReset:

    @mock.patch("wallpaper_harvester.mirror.git_sync._git")
    @mock.patch("wallpaper_harvester.mirror.git_sync._git_transfer")
    def test_resets_to_remote_branch(self, mock_transfer, mock_git, tmp_path):
        mock_git.side_effect = [
            _mock_git_result(stdout="main\n"),   # symbolic-ref
            _mock_git_result(returncode=0),      # rev-parse origin/main
            _mock_git_result(returncode=0),      # reset --hard
        ]

        target = GitClient().fetch_and_hard_reset(tmp_path)

        assert target == "origin/main"
        assert mock_transfer.call_args.args == (tmp_path, "fetch", "origin")
        reset_call = mock_git.call_args_list[-1]
        assert reset_call.args == (tmp_path, "reset", "--hard", "origin/main")

    @mock.patch("wallpaper_harvester.mirror.git_sync._git")
    @mock.patch("wallpaper_harvester.mirror.git_sync._git_transfer")
    def test_detached_head_skips_reset(self, mock_transfer, mock_git, tmp_path):
        mock_git.return_value = _mock_git_result(returncode=1)

        assert GitClient().fetch_and_hard_reset(tmp_path) is None
        mock_transfer.assert_called_once()
        assert mock_git.call_count == 1

    @mock.patch("wallpaper_harvester.mirror.git_sync._git")
    @mock.patch("wallpaper_harvester.mirror.git_sync._git_transfer")
    def test_missing_remote_branch_skips_reset(self, mock_transfer, mock_git, tmp_path):
        mock_git.side_effect = [
            _mock_git_result(stdout="local-only\n"),
            _mock_git_result(returncode=1),
        ]

        assert GitClient().fetch_and_hard_reset(tmp_path) is None
        assert mock_git.call_count == 2

    @mock.patch("wallpaper_harvester.mirror.git_sync._git")
    @mock.patch("wallpaper_harvester.mirror.git_sync._git_transfer")
    def test_reset_failure_raises(self, mock_transfer, mock_git, tmp_path):
        mock_git.side_effect = [
            _mock_git_result(stdout="main\n"),
            _mock_git_result(returncode=0),
            _mock_git_result(returncode=128, stderr="fatal: Unable to create index.lock"),
        ]

        with pytest.raises(GitCommandError, match="index.lock"):
            GitClient().fetch_and_hard_reset(tmp_path)

    @mock.patch("wallpaper_harvester.mirror.git_sync._git")
    @mock.patch("wallpaper_harvester.mirror.git_sync._git_transfer")
    def test_cancelled_after_fetch_does_not_reset(self, mock_transfer, mock_git, tmp_path):
        cancel = threading.Event()
        mock_transfer.side_effect = lambda *a, **kw: cancel.set()

        with pytest.raises(OperationCancelled):
            GitClient().fetch_and_hard_reset(tmp_path, cancel=cancel)

        mock_git.assert_not_called()

    @mock.patch("wallpaper_harvester.mirror.git_sync._git_transfer")
    def test_fetch_failure_propagates(self, mock_transfer, tmp_path):
        mock_transfer.side_effect = GitCommandError("git fetch failed (exit 128): fatal: early EOF")

        with pytest.raises(GitCommandError, match="early EOF"):
            GitClient().fetch_and_hard_reset(tmp_path)


# ---------------------------------------------------------------------------
# Real git against local repositories
# ---------------------------------------------------------------------------

def _commit(repo: Path, filename: str, content: str) -> None:
    (repo / filename).write_text(content)
    git_sync._git_checked(repo, "add", filename)
    git_sync._git_checked(
        repo,
        "-c", "user.name=Harvest Test",
        "-c", "user.email=harvest@example.com",
        "commit", "-q", "-m", f"Add {filename}",
    )


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
class TestLocalRepositories:

    @pytest.fixture
    def origin(self, tmp_path: Path) -> Path:
        origin = tmp_path / "origin"
        origin.mkdir()
        git_sync._git_checked(origin, "init", "-q")
        _commit(origin, "first.png", "one")
        return origin

    def test_clone_then_update(self, origin, tmp_path):
        client = GitClient()
        mirror = tmp_path / "mirrors" / "walls"
        mirror.parent.mkdir()

        client.clone(str(origin), mirror)
        assert (mirror / "first.png").read_text() == "one"

        _commit(origin, "second.png", "two")
        (mirror / "first.png").write_text("local edit")

        target = client.fetch_and_hard_reset(mirror)

        assert target is not None and target.startswith("origin/")
        assert (mirror / "second.png").read_text() == "two"
        assert (mirror / "first.png").read_text() == "one"

    def test_clone_missing_source_fails(self, tmp_path):
        mirror = tmp_path / "walls"

        with pytest.raises(GitCommandError) as exc_info:
            GitClient().clone(str(tmp_path / "does-not-exist"), mirror)

        assert exc_info.value.returncode not in (None, 0)
        assert not mirror.exists()

    def test_clone_reports_progress(self, origin, tmp_path):
        seen = []
        GitClient().clone(str(origin), tmp_path / "walls", on_progress=seen.append)
        assert all(isinstance(p, TransferProgress) for p in seen)

    def test_pre_cancelled_clone(self, origin, tmp_path):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelled):
            GitClient().clone(str(origin), tmp_path / "walls", cancel=cancel)
