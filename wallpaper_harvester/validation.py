"""
Validation — Error types and mirror directory checks.

The mirror directory is validated and created before any repository is
touched. Failures here are fatal to the run.

## Usage

    from wallpaper_harvester.validation import ensure_directory_exists

    try:
        ensure_directory_exists(Path("~/Pictures/Wallpapers").expanduser())
    except (ValidationError, DirectoryAccessError) as e:
        print(f"Cannot use mirror directory: {e}")
"""

from __future__ import annotations

import logging
import ntpath
import os
import sys
import uuid
from pathlib import Path, PureWindowsPath
from typing import Dict, Optional

from .observability.events import DIRECTORY_CREATED, emit

logger = logging.getLogger(__name__)

WINDOWS_RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)

WINDOWS_INVALID_CHARS = frozenset('<>"|?*') | frozenset(chr(i) for i in range(32))

WINDOWS_MAX_PATH = 260
POSIX_MAX_PATH = 4096


class ValidationError(Exception):
    """Raised when validation fails."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        self.message = message
        self.field = field
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


class DirectoryAccessError(Exception):
    """Raised when the mirror directory cannot be created or written."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.message = message
        self.path = path
        super().__init__(message)


def _is_windows() -> bool:
    return os.name == "nt"


def default_mirror_directory() -> Path:
    """~/Pictures/Wallpapers, or the XDG pictures dir when one is set."""
    pictures = os.environ.get("XDG_PICTURES_DIR")
    if pictures:
        return Path(pictures).expanduser() / "Wallpapers"
    return Path.home() / "Pictures" / "Wallpapers"


def validate_directory_path(path: Optional[str | Path]) -> None:
    """
    Validate a directory path before touching the filesystem.

    Checks:
    - Not empty or whitespace
    - Within the OS maximum path length
    - No invalid characters
    - No reserved device names (Windows only)

    Raises:
        ValidationError: If validation fails
    """
    if path is None or not str(path).strip():
        raise ValidationError("Path cannot be empty or whitespace", field="directory")

    text = str(path)
    max_length = WINDOWS_MAX_PATH if _is_windows() else POSIX_MAX_PATH
    if len(text) > max_length:
        raise ValidationError(
            f"Path exceeds maximum length of {max_length} characters for this OS",
            field="directory",
            details={"length": len(text)},
        )

    if "\0" in text:
        raise ValidationError("Path contains invalid characters", field="directory")

    if _is_windows():
        # Drive letters keep their colon; everything after is checked
        drive, rest = ntpath.splitdrive(text)
        if any(c in WINDOWS_INVALID_CHARS or c == ":" for c in rest):
            raise ValidationError("Path contains invalid characters", field="directory")

        for part in PureWindowsPath(rest).parts:
            if not part.strip() or part in ("\\", "/"):
                continue
            stem = part.split(".")[0].upper()
            if stem in WINDOWS_RESERVED_NAMES:
                raise ValidationError(
                    f"Path contains reserved Windows name: {part}",
                    field="directory",
                )


def _platform_help(error: BaseException) -> str:
    """Platform-specific hint for a directory access failure."""
    if _is_windows() and isinstance(error, OSError) and getattr(error, "winerror", None) == 206:
        return (
            "Enable long path support in Windows: "
            "https://learn.microsoft.com/windows/win32/fileio/maximum-file-path-limitation"
        )

    if isinstance(error, PermissionError):
        if sys.platform.startswith("linux"):
            return "Check file permissions with 'ls -la' and use 'chmod' to fix access rights."
        if sys.platform == "darwin":
            return "Check System Settings > Privacy & Security > Full Disk Access."

    return ""


def ensure_directory_exists(path: str | Path) -> Path:
    """
    Create the mirror directory if needed and verify it is writable.

    Returns:
        The resolved directory path

    Raises:
        ValidationError: If the path itself is invalid
        DirectoryAccessError: If the directory cannot be created or written
    """
    validate_directory_path(path)
    directory = Path(path).expanduser()

    try:
        if not directory.is_dir():
            directory.mkdir(parents=True, exist_ok=True)
            emit(
                logger,
                logging.INFO,
                DIRECTORY_CREATED,
                f"Created directory: {directory}",
                path=str(directory),
            )

        probe = directory / f".write-test-{uuid.uuid4()}"
        try:
            probe.write_text("test")
        finally:
            try:
                probe.unlink()
            except FileNotFoundError:
                pass
    except PermissionError as e:
        message = (
            f"Insufficient permissions to access directory: {directory}. "
            "Please ensure the directory is writable or specify a different location."
        )
        help_text = _platform_help(e)
        if help_text:
            message += f" {help_text}"
        raise DirectoryAccessError(message, directory) from e
    except OSError as e:
        message = f"Cannot create or access directory: {directory}."
        help_text = _platform_help(e)
        if help_text:
            message += f" {help_text}"
        elif sys.platform.startswith("linux"):
            message += f" On Linux, ensure you have proper permissions (try: chmod 755 {directory})"
        raise DirectoryAccessError(message, directory) from e

    return directory
