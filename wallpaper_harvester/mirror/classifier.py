"""
Failure Classifier — Decide whether a git failure is worth retrying.

Network hiccups get a few more attempts. Authentication, missing
repositories, and corruption never fix themselves, so they fail fast.
Anything unrecognised is not retried either.

## Usage

    from wallpaper_harvester.mirror.classifier import classify_failure, FailureKind

    if classify_failure(error) is FailureKind.TRANSIENT:
        # retry
"""

from __future__ import annotations

import re
import subprocess
from enum import Enum
from typing import Iterable, Optional, Pattern


class FailureKind(str, Enum):
    """Retry classification of an operation failure."""
    TRANSIENT = "transient"  # Expected to clear up on retry
    PERMANENT = "permanent"  # Will not clear up on retry
    UNKNOWN = "unknown"      # Unrecognised, never retried

    @property
    def retryable(self) -> bool:
        return self is FailureKind.TRANSIENT


TRANSIENT_PATTERNS = (
    r"timed? ?out",
    r"timeout",
    r"connection (refused|reset|closed|aborted|failed)",
    r"failed to connect",
    r"could not connect",
    r"could not resolve host",
    r"name or service not known",
    r"temporary failure in name resolution",
    r"name resolution",
    r"network is unreachable",
    r"no route to host",
    r"host is unreachable",
    r"unreachable",
    r"remote end hung up unexpectedly",
    r"early eof",
    r"rpc failed",
    r"transient",
    r"temporar(y|ily)",
    r"try again",
    r"returned error: 50[234]",
    r"\bHTTP(?:/[\d.]+)? 50[234]\b",
)

PERMANENT_PATTERNS = (
    r"authentication failed",
    r"could not read username",
    r"could not read password",
    r"invalid credentials",
    r"permission denied",
    r"access denied",
    r"returned error: 40[13]",
    r"\bHTTP(?:/[\d.]+)? 40[13]\b",
    r"not found",
    r"does not exist",
    r"no such file or directory",
    r"not a git repository",
    r"not a valid",
    r"invalid (?:ref|refspec|reference|path|object|username|password)",
    r"\bcorrupt",
    r"bad object",
    r"fatal: bad",
)


# Quoted paths, URLs and progress lines name the repository, not the failure.
_NOISE = re.compile(
    r"^\s*Cloning into.*$"
    r"|'[^'\n]*'"
    r"|\"[^\"\n]*\""
    r"|\b[a-z][a-z0-9+.-]*://\S+"
    r"|\S+@[\w.-]+:\S+"
    r"|(?<![\w.])/[^\s:'\"]+",
    re.IGNORECASE | re.MULTILINE,
)


def scrub_error_text(text: str) -> str:
    """Remove the parts of git output that echo names rather than errors."""
    return _NOISE.sub(" ", text)


def _compile(patterns: Iterable[str]) -> Pattern[str]:
    return re.compile("|".join(f"(?:{p})" for p in patterns), re.IGNORECASE)


class PatternClassifier:
    """
    Classify failures by matching their text against known patterns.

    Permanent patterns are checked first: a message that mentions both a
    timeout and a missing repository is not retried.
    """

    def __init__(
        self,
        transient_patterns: Iterable[str] = TRANSIENT_PATTERNS,
        permanent_patterns: Iterable[str] = PERMANENT_PATTERNS,
    ):
        self._transient = _compile(transient_patterns)
        self._permanent = _compile(permanent_patterns)

    def classify_text(self, text: str) -> FailureKind:
        text = scrub_error_text(text or "")
        if not text.strip():
            return FailureKind.UNKNOWN
        if self._permanent.search(text):
            return FailureKind.PERMANENT
        if self._transient.search(text):
            return FailureKind.TRANSIENT
        return FailureKind.UNKNOWN

    def __call__(self, error: BaseException) -> FailureKind:
        explicit = _explicit_kind(error)
        if explicit is not None:
            return explicit

        if isinstance(error, (TimeoutError, ConnectionError, subprocess.TimeoutExpired)):
            return FailureKind.TRANSIENT
        if isinstance(error, PermissionError):
            return FailureKind.PERMANENT

        return self.classify_text(_error_text(error))


def _explicit_kind(error: BaseException) -> Optional[FailureKind]:
    """Use a failure_kind attribute when the error already carries one."""
    kind = getattr(error, "failure_kind", None)
    if kind is None:
        return None
    try:
        return FailureKind(kind)
    except ValueError:
        return None


def _error_text(error: BaseException) -> str:
    """Message plus any captured stderr from the git command."""
    parts = [str(error)]
    stderr = getattr(error, "stderr", None)
    if stderr and stderr not in parts[0]:
        parts.append(str(stderr))
    return "\n".join(parts)


_default_classifier = PatternClassifier()


def classify_failure(error: BaseException) -> FailureKind:
    """Classify error with the default pattern classifier."""
    return _default_classifier(error)
