"""
Retry Policy — Bounded exponential backoff around one repository operation.

Only failures the classifier marks transient are retried. Backoff waits
block on the run's cancellation event, so a cancelled run stops waiting
immediately instead of sleeping out the delay.

## Usage

    from wallpaper_harvester.reliability.retry import RetryPolicy

    policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    result = policy.run(lambda: git.clone(url, path), cancel=cancel_event, label="owner/repo")
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from ..mirror.classifier import FailureKind, classify_failure
from ..observability.events import REPOSITORY_RETRY, emit

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0


class OperationCancelled(Exception):
    """Raised when the run was cancelled before or during an operation."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


def raise_if_cancelled(cancel: Optional[threading.Event], what: str = "Operation") -> None:
    """Raise OperationCancelled if cancel has been set."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"{what} cancelled")


def summarize_error(error: BaseException, limit: int = 200) -> str:
    """First non-empty line of an error message, trimmed for logs."""
    text = str(error).strip() or type(error).__name__
    first_line = next((line.strip() for line in text.splitlines() if line.strip()), text)
    if len(first_line) > limit:
        return first_line[: limit - 3] + "..."
    return first_line


@dataclass
class RetryContext:
    """State of one run() call, handed to the on_retry hook."""

    label: str
    attempt: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    last_error: Optional[BaseException] = None
    last_kind: Optional[FailureKind] = None
    elapsed_backoff: float = 0.0


class RetryPolicy:
    """
    Retry a callable on transient failures.

    Attempt n (after the first) waits base_delay * 2**(n-2) seconds,
    capped at max_delay: 1s, 2s, 4s ... with the defaults.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        classifier: Callable[[BaseException], FailureKind] = classify_failure,
        on_retry: Optional[Callable[[RetryContext], None]] = None,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("Retry delays cannot be negative")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.classifier = classifier
        self.on_retry = on_retry

    def delay_for(self, retry_number: int) -> float:
        """Backoff before the given retry (1 = first retry)."""
        delay = self.base_delay * (2 ** (retry_number - 1))
        return min(delay, self.max_delay)

    def run(
        self,
        operation: Callable[[], T],
        cancel: Optional[threading.Event] = None,
        label: str = "operation",
        context: Optional[RetryContext] = None,
    ) -> T:
        """
        Call operation until it succeeds or the policy gives up.

        Args:
            operation: Zero-argument callable to attempt
            cancel: Run-scoped cancellation event
            label: Name used in retry signals (usually owner/name)
            context: Optional context to fill in, so callers can read the
                     attempt count after run() returns or raises

        Returns:
            Whatever operation returns on its successful attempt

        Raises:
            OperationCancelled: If cancel is set before an attempt or during backoff
            Exception: The last error, once it is not transient or attempts run out
        """
        ctx = context or RetryContext(label=label)
        ctx.label = label
        ctx.max_attempts = self.max_attempts

        while True:
            raise_if_cancelled(cancel, label)
            ctx.attempt += 1

            try:
                return operation()
            except OperationCancelled:
                raise
            except Exception as e:
                ctx.last_error = e
                ctx.last_kind = self.classifier(e)

                if not ctx.last_kind.retryable or ctx.attempt >= self.max_attempts:
                    raise

                delay = self.delay_for(ctx.attempt)
                emit(
                    logger,
                    logging.WARNING,
                    REPOSITORY_RETRY,
                    f"[{label}] Attempt {ctx.attempt}/{self.max_attempts} failed "
                    f"({summarize_error(e)}), retrying in {delay:.1f}s",
                    repo=label,
                    attempt=ctx.attempt,
                    max_attempts=self.max_attempts,
                    delay=delay,
                    error=summarize_error(e),
                )
                if self.on_retry is not None:
                    self.on_retry(ctx)

                raise_if_cancelled(cancel, label)
                if cancel is not None:
                    if cancel.wait(timeout=delay):
                        raise OperationCancelled(f"{label} cancelled during backoff")
                elif delay > 0:
                    time.sleep(delay)
                ctx.elapsed_backoff += delay
