"""Build reporting for Pressroom.

Recoverable problems (a malformed document, a failed listing page, a
suppressed remote fetch) are collected into a BuildReport instead of being
raised, so one bad source never aborts the whole build. Fatal errors are
recorded too; they decide the outcome and stop publication.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum


class BuildOutcome(str, Enum):
    """Final outcome of a build."""

    SUCCESS = "success"
    SUCCESS_WITH_WARNINGS = "success-with-warnings"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BuildWarning:
    """A recoverable problem tied to one source.

    Attributes:
        source: Source identifier (file path, URL or artifact path).
        message: Human-readable description.
        error: The exception behind the warning, if any.
    """

    source: str
    message: str
    error: Exception | None = None

    def __str__(self) -> str:
        return f"{self.source}: {self.message}"


class BuildReport:
    """Thread-safe collector of warnings and fatal errors."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._warnings: list[BuildWarning] = []
        self._errors: list[Exception] = []
        self._cancelled = False

    def warn(self, source: str, message: str, error: Exception | None = None) -> None:
        with self._lock:
            self._warnings.append(BuildWarning(source, message, error))

    def fail(self, error: Exception) -> None:
        with self._lock:
            self._errors.append(error)

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True

    @property
    def warnings(self) -> list[BuildWarning]:
        with self._lock:
            return list(self._warnings)

    @property
    def errors(self) -> list[Exception]:
        with self._lock:
            return list(self._errors)

    @property
    def failed(self) -> bool:
        with self._lock:
            return bool(self._errors)

    @property
    def outcome(self) -> BuildOutcome:
        with self._lock:
            if self._errors:
                return BuildOutcome.FAILED
            if self._cancelled:
                return BuildOutcome.CANCELLED
            if self._warnings:
                return BuildOutcome.SUCCESS_WITH_WARNINGS
            return BuildOutcome.SUCCESS

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return (
            f"BuildReport({self.outcome.value}, {len(self._warnings)} warnings, "
            f"{len(self._errors)} errors)"
        )
