"""Error taxonomy for Pressroom.

Every error raised by the build pipeline inherits from PressroomError and
carries the identifier of the source it refers to (a file path, a URL or an
output artifact), so the build report can list problems by source.

Classes:
    PressroomError: Base class for all Pressroom errors.
    ConfigError: Invalid or incomplete site configuration (fatal).
    ParseError: Malformed front matter in one content file (recoverable).
    PermalinkError: A permalink token without a value (recoverable).
    PathCollisionError: Two sources resolve to one output path (fatal).
    RenderError: The templating collaborator failed for one artifact.
    FetchError: A remote data fetch failed.
"""

from __future__ import annotations

from pathlib import Path


class PressroomError(Exception):
    """Base error for all Pressroom operations."""


class ConfigError(PressroomError):
    """Invalid or missing configuration.

    Attributes:
        source_path: Configuration file the error was found in, if known.
        message: Human-readable error message.
    """

    def __init__(self, message: str, source_path: Path | None = None):
        self.source_path = source_path
        self.message = message
        prefix = f"{source_path}: " if source_path else ""
        super().__init__(f"{prefix}{message}")


class ParseError(PressroomError):
    """Malformed front matter in a content file.

    Attributes:
        source_path: Path to the content file.
        line: 1-based line number of the problem, if known.
        message: Human-readable error message.
    """

    def __init__(self, source_path: Path, message: str, line: int | None = None):
        self.source_path = source_path
        self.line = line
        self.message = message
        location = f"{source_path}:{line}" if line else str(source_path)
        super().__init__(f"{location}: {message}")


class PermalinkError(PressroomError):
    """A permalink pattern references a token the document cannot supply."""

    def __init__(self, source_path: Path, token: str, message: str):
        self.source_path = source_path
        self.token = token
        self.message = message
        super().__init__(f"{source_path}: {message}")


class PathCollisionError(PressroomError):
    """Two sources resolved to the same output path.

    Attributes:
        path: The contested output path.
        first: Identifier of the source that claimed the path first.
        second: Identifier of the source that collided with it.
    """

    def __init__(self, path: str, first: str, second: str):
        self.path = path
        self.first = first
        self.second = second
        super().__init__(f"{first} and {second} both resolve to {path}")


class RenderError(PressroomError):
    """The templating collaborator failed to render one artifact.

    Attributes:
        artifact: Identifier of the artifact (its output path).
        message: Human-readable error message.
        original_error: The exception raised by the collaborator, if any.
    """

    def __init__(
        self,
        artifact: str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.artifact = artifact
        self.message = message
        self.original_error = original_error
        super().__init__(f"{artifact}: {message}")


class FetchError(PressroomError):
    """A remote data fetch failed.

    Attributes:
        url: The URL that was requested.
        error_ids: Error identifiers matched against ``ignoreErrors``.
        message: Human-readable error message.
        status: HTTP status code, when the server answered.
    """

    def __init__(
        self,
        url: str,
        error_ids: tuple[str, ...],
        message: str,
        status: int | None = None,
    ):
        self.url = url
        self.error_ids = error_ids
        self.message = message
        self.status = status
        super().__init__(f"{url}: {message}")

    def is_suppressed(self, ignored: frozenset[str] | set[str]) -> bool:
        """Return True if any of this error's identifiers is ignored."""
        return any(error_id in ignored for error_id in self.error_ids)
