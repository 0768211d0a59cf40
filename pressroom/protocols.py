"""Protocol definitions for Pressroom.

The build core talks to its collaborators through these narrow interfaces:
the Markdown renderer turns a raw body into HTML, and the template renderer
turns a resolved scope model into the bytes of one artifact. Neither the
output emitter nor the pipeline depends on a concrete engine.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .outputs import OutputFormat, Scope


@dataclass(frozen=True)
class TemplateOptions:
    """Per-artifact options handed to the template renderer.

    Attributes:
        output_format: Format being rendered.
        layout: Explicit layout requested by front matter, if any.
        content_type: Content type of the document (page scope only).
        section: Section name, for section and page scopes.
    """

    output_format: OutputFormat
    layout: str | None = None
    content_type: str | None = None
    section: str | None = None


@runtime_checkable
class ContentRenderer(Protocol):
    """Renders a raw document body to HTML."""

    @abstractmethod
    def render(self, body: str) -> str:
        """Render a raw body.

        Args:
            body: Raw body text from the content file.

        Returns:
            HTML fragment.
        """
        ...


@runtime_checkable
class TemplateRenderer(Protocol):
    """Renders one artifact of a scope.

    Implementations raise RenderError for template problems and let
    FetchError from remote data lookups propagate unchanged, so the emitter
    can tell the two apart.
    """

    @abstractmethod
    def render(
        self,
        scope: Scope,
        model: Mapping[str, Any],
        options: TemplateOptions,
    ) -> bytes:
        """Render an artifact.

        Args:
            scope: Scope of the artifact (home, section, taxonomy, term, page, sitemap).
            model: Read-only model of the scope (documents, titles, URLs).
            options: Output format and layout hints.

        Returns:
            Encoded artifact content.
        """
        ...
