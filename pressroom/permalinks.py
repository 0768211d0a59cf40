"""Permalink resolution for Pressroom.

A permalink pattern is a path with named tokens, e.g. ``/:year/:month/:slug/``.
Patterns are configured per content type under ``permalinks``; the pattern for
a document is looked up by its front matter ``type``, then its section, then
its kind in plural form ("pages" or "posts"). Documents without a matching
pattern use a path derived from their location in the content tree.

Resolution is a pure function of the document and the configuration. After
every document has a permalink, no two sources may share an output path.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING

from .errors import PathCollisionError, PermalinkError
from .utils import slugify, strip_date_prefix

if TYPE_CHECKING:
    from .config import SiteConfig
    from .content import Document
    from .report import BuildReport

logger = logging.getLogger(__name__)

TOKEN_RE = re.compile(r":([A-Za-z_]+)")

_MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)
_WEEKDAY_NAMES = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")

SECTION_PATTERN = "/:sections/:filename/"
ROOT_PATTERN = "/:filename/"


def _filename(doc: Document) -> str:
    return slugify(strip_date_prefix(doc.basename))


TOKENS: dict[str, Callable[[Document], str]] = {
    "year": lambda doc: f"{doc.date.year:04d}",
    "month": lambda doc: f"{doc.date.month:02d}",
    "monthname": lambda doc: _MONTH_NAMES[doc.date.month - 1],
    "day": lambda doc: f"{doc.date.day:02d}",
    "weekday": lambda doc: str((doc.date.weekday() + 1) % 7),
    "weekdayname": lambda doc: _WEEKDAY_NAMES[(doc.date.weekday() + 1) % 7],
    "yearday": lambda doc: f"{doc.date.timetuple().tm_yday:03d}",
    "section": lambda doc: doc.section,
    "sections": lambda doc: "/".join(doc.sections),
    "title": lambda doc: slugify(doc.title),
    "slug": lambda doc: doc.slug,
    "filename": _filename,
    "slugorfilename": lambda doc: doc.front_matter_slug or _filename(doc),
    "contentbasename": lambda doc: doc.basename,
}

KNOWN_TOKENS = frozenset(TOKENS)


def pattern_tokens(pattern: str) -> list[str]:
    """Return the token names referenced by a permalink pattern, in order."""
    return TOKEN_RE.findall(pattern)


def normalize_path(path: str) -> str:
    """Collapse duplicate slashes and ensure a leading slash."""
    collapsed = re.sub(r"/{2,}", "/", f"/{path}")
    return collapsed


def output_key(permalink: str) -> str:
    """Return the key two permalinks collide on.

    ``/hello`` and ``/hello/`` are written to the same file, so trailing
    slashes are ignored.
    """
    return permalink.strip("/")


class PermalinkResolver:
    """Computes the canonical path of each document.

    Attributes:
        patterns: Mapping of content type or section to permalink pattern.
    """

    def __init__(self, config: SiteConfig):
        self.patterns: Mapping[str, str] = config.permalinks

    def pattern_for(self, doc: Document) -> str:
        """Return the permalink pattern that applies to a document."""
        for key in (doc.content_type, doc.section, f"{doc.kind}s"):
            if key and key in self.patterns:
                return self.patterns[key]
        return SECTION_PATTERN if doc.section else ROOT_PATTERN

    def resolve(self, doc: Document) -> str:
        """Compute the permalink of a document.

        A front matter ``url`` overrides the pattern.

        Raises:
            PermalinkError: If a referenced token has no value for this document,
                or the path has a "." or ".." segment.
        """
        override = doc.front_matter.get("url")
        if isinstance(override, str) and override.strip():
            return self._checked(doc, "url", normalize_path(override.strip()))

        pattern = self.pattern_for(doc)

        def substitute(match: re.Match) -> str:
            token = match.group(1)
            value = TOKENS[token](doc)
            if not value:
                raise PermalinkError(
                    doc.source_path,
                    token,
                    f"permalink token ':{token}' has no value (pattern '{pattern}')",
                )
            return value

        return self._checked(doc, "pattern", normalize_path(TOKEN_RE.sub(substitute, pattern)))

    @staticmethod
    def _checked(doc: Document, origin: str, path: str) -> str:
        if any(segment in (".", "..") for segment in path.split("/")):
            raise PermalinkError(
                doc.source_path,
                origin,
                f"permalink '{path}' contains a relative path segment",
            )
        return path

    def resolve_all(
        self, documents: Iterable[Document], report: BuildReport
    ) -> list[Document]:
        """Assign permalinks to all documents.

        Documents whose permalink cannot be computed are dropped and recorded
        as warnings in the report.

        Returns:
            The documents that received a permalink, in input order.
        """
        resolved: list[Document] = []
        for doc in documents:
            try:
                doc.assign_permalink(self.resolve(doc))
            except PermalinkError as exc:
                logger.warning("%s", exc)
                report.warn(str(doc.source_path), exc.message, exc)
                continue
            resolved.append(doc)
        return resolved


def check_collisions(
    documents: Iterable[Document],
    reserved: Iterable[tuple[str, str]] = (),
) -> None:
    """Verify that no two sources share a permalink.

    Args:
        documents: Documents with assigned permalinks.
        reserved: (path, label) pairs for listing pages (home, sections,
            taxonomies, terms); duplicates among them collide too.

    Raises:
        PathCollisionError: Naming both sources of the first collision found.
    """
    claims = list(reserved)
    claims += [(doc.permalink, str(doc.source_path)) for doc in documents]
    _claim_all((output_key(path), path, source) for path, source in claims)


def check_output_paths(claims: Iterable[tuple[str, str]]) -> None:
    """Verify that no two artifacts are written to the same file.

    Permalinks can differ and still name one file: a page at ``/index.xml``
    lands on the home feed. ``claims`` are (output path, source) pairs.

    Raises:
        PathCollisionError: Naming both sources of the first collision found.
    """
    _claim_all((path, path, source) for path, source in claims)


def _claim_all(claims: Iterable[tuple[str, str, str]]) -> None:
    claimed: dict[str, str] = {}
    for key, path, source in claims:
        if key in claimed:
            raise PathCollisionError(path, claimed[key], source)
        claimed[key] = source
