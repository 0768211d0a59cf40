"""Content loading for Pressroom.

This module discovers content files under the content directory, parses their
front matter and creates Document objects. Section index files (``_index.md``)
carry metadata for listing pages and are kept apart from regular documents.

Key classes:
- Document: One content unit with its derived fields.
- ListingMeta: Title, body and front matter of a section or home listing.
- FileContentLoader: Discovers content files.
- DocumentBuilder: Builds a Document from one file.
- ContentProcessor: Loads the whole tree, skipping malformed files.

Loading is best-effort: a file with malformed front matter is skipped and
recorded as a warning in the build report, and the rest of the tree loads.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .errors import ParseError
from .extractors import CompositeMetadataExtractor
from .utils import as_utc, is_markdown, parse_timestamp, titleize

if TYPE_CHECKING:
    from .config import SiteConfig
    from .report import BuildReport

logger = logging.getLogger(__name__)

SECTION_INDEX = "_index"


@dataclass(eq=False)
class Document:
    """A content unit and its derived fields.

    Documents compare by identity: listings and taxonomies hold references
    to the same objects rather than copies.

    Attributes:
        source_path: Path to the source file.
        kind: "page" for documents at the content root, "post" inside a section.
        title: Human-readable title.
        date: Publication timestamp (aware, UTC).
        tags: Classification terms, in front matter order.
        body: Raw Markdown body, passed opaquely to the Markdown renderer.
        front_matter: All front matter fields, including unknown ones.
        sections: Section path from the content root (empty at the root).
        slug: URL slug (front matter ``slug`` or derived from the title).
        summary: Plain-text summary for listings and feeds.
        terms: Term lists for every configured taxonomy.
        draft: Whether the document is a draft.
        date_source: Where the date came from: "frontmatter", "filename" or "mtime".
        content: Rendered HTML body, filled in before output.
    """

    source_path: Path
    kind: str
    title: str
    date: datetime
    tags: tuple[str, ...]
    body: str
    front_matter: Mapping[str, Any]
    sections: tuple[str, ...] = ()
    slug: str = ""
    front_matter_slug: str = ""
    basename: str = ""
    summary: str = ""
    terms: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    draft: bool = False
    date_source: str = "frontmatter"
    content: str = ""
    _permalink: str | None = field(default=None, repr=False)

    @property
    def section(self) -> str:
        """Top-level section name, or an empty string at the content root."""
        return self.sections[0] if self.sections else ""

    @property
    def content_type(self) -> str:
        """Content type used for permalink lookup: front matter ``type`` or the section."""
        explicit = self.front_matter.get("type")
        if isinstance(explicit, str) and explicit.strip():
            return explicit.strip()
        return self.section or self.kind

    @property
    def layout(self) -> str | None:
        layout = self.front_matter.get("layout")
        return str(layout) if layout else None

    @property
    def permalink(self) -> str:
        if self._permalink is None:
            raise AttributeError(f"{self.source_path} has no resolved permalink")
        return self._permalink

    @property
    def url(self) -> str:
        return self.permalink

    @property
    def has_permalink(self) -> bool:
        return self._permalink is not None

    def assign_permalink(self, path: str) -> None:
        """Set the output path; it cannot change once assigned."""
        if self._permalink is not None and self._permalink != path:
            raise ValueError(
                f"{self.source_path} already resolved to {self._permalink}"
            )
        self._permalink = path

    def terms_for(self, taxonomy: str) -> tuple[str, ...]:
        """Return the terms of a taxonomy (plural name) for this document."""
        return self.terms.get(taxonomy, ())

    @property
    def lastmod(self) -> datetime:
        """Last modification: front matter ``lastmod``, else the publication date."""
        parsed = parse_timestamp(self.front_matter.get("lastmod"))
        return parsed if parsed is not None else self.date


@dataclass
class ListingMeta:
    """Metadata for a listing page, read from an ``_index.md`` file.

    Attributes:
        source_path: Path to the ``_index.md`` file.
        sections: Section path ("" tuple for the home page).
        title: Listing title.
        body: Raw Markdown body.
        front_matter: All front matter fields.
    """

    source_path: Path
    sections: tuple[str, ...]
    title: str
    body: str
    front_matter: Mapping[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return "/".join(self.sections)


@dataclass
class LoadedContent:
    """Result of loading a content tree."""

    documents: list[Document]
    listings: dict[str, ListingMeta]


class FileContentLoader:
    """Discovers content files under a content directory.

    Files and directories starting with ``.`` are ignored. Files are returned
    in sorted order so that loading is deterministic.
    """

    def __init__(self, content_dir: Path):
        self.content_dir = content_dir

    def iter_files(self) -> list[Path]:
        if not self.content_dir.is_dir():
            return []
        files: list[Path] = []
        for path in self.content_dir.rglob("*"):
            if not path.is_file():
                continue
            rel = path.relative_to(self.content_dir)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if is_markdown(path):
                files.append(path)
        return sorted(files, key=lambda p: p.relative_to(self.content_dir).as_posix())


class DocumentBuilder:
    """Builds Document objects from source files.

    Attributes:
        content_dir: Root of the content tree.
        metadata_extractor: Composite extractor for front matter fields.
    """

    def __init__(
        self,
        content_dir: Path,
        metadata_extractor: CompositeMetadataExtractor | None = None,
    ):
        self.content_dir = content_dir
        self.metadata_extractor = metadata_extractor or CompositeMetadataExtractor()

    def _location(self, path: Path) -> tuple[tuple[str, ...], str]:
        """Return (sections, basename) for a file.

        A page bundle (``posts/my-post/index.md``) is named after its
        directory and belongs to the section above it.
        """
        parts = path.relative_to(self.content_dir).parts
        if path.stem == "index" and len(parts) >= 2:
            return tuple(parts[:-2]), parts[-2]
        return tuple(parts[:-1]), path.stem

    def build(self, path: Path) -> Document | ListingMeta:
        """Build a Document, or a ListingMeta for ``_index.md`` files.

        Raises:
            ParseError: If the front matter is malformed.
        """
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(path, f"not valid UTF-8: {exc.reason}", line=None) from exc
        meta = self.metadata_extractor.extract(text, path)
        frontmatter = meta["frontmatter"]

        if path.stem == SECTION_INDEX:
            sections = tuple(path.relative_to(self.content_dir).parts[:-1])
            if "title" in frontmatter:
                title = meta["title"]
            else:
                title = titleize(sections[-1]) if sections else ""
            return ListingMeta(
                source_path=path,
                sections=sections,
                title=title,
                body=meta["body"],
                front_matter=frontmatter,
            )

        sections, basename = self._location(path)
        draft = frontmatter.get("draft", False)
        if not isinstance(draft, bool):
            raise ParseError(path, "draft must be true or false")
        terms = meta["terms"]
        return Document(
            source_path=path,
            kind="post" if sections else "page",
            title=meta["title"],
            date=as_utc(meta["date"]),
            tags=terms.get("tags", ()),
            body=meta["body"],
            front_matter=frontmatter,
            sections=sections,
            slug=meta["slug"],
            front_matter_slug=meta["front_matter_slug"],
            basename=basename,
            summary=meta["summary"],
            terms=terms,
            draft=draft,
            date_source=meta["date_source"],
        )


class ContentProcessor:
    """Loads all content files of a site.

    Attributes:
        content_dir: Root of the content tree.
        include_drafts: Whether draft documents are kept.
    """

    def __init__(
        self,
        config: SiteConfig,
        report: BuildReport,
        include_drafts: bool | None = None,
        content_loader: FileContentLoader | None = None,
        document_builder: DocumentBuilder | None = None,
    ):
        self.content_dir = config.content_dir
        self.report = report
        self.include_drafts = (
            config.build_drafts if include_drafts is None else include_drafts
        )
        taxonomies = set(config.taxonomy_names) | {"tags"}
        self._content_loader = content_loader or FileContentLoader(self.content_dir)
        self._document_builder = document_builder or DocumentBuilder(
            self.content_dir,
            CompositeMetadataExtractor(taxonomies=sorted(taxonomies)),
        )

    def load(self) -> LoadedContent:
        """Load every content file.

        Files with malformed front matter are skipped and recorded as warnings.

        Returns:
            LoadedContent with documents (in source order) and listing metadata.
        """
        documents: list[Document] = []
        listings: dict[str, ListingMeta] = {}
        for path in self._content_loader.iter_files():
            try:
                item = self._document_builder.build(path)
            except ParseError as exc:
                logger.warning("Skipping %s", exc)
                self.report.warn(
                    f"{path}:{exc.line}" if exc.line else str(path), exc.message, exc
                )
                continue
            if isinstance(item, ListingMeta):
                listings[item.key] = item
                continue
            if item.draft and not self.include_drafts:
                logger.debug("Skipping draft %s", path)
                continue
            documents.append(item)
        logger.info("Loaded %d documents from %s", len(documents), self.content_dir)
        return LoadedContent(documents=documents, listings=listings)
