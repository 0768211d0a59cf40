from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .content import Document, ListingMeta

if TYPE_CHECKING:
    from .config import SiteConfig
    from .menus import Menu
    from .taxonomy import TaxonomyIndex


def recency_key(doc: Document):
    """Sort key for newest-first ordering; ties fall back to title, then source path."""
    return (-doc.date.timestamp(), doc.title, doc.source_path.as_posix())


class DocumentCollection(Sequence[Document]):
    """Lightweight helper for working with lists of Documents in templates and code."""

    def __init__(self, documents: Iterable[Document]):
        self._documents = list(documents)

    def __iter__(self) -> Iterator[Document]:
        return iter(self._documents)

    def __len__(self) -> int:
        return len(self._documents)

    def __getitem__(self, item):
        return self._documents[item]

    def section(self, name: str) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if d.section == name)

    def of_kind(self, kind: str) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if d.kind == kind)

    def with_term(self, taxonomy: str, term: str) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if term in d.terms_for(taxonomy))

    def newest_first(self) -> DocumentCollection:
        """Sort by publication date, newest first."""
        return DocumentCollection(sorted(self._documents, key=recency_key))

    def oldest_first(self) -> DocumentCollection:
        return DocumentCollection(reversed(self.newest_first()))

    def latest(self, count: int) -> DocumentCollection:
        """Return the newest ``count`` documents; a negative count means all."""
        ordered = self.newest_first()
        if count < 0:
            return ordered
        return DocumentCollection(ordered[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"DocumentCollection({len(self._documents)} documents)"


@dataclass
class Section:
    """A top-level section of the content tree and its listing.

    Attributes:
        name: Directory name of the section.
        documents: Section documents, newest first.
        meta: Listing metadata from the section's ``_index.md``, if any.
    """

    name: str
    documents: DocumentCollection
    meta: ListingMeta | None = None

    @property
    def path(self) -> str:
        return f"/{self.name}/"

    @property
    def title(self) -> str:
        if self.meta is not None and self.meta.title:
            return self.meta.title
        return self.name.replace("-", " ").replace("_", " ").title()


@dataclass
class Site:
    """Everything the output stage reads: finalized and never mutated while rendering.

    Attributes:
        config: Site configuration.
        documents: All resolved documents, newest first.
        sections: Sections by name, sorted by name.
        taxonomies: Taxonomy indexes by plural name, in configuration order.
        menus: Menus by name.
        home: Listing metadata for the home page, if any.
    """

    config: SiteConfig
    documents: DocumentCollection
    sections: Mapping[str, Section]
    taxonomies: Mapping[str, TaxonomyIndex]
    menus: Mapping[str, Menu]
    home: ListingMeta | None = None

    @property
    def posts(self) -> DocumentCollection:
        """Documents listed on the home page and in the home feeds."""
        return self.documents.of_kind("post")

    @property
    def title(self) -> str:
        return self.config.title

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def params(self) -> Mapping[str, Any]:
        return self.config.params

    def listing_paths(self) -> list[tuple[str, str]]:
        """List (path, label) for every emitted listing, duplicates included."""
        paths = [("/", "home page")]
        if self.config.is_enabled("section"):
            for section in self.sections.values():
                paths.append((section.path, f"section '{section.name}'"))
        for index in self.taxonomies.values():
            if self.config.is_enabled("taxonomy"):
                paths.append((index.path, f"taxonomy '{index.name}'"))
            if self.config.is_enabled("term"):
                for term in index:
                    paths.append((index.path_for(term), f"term '{index.name}/{term}'"))
        return paths


def group_sections(
    documents: Iterable[Document], listings: Mapping[str, ListingMeta]
) -> dict[str, Section]:
    """Group documents by top-level section, sections sorted by name."""
    grouped: dict[str, list[Document]] = {}
    for doc in documents:
        if doc.section:
            grouped.setdefault(doc.section, []).append(doc)
    for key in listings:
        if key and "/" not in key:
            grouped.setdefault(key, [])
    return {
        name: Section(
            name=name,
            documents=DocumentCollection(grouped[name]).newest_first(),
            meta=listings.get(name),
        )
        for name in sorted(grouped)
    }
