"""Taxonomy indexing for Pressroom.

A taxonomy groups documents by classification terms (e.g. tags). Terms are
matched exactly and case-sensitively: "Python" and "python" are two terms with
two listing pages. Every configured taxonomy gets an index, even when no
document uses it, so an empty listing page can still be rendered.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING

from .collections import DocumentCollection, recency_key
from .content import Document
from .utils import urlize_term

if TYPE_CHECKING:
    from .config import SiteConfig


class TaxonomyIndex(Mapping[str, DocumentCollection]):
    """Mapping of term to the documents classified under it.

    Documents within a term are ordered newest first. Terms are ordered by
    first appearance when walking documents newest first.

    Attributes:
        name: Plural taxonomy name, also the front matter field (e.g. "tags").
        singular: Singular name (e.g. "tag").
    """

    def __init__(self, name: str, singular: str, mapping: Mapping[str, Iterable[Document]]):
        self.name = name
        self.singular = singular
        self._terms = {term: DocumentCollection(docs) for term, docs in mapping.items()}

    def __getitem__(self, term: str) -> DocumentCollection:
        return self._terms[term]

    def __iter__(self) -> Iterator[str]:
        return iter(self._terms)

    def __len__(self) -> int:
        return len(self._terms)

    @property
    def path(self) -> str:
        return f"/{self.name}/"

    def path_for(self, term: str) -> str:
        return f"/{self.name}/{urlize_term(term)}/"

    def alphabetical(self) -> list[str]:
        return sorted(self._terms)

    def by_count(self) -> list[str]:
        """Terms with the most documents first, ties alphabetical."""
        return sorted(self._terms, key=lambda term: (-len(self._terms[term]), term))

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TaxonomyIndex({self.name!r}, {len(self._terms)} terms)"


def build_taxonomy(name: str, singular: str, documents: Iterable[Document]) -> TaxonomyIndex:
    """Build the index for one taxonomy."""
    mapping: dict[str, list[Document]] = {}
    for doc in sorted(documents, key=recency_key):
        for term in doc.terms_for(name):
            mapping.setdefault(term, []).append(doc)
    return TaxonomyIndex(name, singular, mapping)


def build_taxonomies(
    config: SiteConfig, documents: Iterable[Document]
) -> dict[str, TaxonomyIndex]:
    """Build an index for every configured taxonomy, in configuration order."""
    documents = list(documents)
    return {
        plural: build_taxonomy(plural, singular, documents)
        for singular, plural in config.taxonomies.items()
    }
