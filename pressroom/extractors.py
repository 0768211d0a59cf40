"""Metadata extractors for Pressroom.

This module splits front matter from a content file and derives the typed
document fields from it. Each extractor handles a single field, falling back
to a documented default when the front matter does not supply a value.

Key classes:
- FrontmatterExtractor: Splits YAML (``---``) or TOML (``+++``) front matter from the body.
- TitleExtractor: Front matter title, else first heading, else filename.
- DateExtractor: Front matter date, else filename prefix, else file modification time.
- TermExtractor: Taxonomy term lists (e.g. ``tags``).
- SlugExtractor: Front matter slug, else the slugified title.
- SummaryExtractor: Front matter summary/description, else first paragraph.
- CompositeMetadataExtractor: Runs all of the above in order.
"""

from __future__ import annotations

import re
import tomllib
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from .errors import ParseError
from .utils import (
    extract_date_from_name,
    first_paragraph,
    parse_timestamp,
    slugify,
    titleize,
)

YAML_FENCE = "---"
TOML_FENCE = "+++"
_TOML_LINE_RE = re.compile(r"line (\d+)")


def _field_line(raw: str, key: str) -> int | None:
    """Return the 1-based line of a key inside a front matter block."""
    pattern = re.compile(rf"^\s*['\"]?{re.escape(key)}['\"]?\s*[:=]", re.IGNORECASE)
    for number, line in enumerate(raw.splitlines(), start=1):
        if pattern.match(line):
            # +1 for the opening fence
            return number + 1
    return None


def extract_frontmatter(text: str, path: Path) -> tuple[dict[str, Any], str, str]:
    """Split front matter from a content file.

    Args:
        text: Raw file content.
        path: Path to the source file, for error reporting.

    Returns:
        Tuple of (front matter mapping, body, raw front matter text).

    Raises:
        ParseError: If the front matter is unterminated, undecodable or not a mapping.
    """
    lines = text.splitlines(keepends=True)
    if not lines:
        return {}, text, ""
    fence = lines[0].strip()
    if fence not in (YAML_FENCE, TOML_FENCE):
        return {}, text, ""
    for index in range(1, len(lines)):
        if lines[index].strip() == fence:
            break
    else:
        raise ParseError(path, f"front matter opened with '{fence}' is never closed", line=1)

    raw = "".join(lines[1:index])
    body = "".join(lines[index + 1 :])
    if fence == YAML_FENCE:
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            line = mark.line + 2 if mark is not None else 1
            problem = getattr(exc, "problem", None) or str(exc)
            raise ParseError(path, f"invalid YAML front matter: {problem}", line=line) from exc
    else:
        try:
            data = tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            line = getattr(exc, "lineno", None)
            if line is None:
                match = _TOML_LINE_RE.search(str(exc))
                line = int(match.group(1)) if match else None
            line = line + 1 if line else 1
            raise ParseError(path, f"invalid TOML front matter: {exc}", line=line) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ParseError(path, "front matter must be a key/value mapping", line=2)
    return data, body, raw


class FrontmatterExtractor:
    """Splits front matter from the body."""

    def extract(self, text: str, path: Path) -> dict[str, Any]:
        frontmatter, body, raw = extract_frontmatter(text, path)
        return {"frontmatter": frontmatter, "body": body, "raw_frontmatter": raw}


class TitleExtractor:
    """Extracts the title.

    Uses the front matter ``title``, then the first level-1 heading
    (``# Title``) of the body, then the titleized filename.
    """

    def extract(self, meta: dict[str, Any], path: Path) -> dict[str, Any]:
        title = meta["frontmatter"].get("title")
        if title is not None:
            if not isinstance(title, str):
                raise ParseError(
                    path,
                    "title must be a string",
                    line=_field_line(meta["raw_frontmatter"], "title"),
                )
            return {"title": title.strip()}
        for line in meta["body"].splitlines():
            stripped = line.strip()
            if stripped.startswith("# "):
                return {"title": stripped[2:].strip()}
        stem = path.parent.name if path.stem == "index" else path.name
        return {"title": titleize(stem)}


class DateExtractor:
    """Extracts the publication date.

    Uses the front matter ``date``, then a YYYY-MM-DD filename prefix, then
    the file modification time. Naive timestamps are taken as UTC.
    """

    def extract(self, meta: dict[str, Any], path: Path) -> dict[str, Any]:
        raw = meta["frontmatter"].get("date")
        if raw is not None:
            date = parse_timestamp(raw)
            if date is None:
                raise ParseError(
                    path,
                    f"cannot parse date {raw!r}",
                    line=_field_line(meta["raw_frontmatter"], "date"),
                )
            return {"date": date, "date_source": "frontmatter"}
        date = extract_date_from_name(path.stem)
        if date is not None:
            return {"date": date, "date_source": "filename"}
        mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        return {"date": mtime, "date_source": "mtime"}


class TermExtractor:
    """Extracts taxonomy term lists.

    A single string is accepted as a one-term list. Terms keep their case and
    order; repeats within one document are dropped.
    """

    def __init__(self, taxonomies: Iterable[str] = ("tags",)):
        self.taxonomies = tuple(taxonomies)

    def extract(self, meta: dict[str, Any], path: Path) -> dict[str, Any]:
        terms: dict[str, tuple[str, ...]] = {}
        for name in self.taxonomies:
            raw = meta["frontmatter"].get(name)
            if raw is None:
                terms[name] = ()
                continue
            if isinstance(raw, str):
                raw = [raw]
            if not isinstance(raw, list) or not all(isinstance(t, str) for t in raw):
                raise ParseError(
                    path,
                    f"{name} must be a list of strings",
                    line=_field_line(meta["raw_frontmatter"], name),
                )
            unique: list[str] = []
            for term in raw:
                term = term.strip()
                if term and term not in unique:
                    unique.append(term)
            terms[name] = tuple(unique)
        return {"terms": terms}


class SlugExtractor:
    """Extracts the slug: front matter ``slug``, else the slugified title."""

    def extract(self, meta: dict[str, Any], path: Path) -> dict[str, Any]:
        raw = meta["frontmatter"].get("slug")
        if raw is not None and not isinstance(raw, str):
            raise ParseError(
                path,
                "slug must be a string",
                line=_field_line(meta["raw_frontmatter"], "slug"),
            )
        explicit = slugify(raw) if raw else ""
        return {"front_matter_slug": explicit, "slug": explicit or slugify(meta["title"])}


class SummaryExtractor:
    """Extracts a plain-text summary for listings and feeds."""

    def extract(self, meta: dict[str, Any], path: Path) -> dict[str, Any]:
        frontmatter = meta["frontmatter"]
        for key in ("summary", "description"):
            value = frontmatter.get(key)
            if isinstance(value, str) and value.strip():
                return {"summary": " ".join(value.split())}
        return {"summary": first_paragraph(meta["body"])}


class CompositeMetadataExtractor:
    """Combines the field extractors.

    The front matter is split first; each field extractor then sees the
    fields extracted before it, so later extractors can build on earlier ones
    (the slug falls back to the title).
    """

    def __init__(self, taxonomies: Iterable[str] = ("tags",), extractors: list | None = None):
        self._frontmatter = FrontmatterExtractor()
        if extractors is None:
            self._extractors = [
                TitleExtractor(),
                DateExtractor(),
                TermExtractor(taxonomies),
                SlugExtractor(),
                SummaryExtractor(),
            ]
        else:
            self._extractors = list(extractors)

    def extract(self, text: str, path: Path) -> dict[str, Any]:
        """Extract all metadata from a content file.

        Raises:
            ParseError: If the front matter or one of its typed fields is malformed.
        """
        result = self._frontmatter.extract(text, path)
        for extractor in self._extractors:
            result.update(extractor.extract(result, path))
        return result
