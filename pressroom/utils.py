"""Utility functions for Pressroom.

This module contains small string, path and date helpers used throughout the
Pressroom codebase.

Key functions:
    slugify: Convert titles and filenames to URL slugs.
    urlize_term: Convert a taxonomy term to a path segment, keeping case.
    titleize: Convert filenames to human-readable titles.
    extract_date_from_name: Extract date from filename prefix.
    strip_date_prefix: Remove a YYYY-MM-DD- prefix from a filename stem.
    as_utc: Normalize a date or datetime to an aware UTC datetime.
    parse_duration: Parse "30s"/"1h"-style durations into seconds.
    first_paragraph: Extract a plain-text summary from Markdown.
    is_markdown: Check if a path is a Markdown file.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from pathlib import Path

_DATE_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:-|$)")
_DURATION_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(ms|s|m|h|d)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400, None: 1}
_MARKDOWN_SUFFIXES = {".md", ".markdown"}


def slugify(name: str) -> str:
    """Convert a title or filename stem to a lowercase slug.

    Args:
        name: Title or filename stem.

    Returns:
        URL-friendly slug, or an empty string if nothing usable remains.

    Examples:
        >>> slugify("Hello, World!")
        'hello-world'
    """
    cleaned = re.sub(r"[^\w]+", "-", name, flags=re.UNICODE)
    cleaned = cleaned.replace("_", "-")
    return cleaned.strip("-").lower()


def urlize_term(term: str) -> str:
    """Convert a taxonomy term to a path segment without changing its case.

    Terms are compared case-sensitively, so "Go" and "go" must keep distinct
    listing paths.
    """
    cleaned = re.sub(r"[^\w]+", "-", term, flags=re.UNICODE)
    return cleaned.strip("-") or "-"


def strip_date_prefix(stem: str) -> str:
    """Remove a YYYY-MM-DD- prefix from a filename stem, if present."""
    match = _DATE_PREFIX_RE.match(stem)
    if not match:
        return stem
    return stem[match.end() :] or stem


def titleize(filename: str) -> str:
    """Convert a filename to a human-readable title.

    Removes date prefixes (YYYY-MM-DD), replaces hyphens and underscores
    with spaces, and capitalizes each word.

    Examples:
        >>> titleize("2024-01-15-hello-world.md")
        'Hello World'
    """
    base = strip_date_prefix(Path(filename).stem)
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def extract_date_from_name(name: str) -> datetime | None:
    """Extract a UTC date from a filename with a YYYY-MM-DD prefix.

    Returns:
        Aware datetime if a valid date prefix is found, None otherwise.
    """
    match = _DATE_PREFIX_RE.match(name)
    if not match:
        return None
    try:
        year, month, day = (int(part) for part in match.groups())
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def as_utc(value: date | datetime) -> datetime:
    """Normalize a date or datetime to an aware UTC datetime.

    Naive datetimes are interpreted as UTC.
    """
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: object) -> datetime | None:
    """Parse a front matter timestamp into an aware UTC datetime.

    Accepts datetime/date objects (as produced by YAML and TOML parsers) and
    ISO 8601 strings. Returns None when the value cannot be interpreted.
    """
    if isinstance(value, (datetime, date)):
        return as_utc(value)
    if isinstance(value, str):
        text = value.strip().replace("Z", "+00:00")
        try:
            return as_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def parse_duration(value: object) -> float:
    """Parse a duration into seconds.

    Integers and floats are seconds. Strings may carry one of the suffixes
    ``ms``, ``s``, ``m``, ``h`` or ``d``.

    Raises:
        ValueError: If the value is not a recognizable duration.

    Examples:
        >>> parse_duration("1h")
        3600.0
        >>> parse_duration(-1)
        -1.0
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            amount, unit = match.groups()
            return float(amount) * _DURATION_UNITS[unit]
    raise ValueError(f"invalid duration: {value!r}")


def first_paragraph(text: str, limit: int = 160) -> str:
    """Extract and clean the first prose paragraph from Markdown text.

    Skips headings, images, code fences and rules. Strips HTML tags and
    collapses whitespace, then truncates to the specified limit.
    """
    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    for para in paragraphs:
        if para.startswith(("#", "![", "```", "~~~", "---", "<!--")):
            continue
        para = re.sub(r"<[^>]+>", "", para)
        para = re.sub(r"!?\[([^\]]*)\]\([^)]*\)", r"\1", para)
        collapsed = " ".join(para.split())
        if collapsed:
            return collapsed[:limit]
    return ""


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file (case-insensitive)."""
    return path.suffix.lower() in _MARKDOWN_SUFFIXES
