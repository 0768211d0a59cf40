"""Shared test fixtures for pressroom."""

from __future__ import annotations

from pathlib import Path

import pytest

BASE_CONFIG = """\
baseURL = "https://example.org/"
title = "Example Site"
languageCode = "en-us"
"""


def write(path: Path, text: str) -> Path:
    """Write a file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def post(title: str, date: str, tags: list[str] | None = None, body: str = "Body text.") -> str:
    """Return a Markdown document with YAML front matter."""
    lines = ["---", f"title: {title}", f"date: {date}"]
    if tags:
        lines.append(f"tags: [{', '.join(tags)}]")
    lines += ["---", "", body, ""]
    return "\n".join(lines)


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    """Create a small project: config, a root page and two dated posts."""
    root = tmp_path / "site"
    write(root / "hugo.toml", BASE_CONFIG)
    write(root / "content" / "about.md", "---\ntitle: About\n---\n\nAbout this site.\n")
    write(
        root / "content" / "posts" / "first.md",
        post("First Post", "2024-01-10", ["python", "web"]),
    )
    write(
        root / "content" / "posts" / "second.md",
        post("Second Post", "2024-02-20", ["python"]),
    )
    return root
