"""Markdown rendering for Pressroom.

Document bodies are rendered with mistune; fenced code blocks are highlighted
with Pygments according to the ``markup.highlight`` options. Raw HTML inside
Markdown is escaped unless ``markup.goldmark.renderer.unsafe`` is set.

Key classes:
- MarkdownRenderer: Renders a Markdown body to HTML.
"""

from __future__ import annotations

import re

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name, guess_lexer
from pygments.util import ClassNotFound

from .config import HighlightOptions, MarkupOptions
from .html_utils import escape_html


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text."""
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


def parse_hl_lines(value: str) -> list[int]:
    """Parse a ``hl_Lines`` option such as "1 3-5" into line numbers.

    Examples:
        >>> parse_hl_lines("1 3-5")
        [1, 3, 4, 5]
    """
    lines: list[int] = []
    for part in value.split():
        start, _, end = part.partition("-")
        if not start.isdigit() or (end and not end.isdigit()):
            continue
        lines.extend(range(int(start), int(end or start) + 1))
    return lines


def make_formatter(options: HighlightOptions) -> HtmlFormatter:
    """Build the Pygments formatter for a set of highlight options."""
    kwargs = {
        "style": options.style,
        "noclasses": options.no_classes,
        "cssclass": options.wrapper_class or "highlight",
        "hl_lines": parse_hl_lines(options.hl_lines),
    }
    if options.line_nos:
        kwargs["linenos"] = "table" if options.line_numbers_in_table else "inline"
        kwargs["linenostart"] = options.line_no_start
    if options.line_anchors:
        kwargs["lineanchors"] = options.line_anchors
        kwargs["anchorlinenos"] = options.anchor_line_nos
    try:
        return HtmlFormatter(**kwargs)
    except ClassNotFound:
        kwargs["style"] = "default"
        return HtmlFormatter(**kwargs)


class _HighlightRenderer(mistune.HTMLRenderer):
    """Mistune renderer with heading anchors and Pygments code blocks."""

    def __init__(self, options: MarkupOptions):
        super().__init__(escape=not options.unsafe)
        self.options = options.highlight
        self._formatter = make_formatter(self.options)
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with an auto-generated, unique id."""
        base_id = _generate_heading_id(text) or "section"
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Fenced blocks name their language in ``info``. Without a language the
        lexer is guessed only when ``guessSyntax`` is enabled.
        """
        language = (info or "").strip().split(None, 1)[0] if info else ""
        if not self.options.code_fences:
            language = ""
        code = code.expandtabs(self.options.tab_width)
        lexer = None
        try:
            if language:
                lexer = get_lexer_by_name(language, stripnl=False)
            elif self.options.guess_syntax:
                lexer = guess_lexer(code)
        except ClassNotFound:
            lexer = None
        if lexer is not None:
            return highlight(code, lexer, self._formatter)
        lang_class = f' class="language-{escape_html(language)}"' if language else ""
        return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown bodies to HTML.

    A fresh mistune parser is created per call, so one instance can be shared
    by the render worker threads.
    """

    plugins = ("strikethrough", "footnotes", "table", "url")

    def __init__(self, options: MarkupOptions | None = None):
        self.options = options or MarkupOptions()

    def render(self, body: str) -> str:
        renderer = _HighlightRenderer(self.options)
        markdown = mistune.create_markdown(renderer=renderer, plugins=list(self.plugins))
        return markdown(body)

    def stylesheet(self) -> str:
        """Return Pygments CSS for the configured style (unused with noClasses)."""
        formatter = make_formatter(self.options.highlight)
        cssclass = self.options.highlight.wrapper_class or "highlight"
        return formatter.get_style_defs(f".{cssclass}")
