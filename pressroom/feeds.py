"""Built-in feed generation for Pressroom.

When no template exists for a non-HTML output format, the template engine
falls back to one of these generators: RSS 2.0, JSON Feed 1.1 or a
sitemaps.org sitemap. Generators work from the same scope model a template
would receive.

Output is deterministic: items are ordered newest first and the only
timestamps written come from the documents themselves, never from the clock,
so rebuilding unchanged content yields byte-identical feeds.

Classes:
    FeedGenerator: Base class for feed generators.
    RSSGenerator: Generates RSS 2.0 feeds.
    JSONFeedGenerator: Generates JSON Feed 1.1 documents.
    SitemapGenerator: Generates sitemap.xml files.
    FeedRegistry: Looks up a generator for an output format.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from email.utils import format_datetime
from typing import TYPE_CHECKING, Any
from xml.sax.saxutils import escape, quoteattr

from .html_utils import absolutize_html_urls

if TYPE_CHECKING:
    from .content import Document
    from .outputs import OutputFormat


def feed_items(model: Mapping[str, Any]) -> Sequence[Document]:
    """Return the documents a feed lists, newest first, capped at the feed limit."""
    documents = list(model.get("documents") or [])
    limit = model["site"].config.feed_limit
    return documents if limit < 0 else documents[:limit]


class FeedGenerator(ABC):
    """Abstract base class for feed generators."""

    @abstractmethod
    def generate(self, model: Mapping[str, Any]) -> str:
        """Generate feed content from a scope model.

        Args:
            model: Scope model with ``site``, ``title``, ``permalink``,
                ``url``, ``documents`` and ``output_format`` keys.

        Returns:
            Feed content as a string.
        """
        ...


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed of the scope's documents."""

    def generate(self, model: Mapping[str, Any]) -> str:
        site = model["site"]
        config = site.config
        output_format: OutputFormat = model["output_format"]
        items = feed_items(model)
        title = model["title"]
        channel_title = title if title == config.title else f"{title} on {config.title}"
        description = config.params.get("description") or f"Recent content on {channel_title}"

        lines = [
            '<?xml version="1.0" encoding="utf-8" standalone="yes"?>',
            '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">',
            "  <channel>",
            f"    <title>{escape(channel_title)}</title>",
            f"    <link>{escape(model['url'])}</link>",
            f"    <description>{escape(str(description))}</description>",
            f"    <language>{escape(config.language_code)}</language>",
        ]
        if items:
            newest = max(doc.lastmod for doc in items)
            lines.append(f"    <lastBuildDate>{format_datetime(newest)}</lastBuildDate>")
        lines.append(
            f"    <atom:link href={quoteattr(model['feed_url'])} rel=\"self\" "
            f"type={quoteattr(output_format.media_type)} />"
        )
        for doc in items:
            link = config.absolute_url(doc.permalink)
            lines.extend(
                [
                    "    <item>",
                    f"      <title>{escape(doc.title)}</title>",
                    f"      <link>{escape(link)}</link>",
                    f"      <pubDate>{format_datetime(doc.date)}</pubDate>",
                    f"      <guid>{escape(link)}</guid>",
                    f"      <description>{escape(doc.summary)}</description>",
                ]
            )
            for tag in doc.tags:
                lines.append(f"      <category>{escape(tag)}</category>")
            lines.append("    </item>")
        lines.extend(["  </channel>", "</rss>", ""])
        return "\n".join(lines)


class JSONFeedGenerator(FeedGenerator):
    """Generates a JSON Feed 1.1 document of the scope's documents."""

    version = "https://jsonfeed.org/version/1.1"

    def generate(self, model: Mapping[str, Any]) -> str:
        site = model["site"]
        config = site.config
        feed: dict[str, Any] = {
            "version": self.version,
            "title": model["title"],
            "home_page_url": model["url"],
            "feed_url": model["feed_url"],
            "language": config.language_code,
        }
        description = config.params.get("description")
        if description:
            feed["description"] = str(description)
        author = config.params.get("author")
        if isinstance(author, str) and author:
            feed["authors"] = [{"name": author}]
        items = []
        for doc in feed_items(model):
            link = config.absolute_url(doc.permalink)
            item: dict[str, Any] = {
                "id": link,
                "url": link,
                "title": doc.title,
                "content_html": absolutize_html_urls(doc.content, config.base_url),
                "summary": doc.summary,
                "date_published": doc.date.isoformat(),
            }
            if doc.lastmod != doc.date:
                item["date_modified"] = doc.lastmod.isoformat()
            if doc.tags:
                item["tags"] = list(doc.tags)
            items.append(item)
        feed["items"] = items
        return json.dumps(feed, indent=2, ensure_ascii=False) + "\n"


class SitemapGenerator(FeedGenerator):
    """Generates sitemap.xml listing every page and listing of the site.

    Uses the ``entries`` key of the model: (permalink, lastmod or None) pairs.
    """

    def generate(self, model: Mapping[str, Any]) -> str:
        config = model["site"].config
        lines = [
            '<?xml version="1.0" encoding="utf-8" standalone="yes"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        ]
        for permalink, lastmod in sorted(model["entries"], key=lambda e: e[0]):
            lines.append("  <url>")
            lines.append(f"    <loc>{escape(config.absolute_url(permalink))}</loc>")
            if lastmod is not None:
                lines.append(f"    <lastmod>{lastmod.date().isoformat()}</lastmod>")
            lines.append("  </url>")
        lines.extend(["</urlset>", ""])
        return "\n".join(lines)


class FeedRegistry:
    """Maps output format names to feed generators."""

    def __init__(self) -> None:
        self._generators: dict[str, FeedGenerator] = {}

    def register(self, format_name: str, generator: FeedGenerator) -> None:
        self._generators[format_name.upper()] = generator

    def get(self, output_format: OutputFormat) -> FeedGenerator | None:
        return self._generators.get(output_format.name.upper())


def create_default_feed_registry() -> FeedRegistry:
    """Create a registry with the RSS, JSON and sitemap generators."""
    registry = FeedRegistry()
    registry.register("RSS", RSSGenerator())
    registry.register("JSON", JSONFeedGenerator())
    registry.register("SITEMAP", SitemapGenerator())
    return registry
