"""Pressroom static site builder.

Pressroom turns a tree of Markdown documents and a declarative site
configuration into a static site: HTML pages at stable permalinks, section and
taxonomy listings, RSS and JSON feeds, and a sitemap.

The main entry point is the CLI module; ``build_site`` in the build module is
the programmatic equivalent of ``pressroom build``.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
