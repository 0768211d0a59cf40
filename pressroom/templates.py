"""Template rendering engine for Pressroom.

This module uses Jinja2 to render artifacts. Templates are looked up in the
project's layout directory first, then in the active theme's ``layouts``
directory. When no template exists for a feed format, the built-in feed
generators are used; HTML without any template falls back to a minimal
built-in page.

Key class:
- TemplateEngine: Implements the TemplateRenderer protocol.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    Template,
    TemplateError,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)
from markupsafe import Markup

from .errors import FetchError, RenderError
from .feeds import FeedRegistry, create_default_feed_registry
from .html_utils import join_root_url
from .outputs import Scope
from .protocols import TemplateOptions
from .renderers import MarkdownRenderer

if TYPE_CHECKING:
    from .config import SiteConfig
    from .menus import Menu
    from .remote import RemoteDataCache

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_HTML_TEMPLATE", "TemplateEngine", "layout_candidates", "make_autoescape"]

_PLAIN_TEXT_SUFFIXES = (".json", ".txt", ".csv", ".ics")

DEFAULT_HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="{{ site.config.language_code }}">
<head>
<meta charset="utf-8">
<title>{% if title and title != site.title %}{{ title }} | {% endif %}{{ site.title }}</title>
<link rel="canonical" href="{{ url }}">
{% for alt in alternatives %}<link rel="{{ alt.rel }}" type="{{ alt.media_type }}" href="{{ alt.url }}">
{% endfor %}</head>
<body>
{% if menus.main %}<nav><ul>
{% for entry in menus.main.roots() %}<li><a href="{{ entry.url }}">{{ entry.name }}</a></li>
{% endfor %}</ul></nav>
{% endif %}<main>
<h1>{{ title }}</h1>
{% if document %}<time datetime="{{ document.date.isoformat() }}">{{ document.date.strftime('%Y-%m-%d') }}</time>
{% endif %}{{ content }}
{% if terms is not none %}<ul>
{% for term in terms %}<li><a href="{{ taxonomy.path_for(term) }}">{{ term }}</a> ({{ taxonomy[term] | length }})</li>
{% endfor %}</ul>
{% elif documents is not none %}<ul>
{% for doc in documents %}<li><a href="{{ doc.permalink }}">{{ doc.title }}</a> <time datetime="{{ doc.date.isoformat() }}">{{ doc.date.strftime('%Y-%m-%d') }}</time></li>
{% endfor %}</ul>
{% endif %}</main>
</body>
</html>
"""


def make_autoescape(plain_text_suffixes: Iterable[str] = ()):
    """Return a Jinja autoescape callback.

    Templates for plain-text formats (``{name}.{suffix}.jinja``) render
    without HTML escaping; everything else is escaped.
    """
    endings = tuple(
        f"{suffix}.jinja"
        for suffix in {*_PLAIN_TEXT_SUFFIXES, *(f".{s.lower()}" for s in plain_text_suffixes)}
    )

    def autoescape(template_name: str | None) -> bool:
        if template_name is None:
            return True
        return not template_name.lower().endswith(endings)

    return autoescape


def layout_candidates(scope: Scope, options: TemplateOptions) -> list[str]:
    """Return layout names to try for a scope, most specific first.

    A term listing with no explicit layout tries ``term``, ``list`` and
    ``default``.
    """
    names: list[str] = []
    if options.layout:
        names.append(options.layout)
    if scope is Scope.HOME:
        names += ["index", "home", "list"]
    elif scope is Scope.SECTION:
        if options.section:
            names.append(f"section/{options.section}")
        names += ["section", "list"]
    elif scope is Scope.TAXONOMY:
        names += ["taxonomy", "list"]
    elif scope is Scope.TERM:
        names += ["term", "list"]
    elif scope is Scope.PAGE:
        if options.content_type:
            names.append(f"{options.content_type}/single")
        if options.section and options.section != options.content_type:
            names.append(f"{options.section}/single")
        names.append("single")
    elif scope is Scope.SITEMAP:
        return ["sitemap"]
    names.append("default")
    return list(dict.fromkeys(names))


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        config: Site configuration.
        env: Jinja2 environment.
        search_paths: Layout directories, project first, then theme.
    """

    def __init__(
        self,
        config: SiteConfig,
        menus: Mapping[str, Menu] | None = None,
        data_cache: RemoteDataCache | None = None,
        markdown: MarkdownRenderer | None = None,
        feed_registry: FeedRegistry | None = None,
    ):
        self.config = config
        self.menus = dict(menus or {})
        self.data_cache = data_cache
        self.markdown = markdown or MarkdownRenderer(config.markup)
        self.feed_registry = feed_registry or create_default_feed_registry()
        self.search_paths: list[Path] = [config.layout_dir]
        if config.theme:
            self.search_paths.append(config.themes_dir / config.theme / "layouts")
        plain_text = [fmt.suffix for fmt in config.output_formats.values() if fmt.is_plain_text]
        self.env = Environment(
            loader=FileSystemLoader([str(p) for p in self.search_paths]),
            autoescape=make_autoescape(plain_text),
            keep_trailing_newline=True,
        )
        self._install_globals()

    def _install_globals(self) -> None:
        """Install global variables and functions in the Jinja environment."""
        self.env.globals["menus"] = self.menus
        self.env.globals["params"] = self.config.params
        self.env.globals["url_for"] = self._url_for
        self.env.globals["get_json"] = self._get_json
        self.env.globals["get_remote"] = self._get_remote
        self.env.globals["pygments_css"] = self.markdown.stylesheet

    def _url_for(self, path: str) -> str:
        """Return the absolute URL of a site path."""
        if path.startswith(("http://", "https://", "//")):
            return path
        return join_root_url(self.config.base_url, path if path.startswith("/") else f"/{path}")

    def _get_json(self, url: str) -> Any:
        if self.data_cache is None:
            raise RuntimeError("remote data is not available in this build")
        return self.data_cache.get_json(url)

    def _get_remote(self, url: str) -> str:
        if self.data_cache is None:
            raise RuntimeError("remote data is not available in this build")
        return self.data_cache.get_text(url)

    def find_template(self, scope: Scope, options: TemplateOptions) -> Template | None:
        """Find the most specific template for a scope and format."""
        suffix = options.output_format.suffix
        for name in layout_candidates(scope, options):
            if options.output_format.is_html:
                filenames = [f"{name}.html.jinja", f"{name}.jinja", f"{name}.html"]
            else:
                filenames = [f"{name}.{suffix}.jinja"]
            for filename in filenames:
                try:
                    return self.env.get_template(filename)
                except TemplateNotFound:
                    continue
        return None

    def _context(self, model: Mapping[str, Any]) -> dict[str, Any]:
        context = dict(model)
        context.setdefault("document", None)
        context.setdefault("documents", None)
        context.setdefault("terms", None)
        context.setdefault("alternatives", [])
        context["content"] = Markup(model.get("content") or "")
        return context

    def render(
        self,
        scope: Scope,
        model: Mapping[str, Any],
        options: TemplateOptions,
    ) -> bytes:
        """Render one artifact.

        Raises:
            RenderError: If no template applies or the template fails.
            FetchError: If the template's remote data lookup fails.
        """
        artifact = str(model.get("output_path") or model.get("permalink") or scope.value)
        output_format = options.output_format
        try:
            template = self.find_template(scope, options)
            if template is None:
                generator = self.feed_registry.get(output_format)
                if generator is not None:
                    return generator.generate(model).encode("utf-8")
                if not output_format.is_html:
                    raise RenderError(
                        artifact, f"no template found for output format {output_format.name}"
                    )
                logger.debug("No layout for %s; using the built-in page", artifact)
                template = self.env.from_string(DEFAULT_HTML_TEMPLATE)
            return template.render(self._context(model)).encode("utf-8")
        except (FetchError, RenderError):
            raise
        except TemplateSyntaxError as exc:
            raise RenderError(
                artifact,
                f"template syntax error in {exc.name or '<string>'} on line {exc.lineno}: {exc.message}",
                exc,
            ) from exc
        except UndefinedError as exc:
            raise RenderError(artifact, f"undefined variable: {exc.message}", exc) from exc
        except TemplateError as exc:
            raise RenderError(artifact, f"{type(exc).__name__}: {exc}", exc) from exc
        except Exception as exc:
            raise RenderError(artifact, f"{type(exc).__name__}: {exc}", exc) from exc
