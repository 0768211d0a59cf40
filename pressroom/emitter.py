"""Output emission for Pressroom.

The emitter turns the finalized Site into artifacts: one per scope (home,
each section, each taxonomy and term, each document, the sitemap) and per
output format configured for that scope. Each artifact is rendered through
the template renderer and written to ``{directory}/{base name}.{suffix}``
under a staging directory.

Artifacts have no data dependencies on each other, so they are rendered on a
thread pool; workers only read the Site. A failed artifact is recorded as a
warning and the rest of the build continues, except for the home page, whose
failure fails the build.
"""

from __future__ import annotations

import logging
import posixpath
import threading
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .collections import DocumentCollection, Site
from .content import Document, ListingMeta
from .errors import FetchError, RenderError
from .outputs import OutputFormat, Scope
from .permalinks import check_output_paths
from .protocols import ContentRenderer, TemplateOptions, TemplateRenderer
from .report import BuildReport

logger = logging.getLogger(__name__)


class EmitStatus(str, Enum):
    WRITTEN = "written"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(eq=False)
class Artifact:
    """One rendition of one scope.

    Attributes:
        scope: Scope being rendered.
        output_format: Format of the artifact.
        directory: Output directory relative to the publish root ("" for the root).
        filename: File name inside the directory.
        source: Label naming what the artifact is rendered from.
        options: Options handed to the template renderer.
        model: Read-only scope model handed to the template renderer.
    """

    scope: Scope
    output_format: OutputFormat
    directory: str
    filename: str
    source: str
    options: TemplateOptions
    model: dict[str, Any] = field(default_factory=dict)

    @property
    def output_path(self) -> str:
        return posixpath.join(self.directory, self.filename) if self.directory else self.filename

    @property
    def fatal(self) -> bool:
        """A failed home page fails the build; navigation depends on it."""
        return self.scope is Scope.HOME


def locate(permalink: str, output_format: OutputFormat, primary: bool = True) -> tuple[str, str]:
    """Return (directory, filename) for a permalink in a given format.

    A permalink whose last segment has an extension (``/about.html``) names
    the file of its primary format directly; every other permalink is a
    directory holding ``{base name}.{suffix}``.
    """
    path = permalink.strip("/")
    parent, _, last = path.rpartition("/")
    if last and "." in last:
        if primary:
            return parent, last
        return posixpath.join(parent, last.rsplit(".", 1)[0]).strip("/"), output_format.filename
    return path, output_format.filename


class OutputEmitter:
    """Plans and renders the artifacts of a site.

    Attributes:
        site: The finalized site.
        renderer: Template renderer.
        markdown: Markdown renderer for document bodies.
        report: Build report receiving warnings and fatal errors.
        workers: Thread pool size (None for the executor default).
    """

    def __init__(
        self,
        site: Site,
        renderer: TemplateRenderer,
        markdown: ContentRenderer,
        report: BuildReport,
        workers: int | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self.site = site
        self.config = site.config
        self.renderer = renderer
        self.markdown = markdown
        self.report = report
        self.workers = workers
        self.cancel_event = cancel_event or threading.Event()
        self._listing_html: dict[str, str] = {}
        self._unrendered: set[int] = set()

    # -- body rendering -------------------------------------------------

    def _render_body(self, doc: Document) -> None:
        try:
            doc.content = self.markdown.render(doc.body)
        except Exception as exc:
            error = RenderError(str(doc.source_path), f"Markdown rendering failed: {exc}", exc)
            logger.warning("%s", error)
            self.report.warn(str(doc.source_path), error.message, error)
            self._unrendered.add(id(doc))

    def render_bodies(self) -> None:
        """Render the Markdown body of every document and listing.

        Each worker writes only the ``content`` of its own document.
        """
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            list(pool.map(self._render_body, self.site.documents))
        listings = [self.site.home] + [s.meta for s in self.site.sections.values()]
        for meta in listings:
            if meta is not None and meta.body.strip():
                self._render_listing(meta)

    def _render_listing(self, meta: ListingMeta) -> None:
        try:
            self._listing_html[meta.key] = self.markdown.render(meta.body)
        except Exception as exc:
            error = RenderError(str(meta.source_path), f"Markdown rendering failed: {exc}", exc)
            if meta.key == "":
                logger.error("%s", error)
                self.report.fail(error)
            else:
                logger.warning("%s", error)
                self.report.warn(str(meta.source_path), error.message, error)

    # -- planning -------------------------------------------------------

    def _alternatives(self, permalink: str, formats: Sequence[OutputFormat]) -> list[dict[str, str]]:
        alternatives = []
        for index, fmt in enumerate(formats):
            directory, filename = locate(permalink, fmt, primary=index == 0)
            path = posixpath.join(directory, filename) if directory else filename
            alternatives.append(
                {
                    "name": fmt.name,
                    "rel": fmt.rel,
                    "media_type": fmt.media_type,
                    "url": self.config.absolute_url(path),
                }
            )
        return alternatives

    def _scope_artifacts(
        self,
        scope: Scope,
        permalink: str,
        source: str,
        model: Mapping[str, Any],
        layout: str | None = None,
        content_type: str | None = None,
        section: str | None = None,
    ) -> list[Artifact]:
        formats = self.config.formats_for(scope)
        alternatives = self._alternatives(permalink, formats)
        artifacts = []
        for index, fmt in enumerate(formats):
            directory, filename = locate(permalink, fmt, primary=index == 0)
            artifact = Artifact(
                scope=scope,
                output_format=fmt,
                directory=directory,
                filename=filename,
                source=source,
                options=TemplateOptions(
                    output_format=fmt,
                    layout=layout,
                    content_type=content_type,
                    section=section,
                ),
            )
            artifact.model = {
                "scope": scope.value,
                "site": self.site,
                "permalink": permalink,
                "url": self.config.absolute_url(permalink),
                "feed_url": self.config.absolute_url(artifact.output_path),
                "output_path": artifact.output_path,
                "output_format": fmt,
                "alternatives": alternatives,
                **model,
            }
            artifacts.append(artifact)
        return artifacts

    def _listing_model(self, key: str, title: str, documents: DocumentCollection) -> dict[str, Any]:
        meta = self.site.home if key == "" else self.site.sections[key].meta
        return {
            "title": meta.title if meta is not None and meta.title else title,
            "documents": documents,
            "content": self._listing_html.get(key, ""),
            "params": meta.front_matter if meta is not None else {},
        }

    def plan(self) -> list[Artifact]:
        """List every artifact of the build in a deterministic order.

        Raises:
            PathCollisionError: If two artifacts would be written to one file.
        """
        site = self.site
        artifacts = self._scope_artifacts(
            Scope.HOME,
            "/",
            "home page",
            self._listing_model("", site.title, site.posts),
        )
        if self.config.is_enabled(Scope.SECTION):
            for section in site.sections.values():
                artifacts += self._scope_artifacts(
                    Scope.SECTION,
                    section.path,
                    f"section '{section.name}'",
                    {**self._listing_model(section.name, section.title, section.documents), "section": section},
                    section=section.name,
                )
        for index in site.taxonomies.values():
            if self.config.is_enabled(Scope.TAXONOMY):
                tagged = DocumentCollection(
                    doc for doc in site.documents if doc.terms_for(index.name)
                )
                artifacts += self._scope_artifacts(
                    Scope.TAXONOMY,
                    index.path,
                    f"taxonomy '{index.name}'",
                    {
                        "title": index.name.capitalize(),
                        "taxonomy": index,
                        "terms": list(index),
                        "documents": tagged,
                    },
                )
            if self.config.is_enabled(Scope.TERM):
                for term in index:
                    artifacts += self._scope_artifacts(
                        Scope.TERM,
                        index.path_for(term),
                        f"term '{index.name}/{term}'",
                        {"title": term, "taxonomy": index, "term": term, "documents": index[term]},
                    )
        if self.config.is_enabled(Scope.PAGE):
            for doc in sorted(site.documents, key=lambda d: d.permalink):
                if id(doc) in self._unrendered:
                    continue
                artifacts += self._scope_artifacts(
                    Scope.PAGE,
                    doc.permalink,
                    str(doc.source_path),
                    {
                        "title": doc.title,
                        "document": doc,
                        "content": doc.content,
                        "params": doc.front_matter,
                    },
                    layout=doc.layout,
                    content_type=doc.content_type,
                    section=doc.section or None,
                )
        if self.config.is_enabled(Scope.SITEMAP):
            artifacts += self._scope_artifacts(
                Scope.SITEMAP,
                "/",
                "sitemap",
                {"title": site.title, "entries": self._sitemap_entries()},
            )
        check_output_paths((a.output_path, a.source) for a in artifacts)
        return artifacts

    def _sitemap_entries(self) -> list[tuple[str, Any]]:
        entries: list[tuple[str, Any]] = []
        if self.config.is_enabled(Scope.PAGE):
            entries += [(doc.permalink, doc.lastmod) for doc in self.site.documents]
        newest = self.site.documents[0].lastmod if self.site.documents else None
        entries.append(("/", newest))
        if self.config.is_enabled(Scope.SECTION):
            for section in self.site.sections.values():
                lastmod = section.documents[0].lastmod if section.documents else None
                entries.append((section.path, lastmod))
        return entries

    # -- emission -------------------------------------------------------

    def _emit_one(self, artifact: Artifact, staging_dir: Path) -> EmitStatus:
        if self.cancel_event.is_set() or self.report.failed:
            return EmitStatus.SKIPPED
        target = (staging_dir / artifact.output_path).resolve()
        try:
            if not target.is_relative_to(staging_dir.resolve()):
                raise RenderError(artifact.output_path, "output path escapes the publish directory")
            data = self.renderer.render(artifact.scope, artifact.model, artifact.options)
        except (RenderError, FetchError) as exc:
            if artifact.fatal:
                logger.error("Rendering %s failed: %s", artifact.output_path, exc)
                self.report.fail(exc)
            else:
                logger.warning("Skipping %s: %s", artifact.output_path, exc)
                self.report.warn(artifact.output_path, str(exc), exc)
            return EmitStatus.FAILED
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return EmitStatus.WRITTEN

    def emit(self, artifacts: Sequence[Artifact], staging_dir: Path) -> list[str]:
        """Render and write artifacts into the staging directory.

        Once cancellation is requested or a fatal error is recorded, workers
        stop starting new renders; renders already running finish.

        Returns:
            Output paths written, in plan order.
        """
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(self._emit_one, a, staging_dir) for a in artifacts]
            statuses = [future.result() for future in futures]
        written = [
            artifact.output_path
            for artifact, status in zip(artifacts, statuses)
            if status is EmitStatus.WRITTEN
        ]
        logger.info("Wrote %d of %d artifacts", len(written), len(artifacts))
        return written
