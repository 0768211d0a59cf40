"""Site building for Pressroom.

This module runs the build pipeline: configuration, content loading,
permalink resolution, taxonomy and menu assembly, then output emission.

Output is rendered into a staging directory next to the publish directory
and swapped into place only when the build succeeds. A failed or cancelled
build never touches the previously published site.

Key functions:
- assemble_site: Load content and resolve everything the output stage reads.
- build_site: Run a full build and return its result.
- publish: Atomically replace the publish directory with a staging directory.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path

import requests

from .collections import DocumentCollection, Site, group_sections
from .config import REMOTE_CACHE, SiteConfig, load_config
from .content import ContentProcessor
from .emitter import OutputEmitter
from .errors import ConfigError, PathCollisionError
from .menus import build_menus
from .permalinks import PermalinkResolver, check_collisions
from .protocols import TemplateRenderer
from .remote import RemoteDataCache
from .renderers import MarkdownRenderer
from .report import BuildOutcome, BuildReport
from .taxonomy import build_taxonomies
from .templates import TemplateEngine

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Result of a site build.

    Attributes:
        report: Warnings, fatal errors and the outcome.
        output_dir: Publish directory.
        site: The assembled site, when content loading got that far.
        written: Output paths written, relative to the publish directory.
        published: Whether the output was published.
    """

    report: BuildReport
    output_dir: Path
    site: Site | None = None
    written: list[str] = field(default_factory=list)
    published: bool = False

    @property
    def outcome(self) -> BuildOutcome:
        return self.report.outcome

    @property
    def documents(self) -> DocumentCollection:
        return self.site.documents if self.site is not None else DocumentCollection([])


def assemble_site(
    config: SiteConfig,
    report: BuildReport,
    include_drafts: bool | None = None,
) -> Site:
    """Load content and resolve permalinks, sections, taxonomies and menus.

    Raises:
        ConfigError: If the menu configuration is inconsistent.
        PathCollisionError: If two sources resolve to one output path.
    """
    loaded = ContentProcessor(config, report, include_drafts=include_drafts).load()
    documents = PermalinkResolver(config).resolve_all(loaded.documents, report)
    site = Site(
        config=config,
        documents=DocumentCollection(documents).newest_first(),
        sections=group_sections(documents, loaded.listings),
        taxonomies=build_taxonomies(config, documents),
        menus=build_menus(config),
        home=loaded.listings.get(""),
    )
    check_collisions(site.documents, site.listing_paths())
    return site


def publish(staging_dir: Path, output_dir: Path) -> None:
    """Replace the publish directory with the staging directory.

    The previous output is moved aside first and restored if the swap fails.
    """
    output_dir.parent.mkdir(parents=True, exist_ok=True)
    backup: Path | None = None
    if output_dir.exists():
        backup = output_dir.with_name(f".{output_dir.name}.previous-{uuid.uuid4().hex[:8]}")
        os.replace(output_dir, backup)
    try:
        os.replace(staging_dir, output_dir)
    except OSError:
        if backup is not None:
            os.replace(backup, output_dir)
        raise
    if backup is not None:
        shutil.rmtree(backup, ignore_errors=True)


def _make_staging_dir(output_dir: Path) -> Path:
    output_dir.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f".{output_dir.name}.staging-", dir=output_dir.parent))
    staging.chmod(0o755)
    return staging


def build_site(
    project_root: Path,
    config_path: Path | None = None,
    output_dir: Path | None = None,
    dry_run: bool = False,
    include_drafts: bool | None = None,
    workers: int | None = None,
    cancel_event: threading.Event | None = None,
    renderer: TemplateRenderer | None = None,
    session: requests.Session | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        config_path: Configuration file, overriding discovery.
        output_dir: Publish directory, overriding ``publishDir``.
        dry_run: Load and validate everything but write nothing.
        include_drafts: Keep draft documents (defaults to ``buildDrafts``).
        workers: Render thread pool size.
        cancel_event: Set to stop issuing new renders; in-flight work drains.
        renderer: Template renderer, defaults to the Jinja2 TemplateEngine.
        session: HTTP session for remote data.

    Returns:
        BuildResult. Fatal problems are recorded in its report rather than raised.
    """
    report = BuildReport()
    cancel_event = cancel_event or threading.Event()
    try:
        config = load_config(project_root, config_path)
    except ConfigError as exc:
        logger.error("%s", exc)
        report.fail(exc)
        return BuildResult(report=report, output_dir=output_dir or project_root / "public")

    if output_dir is None:
        output_dir = config.publish_dir
    elif not output_dir.is_absolute():
        output_dir = project_root / output_dir

    try:
        site = assemble_site(config, report, include_drafts)
    except (ConfigError, PathCollisionError) as exc:
        logger.error("%s", exc)
        report.fail(exc)
        return BuildResult(report=report, output_dir=output_dir)

    result = BuildResult(report=report, output_dir=output_dir, site=site)
    markdown = MarkdownRenderer(config.markup)
    if renderer is None:
        data_cache = RemoteDataCache(
            config.cache_policy(REMOTE_CACHE),
            report,
            ignore_errors=config.ignore_errors,
            timeout=config.timeout,
            session=session,
        )
        renderer = TemplateEngine(config, site.menus, data_cache, markdown)
    emitter = OutputEmitter(site, renderer, markdown, report, workers, cancel_event)

    try:
        if not dry_run:
            emitter.render_bodies()
        artifacts = emitter.plan()
    except PathCollisionError as exc:
        logger.error("%s", exc)
        report.fail(exc)
        return result
    if dry_run:
        logger.info("Dry run: %d documents validated", len(site.documents))
        return result
    if cancel_event.is_set():
        report.cancel()
        return result

    staging_dir = _make_staging_dir(output_dir)
    try:
        result.written = emitter.emit(artifacts, staging_dir)
        if cancel_event.is_set():
            report.cancel()
        if report.failed or cancel_event.is_set():
            logger.error("Build %s; keeping the previous output", report.outcome.value)
            return result
        publish(staging_dir, output_dir)
        result.published = True
        logger.info("Published %d files to %s", len(result.written), output_dir)
        return result
    finally:
        if staging_dir.exists():
            shutil.rmtree(staging_dir, ignore_errors=True)
