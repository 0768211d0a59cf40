import threading
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest
import requests

from conftest import BASE_CONFIG, post, write
from pressroom.build import BuildResult, assemble_site, build_site, publish
from pressroom.config import load_config
from pressroom.emitter import Artifact, OutputEmitter
from pressroom.errors import ConfigError, PathCollisionError, RenderError
from pressroom.outputs import BUILTIN_FORMATS, Scope
from pressroom.protocols import TemplateOptions
from pressroom.renderers import MarkdownRenderer
from pressroom.report import BuildOutcome, BuildReport


def snapshot(directory: Path) -> dict[str, bytes]:
    return {
        path.relative_to(directory).as_posix(): path.read_bytes()
        for path in sorted(directory.rglob("*"))
        if path.is_file()
    }


def leftovers(root: Path) -> list[str]:
    return [p.name for p in root.iterdir() if p.name.startswith(".public")]


def test_build_writes_every_scope(site_root):
    result = build_site(site_root)
    assert isinstance(result, BuildResult)
    assert result.outcome is BuildOutcome.SUCCESS
    assert result.published
    public = site_root / "public"
    for path in [
        "index.html",
        "index.xml",
        "about/index.html",
        "posts/index.html",
        "posts/index.xml",
        "posts/first/index.html",
        "posts/second/index.html",
        "tags/index.html",
        "tags/python/index.html",
        "tags/python/index.xml",
        "tags/web/index.html",
        "sitemap.xml",
    ]:
        assert (public / path).is_file(), path
    assert sorted(result.written) == sorted(snapshot(public))
    assert leftovers(site_root) == []

    page = (public / "posts" / "first" / "index.html").read_text(encoding="utf-8")
    assert "<title>First Post | Example Site</title>" in page
    assert "<p>Body text.</p>" in page
    home = (public / "index.html").read_text(encoding="utf-8")
    assert home.index("Second Post") < home.index("First Post")
    assert "About" not in home.split("<main>")[1]


def test_hello_resolves_to_hello(tmp_path):
    root = tmp_path / "site"
    write(root / "hugo.toml", BASE_CONFIG + '\n[permalinks]\nposts = "/:slug"\n')
    write(root / "content" / "posts" / "hello.md", post("Hello", "2021-02-25", ["a", "b"]))
    result = build_site(root)
    assert result.outcome is BuildOutcome.SUCCESS
    [doc] = result.documents
    assert doc.section == "posts"
    assert doc.permalink == "/hello"
    assert (root / "public" / "hello" / "index.html").is_file()
    assert (root / "public" / "tags" / "a" / "index.html").is_file()


def test_two_documents_at_same_path(tmp_path):
    root = tmp_path / "site"
    write(root / "hugo.toml", BASE_CONFIG + '\n[permalinks]\nposts = "/:slug"\n')
    write(root / "content" / "posts" / "hello.md", post("Hello", "2021-02-25"))
    write(root / "content" / "posts" / "hello-again.md", post("Hello", "2021-02-26"))
    result = build_site(root)
    assert result.outcome is BuildOutcome.FAILED
    assert isinstance(result.report.errors[0], PathCollisionError)
    assert not (root / "public").exists()


def test_empty_taxonomy_gets_listing(site_root):
    result = build_site(site_root)
    assert "categories" in result.site.taxonomies
    assert len(result.site.taxonomies["categories"]) == 0
    assert (site_root / "public" / "categories" / "index.html").is_file()


def test_collision_fails_and_keeps_previous_output(site_root):
    assert build_site(site_root).published
    before = snapshot(site_root / "public")

    write(site_root / "content" / "clash.md", "---\ntitle: Clash\nurl: /posts/first\n---\n")
    result = build_site(site_root)
    assert result.outcome is BuildOutcome.FAILED
    assert not result.published
    [error] = result.report.errors
    assert isinstance(error, PathCollisionError)
    assert error.path.strip("/") == "posts/first"
    assert snapshot(site_root / "public") == before
    assert leftovers(site_root) == []


def test_one_malformed_document_out_of_ten(tmp_path):
    root = tmp_path / "site"
    write(root / "hugo.toml", BASE_CONFIG)
    for day in range(1, 10):
        write(root / "content" / "posts" / f"post-{day}.md", post(f"Post {day}", f"2024-05-{day:02d}"))
    write(root / "content" / "posts" / "broken.md", "---\ntitle: [oops\ndate: 2024-05-20\n---\n")

    result = build_site(root)
    assert result.outcome is BuildOutcome.SUCCESS_WITH_WARNINGS
    assert result.published
    assert len(result.documents) == 9
    [warning] = result.report.warnings
    assert "broken.md" in warning.source
    pages = list((root / "public" / "posts").glob("post-*/index.html"))
    assert len(pages) == 9


def test_rss_with_custom_base_name(tmp_path):
    root = tmp_path / "site"
    write(
        root / "hugo.toml",
        BASE_CONFIG
        + '\n[outputFormats.RSS]\nmediatype = "application/rss"\nbaseName = "atom"\n',
    )
    for day in range(1, 13):
        write(root / "content" / "posts" / f"p{day}.md", post(f"Post {day}", f"2024-06-{day:02d}"))

    result = build_site(root)
    assert result.outcome is BuildOutcome.SUCCESS
    feed = root / "public" / "atom.xml"
    assert feed.is_file()
    assert not (root / "public" / "index.xml").exists()
    channel = ET.fromstring(feed.read_bytes()).find("channel")
    titles = [item.findtext("title") for item in channel.findall("item")]
    assert titles == [f"Post {day}" for day in range(12, 2, -1)]
    assert (root / "public" / "posts" / "atom.xml").is_file()


def test_rebuild_is_byte_identical(site_root):
    build_site(site_root, workers=1)
    first = snapshot(site_root / "public")
    build_site(site_root, workers=4)
    assert snapshot(site_root / "public") == first


def test_menu_order_in_output(site_root):
    write(
        site_root / "hugo.toml",
        BASE_CONFIG
        + '\n[[menu.main]]\nidentifier = "blog"\nname = "Blog"\nurl = "/posts/"\nweight = 10\n'
        + '\n[[menu.main]]\nidentifier = "about"\nname = "About"\nurl = "/about/"\nweight = -110\n'
        + '\n[[menu.main]]\nidentifier = "tags"\nname = "Tags"\nurl = "/tags/"\nweight = 10\n',
    )
    build_site(site_root)
    nav = (site_root / "public" / "index.html").read_text(encoding="utf-8").split("</nav>")[0]
    assert nav.index(">About<") < nav.index(">Blog<") < nav.index(">Tags<")


def test_dry_run_writes_nothing(site_root):
    result = build_site(site_root, dry_run=True)
    assert result.outcome is BuildOutcome.SUCCESS
    assert len(result.documents) == 3
    assert not (site_root / "public").exists()


def test_config_error_fails_build(tmp_path):
    write(tmp_path / "hugo.toml", 'title = "No base URL"\n')
    result = build_site(tmp_path)
    assert result.outcome is BuildOutcome.FAILED
    assert isinstance(result.report.errors[0], ConfigError)
    assert result.site is None
    assert len(result.documents) == 0


def test_cancelled_build_keeps_previous_output(site_root):
    build_site(site_root)
    before = snapshot(site_root / "public")
    write(site_root / "content" / "new.md", "# New\n")
    cancel = threading.Event()
    cancel.set()
    result = build_site(site_root, cancel_event=cancel)
    assert result.outcome is BuildOutcome.CANCELLED
    assert not result.published
    assert snapshot(site_root / "public") == before


def test_drafts(site_root):
    write(site_root / "content" / "posts" / "draft.md", "---\ntitle: Draft\ndraft: true\n---\n")
    assert len(build_site(site_root, dry_run=True).documents) == 3
    result = build_site(site_root, include_drafts=True)
    assert len(result.documents) == 4
    assert (site_root / "public" / "posts" / "draft" / "index.html").is_file()


def test_disabled_kinds(site_root):
    write(site_root / "hugo.toml", BASE_CONFIG + 'disableKinds = ["taxonomy", "term"]\n')
    result = build_site(site_root)
    assert result.outcome is BuildOutcome.SUCCESS
    assert not (site_root / "public" / "tags").exists()
    assert (site_root / "public" / "index.html").is_file()


def test_custom_destination(site_root, tmp_path):
    out = tmp_path / "elsewhere"
    result = build_site(site_root, output_dir=out)
    assert result.output_dir == out
    assert (out / "index.html").is_file()
    assert not (site_root / "public").exists()


def test_failing_page_layout_is_a_warning(site_root):
    write(site_root / "layouts" / "posts" / "single.html.jinja", "{{ 1 / 0 }}")
    result = build_site(site_root)
    assert result.outcome is BuildOutcome.SUCCESS_WITH_WARNINGS
    assert result.published
    sources = {w.source for w in result.report.warnings}
    assert sources == {"posts/first/index.html", "posts/second/index.html"}
    assert all(isinstance(w.error, RenderError) for w in result.report.warnings)
    assert (site_root / "public" / "about" / "index.html").is_file()
    assert not (site_root / "public" / "posts" / "first").exists()


def test_failing_home_fails_build(site_root):
    write(site_root / "layouts" / "index.html.jinja", "{% for x in nothing() %}{% endfor %}")
    result = build_site(site_root)
    assert result.outcome is BuildOutcome.FAILED
    assert not result.published
    assert not (site_root / "public").exists()


class _FailingSession:
    def __init__(self):
        self.calls = 0

    def get(self, url, timeout=None, headers=None):
        self.calls += 1
        raise requests.ConnectionError("unreachable")


def _remote_project(root, ignore=False):
    config = BASE_CONFIG
    if ignore:
        config += 'ignoreErrors = ["error-remote-getjson"]\n'
    write(root / "hugo.toml", config)
    write(
        root / "layouts" / "index.html.jinja",
        '{% set data = get_json("https://api.example.org/stars.json") %}'
        "stars: {{ data.stars if data else 'n/a' }}",
    )


def test_suppressed_fetch_degrades_to_warning(site_root):
    _remote_project(site_root, ignore=True)
    session = _FailingSession()
    result = build_site(site_root, session=session)
    assert result.outcome is BuildOutcome.SUCCESS_WITH_WARNINGS
    assert result.published
    assert (site_root / "public" / "index.html").read_text() == "stars: n/a"
    assert session.calls == 1
    [warning] = result.report.warnings
    assert warning.source == "https://api.example.org/stars.json"


def test_unsuppressed_fetch_fails_home(site_root):
    _remote_project(site_root)
    result = build_site(site_root, session=_FailingSession())
    assert result.outcome is BuildOutcome.FAILED
    assert not result.published


class _StaticRenderer:
    def render(self, scope, model, options):
        return f"{scope.value}:{model['permalink']}:{options.output_format.name}".encode()


def test_custom_template_renderer(site_root):
    result = build_site(site_root, renderer=_StaticRenderer())
    assert result.outcome is BuildOutcome.SUCCESS
    assert (site_root / "public" / "index.xml").read_bytes() == b"home:/:RSS"
    assert (site_root / "public" / "about" / "index.html").read_bytes() == b"page:/about/:HTML"


def test_publish_replaces_directory(tmp_path):
    out = tmp_path / "public"
    write(out / "stale.html", "old")
    staging = tmp_path / "staging"
    write(staging / "index.html", "new")
    publish(staging, out)
    assert (out / "index.html").read_text() == "new"
    assert not (out / "stale.html").exists()
    assert not staging.exists()
    assert [p.name for p in tmp_path.iterdir()] == ["public"]


def test_publish_restores_previous_output_on_failure(tmp_path, monkeypatch):
    import pressroom.build as build_mod

    out = tmp_path / "public"
    write(out / "index.html", "old")
    staging = tmp_path / "staging"
    write(staging / "index.html", "new")
    real_replace = build_mod.os.replace

    def flaky_replace(src, dst):
        if Path(src) == staging:
            raise OSError("disk full")
        return real_replace(src, dst)

    monkeypatch.setattr(build_mod.os, "replace", flaky_replace)
    with pytest.raises(OSError):
        publish(staging, out)
    assert (out / "index.html").read_text() == "old"


def test_terms_with_same_slug_collide(site_root):
    write(site_root / "content" / "posts" / "plus.md", '---\ntitle: Plus\ndate: 2024-03-01\ntags: ["C++"]\n---\n')
    write(site_root / "content" / "posts" / "sharp.md", '---\ntitle: Sharp\ndate: 2024-03-02\ntags: ["C#"]\n---\n')
    result = build_site(site_root)
    assert result.outcome is BuildOutcome.FAILED
    [error] = result.report.errors
    assert isinstance(error, PathCollisionError)
    assert error.path == "/tags/C/"
    assert {error.first, error.second} == {"term 'tags/C++'", "term 'tags/C#'"}
    assert not (site_root / "public").exists()


def test_section_named_like_taxonomy_collides(site_root):
    write(site_root / "content" / "tags" / "x.md", "---\ntitle: X\n---\n")
    result = build_site(site_root)
    assert result.outcome is BuildOutcome.FAILED
    [error] = result.report.errors
    assert isinstance(error, PathCollisionError)
    assert (error.first, error.second) == ("section 'tags'", "taxonomy 'tags'")


def test_file_permalink_collides_with_feed(site_root):
    assert build_site(site_root).published
    before = snapshot(site_root / "public")

    write(site_root / "content" / "feed.md", "---\ntitle: Feed\nurl: /index.xml\n---\n")
    result = build_site(site_root)
    assert result.outcome is BuildOutcome.FAILED
    [error] = result.report.errors
    assert isinstance(error, PathCollisionError)
    assert error.path == "index.xml"
    assert error.first == "home page"
    assert error.second.endswith("feed.md")
    assert snapshot(site_root / "public") == before
    assert leftovers(site_root) == []

    assert build_site(site_root, dry_run=True).outcome is BuildOutcome.FAILED


def test_relative_url_is_dropped(site_root, tmp_path):
    write(site_root / "content" / "escape.md", "---\ntitle: Escape\nurl: /../../escaped/\n---\n")
    result = build_site(site_root)
    assert result.outcome is BuildOutcome.SUCCESS_WITH_WARNINGS
    assert result.published
    [warning] = result.report.warnings
    assert "escape.md" in warning.source
    assert all("escaped" not in path for path in result.written)
    assert not (tmp_path / "escaped").exists()
    assert not (tmp_path.parent / "escaped").exists()


def test_unsuppressed_fetch_skips_dependent_pages(site_root):
    write(
        site_root / "layouts" / "posts" / "single.html.jinja",
        '{{ get_json("https://api.example.org/stars.json").stars }}',
    )
    result = build_site(site_root, session=_FailingSession())
    assert result.outcome is BuildOutcome.SUCCESS_WITH_WARNINGS
    assert result.published
    sources = sorted(w.source for w in result.report.warnings)
    assert sources == ["posts/first/index.html", "posts/second/index.html"]
    assert (site_root / "public" / "index.html").is_file()
    assert not (site_root / "public" / "posts" / "first").exists()


class _CancellingRenderer:
    def __init__(self, event):
        self.event = event
        self.calls = 0

    def render(self, scope, model, options):
        self.calls += 1
        self.event.set()
        return b"rendered"


def test_cancel_during_emission(site_root):
    build_site(site_root)
    before = snapshot(site_root / "public")
    cancel = threading.Event()
    renderer = _CancellingRenderer(cancel)
    result = build_site(site_root, workers=1, cancel_event=cancel, renderer=renderer)
    assert renderer.calls == 1
    assert result.outcome is BuildOutcome.CANCELLED
    assert not result.published
    assert result.written == ["index.html"]
    assert snapshot(site_root / "public") == before
    assert leftovers(site_root) == []


def _failing_markdown(monkeypatch):
    real_render = MarkdownRenderer.render

    def render(self, body):
        if "BROKEN" in body:
            raise ValueError("renderer exploded")
        return real_render(self, body)

    monkeypatch.setattr(MarkdownRenderer, "render", render)


def test_failing_section_listing_body_is_a_warning(site_root, monkeypatch):
    _failing_markdown(monkeypatch)
    write(site_root / "content" / "posts" / "_index.md", "---\ntitle: Posts\n---\n\nBROKEN\n")
    result = build_site(site_root, renderer=_StaticRenderer())
    assert result.outcome is BuildOutcome.SUCCESS_WITH_WARNINGS
    assert result.published
    [warning] = result.report.warnings
    assert warning.source.endswith("_index.md")
    assert isinstance(warning.error, RenderError)


def test_failing_home_listing_body_fails_build(site_root, monkeypatch):
    _failing_markdown(monkeypatch)
    write(site_root / "content" / "_index.md", "---\ntitle: Home\n---\n\nBROKEN\n")
    result = build_site(site_root, renderer=_StaticRenderer())
    assert result.outcome is BuildOutcome.FAILED
    assert isinstance(result.report.errors[0], RenderError)
    assert not (site_root / "public").exists()


def test_emitter_refuses_paths_outside_staging(site_root, tmp_path):
    config = load_config(site_root)
    report = BuildReport()
    site = assemble_site(config, report)
    emitter = OutputEmitter(site, _StaticRenderer(), MarkdownRenderer(config.markup), report)
    html = BUILTIN_FORMATS["HTML"]
    artifact = Artifact(
        scope=Scope.PAGE,
        output_format=html,
        directory="../outside",
        filename="index.html",
        source="content/outside.md",
        options=TemplateOptions(html),
        model={"permalink": "/outside/"},
    )
    staging = tmp_path / "staging"
    staging.mkdir()
    assert emitter.emit([artifact], staging) == []
    assert not (tmp_path / "outside").exists()
    [warning] = report.warnings
    assert "escapes" in warning.message
