import json
import xml.etree.ElementTree as ET
from datetime import datetime, timezone

from conftest import write
from pressroom.build import assemble_site
from pressroom.config import load_config
from pressroom.feeds import (
    FeedRegistry,
    JSONFeedGenerator,
    RSSGenerator,
    SitemapGenerator,
    create_default_feed_registry,
    feed_items,
)
from pressroom.outputs import BUILTIN_FORMATS
from pressroom.report import BuildReport


def load_site(root):
    return assemble_site(load_config(root), BuildReport())


def feed_model(site, fmt_name="RSS", documents=None):
    return {
        "site": site,
        "title": site.title,
        "url": "https://example.org/",
        "feed_url": "https://example.org/index.xml",
        "output_format": BUILTIN_FORMATS[fmt_name],
        "documents": site.posts if documents is None else documents,
    }


def test_rss_feed_newest_first(site_root):
    site = load_site(site_root)
    xml = RSSGenerator().generate(feed_model(site))
    root = ET.fromstring(xml.encode("utf-8"))
    channel = root.find("channel")
    titles = [item.findtext("title") for item in channel.findall("item")]
    assert titles == ["Second Post", "First Post"]
    assert channel.findtext("title") == "Example Site"
    assert channel.findtext("lastBuildDate") == "Tue, 20 Feb 2024 00:00:00 +0000"
    first = channel.findall("item")[0]
    assert first.findtext("link") == "https://example.org/posts/second/"
    assert [c.text for c in first.findall("category")] == ["python"]


def test_rss_respects_feed_limit(site_root):
    config_path = site_root / "hugo.toml"
    config_path.write_text(
        config_path.read_text() + "\n[services.rss]\nlimit = 1\n", encoding="utf-8"
    )
    site = load_site(site_root)
    assert len(feed_items(feed_model(site))) == 1
    xml = RSSGenerator().generate(feed_model(site))
    assert xml.count("<item>") == 1


def test_rss_escapes_titles(site_root):
    write(
        site_root / "content" / "posts" / "amp.md",
        "---\ntitle: Fish & Chips <3\ndate: 2024-03-01\n---\n",
    )
    xml = RSSGenerator().generate(feed_model(load_site(site_root)))
    assert "<title>Fish &amp; Chips &lt;3</title>" in xml
    ET.fromstring(xml.encode("utf-8"))


def test_rss_without_items_has_no_build_date(site_root):
    site = load_site(site_root)
    xml = RSSGenerator().generate(feed_model(site, documents=[]))
    assert "lastBuildDate" not in xml
    assert "<item>" not in xml


def test_rss_is_deterministic(site_root):
    site = load_site(site_root)
    assert RSSGenerator().generate(feed_model(site)) == RSSGenerator().generate(feed_model(site))


def test_json_feed(site_root):
    site = load_site(site_root)
    for doc in site.documents:
        doc.content = '<p><a href="/about/">About</a></p>'
    data = json.loads(JSONFeedGenerator().generate(feed_model(site, "JSON")))
    assert data["version"] == "https://jsonfeed.org/version/1.1"
    assert [item["title"] for item in data["items"]] == ["Second Post", "First Post"]
    assert 'href="https://example.org/about/"' in data["items"][0]["content_html"]
    assert data["items"][0]["date_published"] == "2024-02-20T00:00:00+00:00"
    assert data["items"][1]["tags"] == ["python", "web"]


def test_sitemap(site_root):
    site = load_site(site_root)
    model = feed_model(site, "SITEMAP")
    model["entries"] = [
        ("/posts/first/", datetime(2024, 1, 10, tzinfo=timezone.utc)),
        ("/", None),
    ]
    xml = SitemapGenerator().generate(model)
    root = ET.fromstring(xml.encode("utf-8"))
    ns = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}
    locs = [url.findtext("sm:loc", namespaces=ns) for url in root.findall("sm:url", ns)]
    assert locs == ["https://example.org/", "https://example.org/posts/first/"]
    assert "<lastmod>2024-01-10</lastmod>" in xml


def test_registry_lookup():
    registry = create_default_feed_registry()
    assert isinstance(registry.get(BUILTIN_FORMATS["RSS"]), RSSGenerator)
    assert isinstance(registry.get(BUILTIN_FORMATS["JSON"]), JSONFeedGenerator)
    assert registry.get(BUILTIN_FORMATS["HTML"]) is None
    assert FeedRegistry().get(BUILTIN_FORMATS["RSS"]) is None
