import pytest

from pressroom.emitter import locate
from pressroom.errors import ConfigError
from pressroom.outputs import (
    BUILTIN_FORMATS,
    DEFAULT_OUTPUTS,
    resolve_output_formats,
    resolve_outputs,
    suffix_for_media_type,
)


def test_builtin_formats():
    assert BUILTIN_FORMATS["HTML"].filename == "index.html"
    assert BUILTIN_FORMATS["RSS"].filename == "index.xml"
    assert BUILTIN_FORMATS["SITEMAP"].filename == "sitemap.xml"
    assert BUILTIN_FORMATS["HTML"].is_html
    assert not BUILTIN_FORMATS["JSON"].is_html


def test_suffix_for_media_type():
    assert suffix_for_media_type("application/rss") == "xml"
    assert suffix_for_media_type("application/x-custom+xml") == "x-custom"
    assert suffix_for_media_type("Text/HTML") == "html"


def test_override_keeps_builtin_defaults():
    formats = resolve_output_formats({"rss": {"baseName": "atom"}})
    assert formats["RSS"].media_type == "application/rss+xml"
    assert formats["RSS"].filename == "atom.xml"


def test_new_format_needs_media_type():
    formats = resolve_output_formats({"Calendar": {"mediaType": "text/calendar", "isPlainText": True}})
    assert formats["CALENDAR"].filename == "index.ics"
    assert formats["CALENDAR"].is_plain_text
    with pytest.raises(ConfigError, match="mediaType"):
        resolve_output_formats({"Custom": {"baseName": "x"}})


def test_base_name_must_be_file_name():
    with pytest.raises(ConfigError, match="baseName"):
        resolve_output_formats({"RSS": {"baseName": "feeds/atom"}})


def test_resolve_outputs_defaults_and_overrides():
    outputs = resolve_outputs({"Page": ["html", "json"]}, BUILTIN_FORMATS)
    assert outputs["page"] == ("HTML", "JSON")
    assert outputs["home"] == DEFAULT_OUTPUTS["home"]


@pytest.mark.parametrize(
    "raw, message",
    [
        ({"blog": ["HTML"]}, "unknown scope"),
        ({"home": ["PDF"]}, "unknown output format"),
        ({"home": ["HTML", "html"]}, "listed twice"),
        ({"home": "HTML"}, "must be a list"),
    ],
)
def test_resolve_outputs_errors(raw, message):
    with pytest.raises(ConfigError, match=message):
        resolve_outputs(raw, BUILTIN_FORMATS)


def test_formats_writing_same_file_rejected():
    formats = resolve_output_formats({"ALT": {"mediaType": "text/html"}})
    with pytest.raises(ConfigError, match="both write index.html"):
        resolve_outputs({"home": ["HTML", "ALT"]}, formats)


def test_locate():
    html, rss = BUILTIN_FORMATS["HTML"], BUILTIN_FORMATS["RSS"]
    assert locate("/", html) == ("", "index.html")
    assert locate("/posts/hello/", rss, primary=False) == ("posts/hello", "index.xml")
    assert locate("/hello", html) == ("hello", "index.html")
    assert locate("/docs/about.html", html) == ("docs", "about.html")
    assert locate("/docs/about.html", rss, primary=False) == ("docs/about", "index.xml")
