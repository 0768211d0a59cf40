"""Output formats for Pressroom.

An output format names a media type and a file name (``{base name}.{suffix}``)
for one rendition of a scope. The built-in formats can be overridden and new
ones declared through the ``outputFormats`` configuration mapping; the
``outputs`` mapping then selects which formats each scope is emitted in.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import ConfigError


class Scope(str, Enum):
    """Granularity at which an output format is generated."""

    HOME = "home"
    SECTION = "section"
    TAXONOMY = "taxonomy"
    TERM = "term"
    PAGE = "page"
    SITEMAP = "sitemap"


# Scopes that can be configured through the ``outputs`` mapping
CONFIGURABLE_SCOPES = (Scope.HOME, Scope.SECTION, Scope.TAXONOMY, Scope.TERM, Scope.PAGE)

MEDIA_TYPE_SUFFIXES = {
    "text/html": "html",
    "application/rss": "xml",
    "application/rss+xml": "xml",
    "application/atom+xml": "xml",
    "application/xml": "xml",
    "text/xml": "xml",
    "application/json": "json",
    "application/feed+json": "json",
    "text/plain": "txt",
    "text/calendar": "ics",
    "text/csv": "csv",
}


@dataclass(frozen=True)
class OutputFormat:
    """One rendition of a scope.

    Attributes:
        name: Upper-case format name (e.g. "HTML", "RSS").
        media_type: Declared media type of the artifact.
        base_name: File name without suffix.
        suffix: File extension without the dot.
        is_plain_text: Whether templates should be rendered without HTML escaping.
        rel: Link relation used when templates advertise alternates.
    """

    name: str
    media_type: str
    base_name: str = "index"
    suffix: str = "html"
    is_plain_text: bool = False
    rel: str = "alternate"

    @property
    def filename(self) -> str:
        return f"{self.base_name}.{self.suffix}"

    @property
    def is_html(self) -> bool:
        return self.media_type == "text/html"


BUILTIN_FORMATS: dict[str, OutputFormat] = {
    "HTML": OutputFormat("HTML", "text/html", "index", "html", rel="canonical"),
    "RSS": OutputFormat("RSS", "application/rss+xml", "index", "xml"),
    "JSON": OutputFormat("JSON", "application/json", "index", "json", is_plain_text=True),
    "SITEMAP": OutputFormat("SITEMAP", "application/xml", "sitemap", "xml", rel="sitemap"),
}

DEFAULT_OUTPUTS: dict[str, tuple[str, ...]] = {
    Scope.HOME.value: ("HTML", "RSS"),
    Scope.SECTION.value: ("HTML", "RSS"),
    Scope.TAXONOMY.value: ("HTML", "RSS"),
    Scope.TERM.value: ("HTML", "RSS"),
    Scope.PAGE.value: ("HTML",),
}


def suffix_for_media_type(media_type: str) -> str:
    """Return the default file suffix for a media type.

    Unknown media types use their subtype with any ``+suffix`` removed,
    e.g. ``application/x-custom+xml`` becomes ``x-custom``.
    """
    media_type = media_type.strip().lower()
    if media_type in MEDIA_TYPE_SUFFIXES:
        return MEDIA_TYPE_SUFFIXES[media_type]
    subtype = media_type.rpartition("/")[2]
    return subtype.partition("+")[0] or "txt"


def _option(options: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    lowered = {str(k).lower(): v for k, v in options.items()}
    for name in names:
        if name.lower() in lowered:
            return lowered[name.lower()]
    return default


def resolve_output_formats(
    overrides: Mapping[str, Any] | None,
) -> dict[str, OutputFormat]:
    """Merge configured output formats over the built-ins.

    Args:
        overrides: The ``outputFormats`` configuration mapping
            (format name -> options).

    Returns:
        Mapping of upper-case format name to OutputFormat.

    Raises:
        ConfigError: If a format definition is malformed.
    """
    formats = dict(BUILTIN_FORMATS)
    for raw_name, options in (overrides or {}).items():
        name = str(raw_name).upper()
        if not isinstance(options, Mapping):
            raise ConfigError(f"outputFormats.{raw_name} must be a mapping")
        base = formats.get(name)
        media_type = _option(
            options, "mediaType", default=base.media_type if base else None
        )
        if not media_type:
            raise ConfigError(f"outputFormats.{raw_name} needs a mediaType")
        media_type = str(media_type)
        suffix = _option(options, "suffix")
        if suffix is None:
            if base is not None and base.media_type == media_type:
                suffix = base.suffix
            else:
                suffix = suffix_for_media_type(media_type)
        base_name = _option(
            options, "baseName", default=base.base_name if base else "index"
        )
        if not str(base_name).strip() or "/" in str(base_name):
            raise ConfigError(f"outputFormats.{raw_name}.baseName is not a file name")
        formats[name] = OutputFormat(
            name=name,
            media_type=media_type,
            base_name=str(base_name),
            suffix=str(suffix).lstrip("."),
            is_plain_text=bool(
                _option(
                    options,
                    "isPlainText",
                    default=base.is_plain_text if base else False,
                )
            ),
            rel=str(_option(options, "rel", default=base.rel if base else "alternate")),
        )
    return formats


def resolve_outputs(
    raw: Mapping[str, Any] | None,
    formats: Mapping[str, OutputFormat],
) -> dict[str, tuple[str, ...]]:
    """Resolve the ``outputs`` mapping (scope -> ordered format names).

    Scopes absent from the configuration keep their defaults. Within one
    scope a format may appear only once, and no two formats may write the
    same file.

    Raises:
        ConfigError: On unknown scopes, unknown formats or duplicates.
    """
    outputs = dict(DEFAULT_OUTPUTS)
    valid_scopes = {scope.value for scope in CONFIGURABLE_SCOPES}
    for raw_scope, names in (raw or {}).items():
        scope = str(raw_scope).lower()
        if scope not in valid_scopes:
            raise ConfigError(f"outputs: unknown scope '{raw_scope}'")
        if isinstance(names, str) or not isinstance(names, (list, tuple)):
            raise ConfigError(f"outputs.{raw_scope} must be a list of format names")
        resolved: list[str] = []
        filenames: dict[str, str] = {}
        for raw_name in names:
            name = str(raw_name).upper()
            if name not in formats:
                raise ConfigError(f"outputs.{raw_scope}: unknown output format '{raw_name}'")
            if name in resolved:
                raise ConfigError(f"outputs.{raw_scope}: format '{name}' listed twice")
            filename = formats[name].filename
            if filename in filenames:
                raise ConfigError(
                    f"outputs.{raw_scope}: formats '{filenames[filename]}' and "
                    f"'{name}' both write {filename}"
                )
            filenames[filename] = name
            resolved.append(name)
        outputs[scope] = tuple(resolved)
    return outputs
