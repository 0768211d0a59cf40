"""Site configuration for Pressroom.

This module resolves the declarative site configuration (``hugo.toml``,
``config.toml`` or a YAML equivalent) into an immutable SiteConfig that is
passed by reference to every component of the build.

Key functions:
- find_config: Locate the configuration file in a project root.
- read_config_file: Parse a TOML or YAML configuration file into a mapping.
- parse_config: Validate a raw mapping and build a SiteConfig.
- load_config: find_config + read_config_file + parse_config.

Top-level keys are matched case-insensitively. Keys Pressroom does not
recognize are kept in ``SiteConfig.extra`` for templates.
"""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from .errors import ConfigError
from .menus import MenuEntry, parse_menu_entries
from .outputs import OutputFormat, Scope, resolve_output_formats, resolve_outputs
from .permalinks import KNOWN_TOKENS, pattern_tokens
from .utils import parse_duration

CONFIG_FILENAMES = (
    "hugo.toml",
    "config.toml",
    "hugo.yaml",
    "hugo.yml",
    "config.yaml",
    "config.yml",
)

DEFAULT_TAXONOMIES = {"tag": "tags", "category": "categories"}
DEFAULT_FEED_LIMIT = 10
DEFAULT_TIMEOUT = 30.0
REMOTE_CACHE = "getjson"

_KNOWN_KEYS = {
    "baseurl",
    "languagecode",
    "title",
    "theme",
    "permalinks",
    "params",
    "menu",
    "menus",
    "caches",
    "markup",
    "taxonomies",
    "outputs",
    "outputformats",
    "ignoreerrors",
    "contentdir",
    "publishdir",
    "layoutdir",
    "themesdir",
    "cachedir",
    "timeout",
    "disablekinds",
    "services",
    "rsslimit",
    "builddrafts",
}


@dataclass(frozen=True)
class HighlightOptions:
    """Syntax highlighting options from ``markup.highlight``."""

    code_fences: bool = True
    guess_syntax: bool = False
    style: str = "monokai"
    tab_width: int = 4
    line_nos: bool = False
    line_numbers_in_table: bool = True
    line_no_start: int = 1
    hl_lines: str = ""
    no_classes: bool = True
    anchor_line_nos: bool = False
    line_anchors: str = ""
    wrapper_class: str = "highlight"


@dataclass(frozen=True)
class MarkupOptions:
    """Markdown rendering options from ``markup``.

    Attributes:
        unsafe: Pass raw HTML in Markdown through instead of escaping it.
        highlight: Code block highlighting options.
    """

    unsafe: bool = False
    highlight: HighlightOptions = field(default_factory=HighlightOptions)


@dataclass(frozen=True)
class CachePolicy:
    """Directory and expiry for one class of cached resources.

    Attributes:
        name: Resource class (e.g. "getjson", "images").
        directory: Absolute cache directory.
        max_age: Seconds an entry stays fresh; -1 never expires, 0 disables caching.
    """

    name: str
    directory: Path
    max_age: float = -1


@dataclass(frozen=True)
class SiteConfig:
    """Immutable site-wide configuration for one build."""

    base_url: str
    title: str
    project_root: Path
    language_code: str = "en-us"
    theme: str | None = None
    source_path: Path | None = None
    permalinks: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, Any] = field(default_factory=dict)
    menus: Mapping[str, tuple[MenuEntry, ...]] = field(default_factory=dict)
    markup: MarkupOptions = field(default_factory=MarkupOptions)
    taxonomies: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_TAXONOMIES))
    outputs: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    output_formats: Mapping[str, OutputFormat] = field(default_factory=dict)
    caches: Mapping[str, CachePolicy] = field(default_factory=dict)
    ignore_errors: frozenset[str] = frozenset()
    content_dir: Path = Path("content")
    publish_dir: Path = Path("public")
    layout_dir: Path = Path("layouts")
    themes_dir: Path = Path("themes")
    cache_dir: Path = Path(".cache")
    timeout: float = DEFAULT_TIMEOUT
    feed_limit: int = DEFAULT_FEED_LIMIT
    build_drafts: bool = False
    disable_kinds: frozenset[str] = frozenset()
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def taxonomy_names(self) -> tuple[str, ...]:
        """Plural taxonomy names, in configuration order."""
        return tuple(self.taxonomies.values())

    def formats_for(self, scope: Scope | str) -> tuple[OutputFormat, ...]:
        """Return the output formats emitted for a scope, in order."""
        key = scope.value if isinstance(scope, Scope) else scope
        if key == Scope.SITEMAP.value:
            return (self.output_formats["SITEMAP"],)
        names = self.outputs.get(key, ())
        return tuple(self.output_formats[name] for name in names)

    def is_enabled(self, scope: Scope | str) -> bool:
        key = scope.value if isinstance(scope, Scope) else scope
        return key == Scope.HOME.value or key not in self.disable_kinds

    def cache_policy(self, name: str) -> CachePolicy:
        """Return the cache policy for a resource class, defaulting to :cacheDir/<name>."""
        if name in self.caches:
            return self.caches[name]
        return CachePolicy(name=name, directory=self.cache_dir / name)

    def absolute_url(self, path: str) -> str:
        """Join the base URL with a site-relative path."""
        if path.startswith(("http://", "https://", "//")):
            return path
        base = self.base_url.rstrip("/")
        return f"{base}/{path.lstrip('/')}"


def find_config(project_root: Path) -> Path:
    """Locate the configuration file in a project root.

    Raises:
        ConfigError: If none of the well-known file names exists.
    """
    for name in CONFIG_FILENAMES:
        candidate = project_root / name
        if candidate.is_file():
            return candidate
    raise ConfigError(
        f"No configuration file found in {project_root} "
        f"(looked for {', '.join(CONFIG_FILENAMES)})"
    )


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse a TOML or YAML configuration file into a mapping.

    Raises:
        ConfigError: If the file cannot be read or decoded.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read configuration: {exc}", path) from exc
    if path.suffix.lower() == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML: {exc}", path) from exc
    else:
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid YAML: {exc}", path) from exc
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a mapping", path)
    return data


def _lower_keys(raw: Mapping[str, Any], where: str) -> dict[str, Any]:
    lowered: dict[str, Any] = {}
    for key, value in raw.items():
        name = str(key).lower()
        if name in lowered:
            raise ConfigError(f"{where}: key '{key}' is defined more than once")
        lowered[name] = value
    return lowered


def _as_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{where} must be a mapping")
    return value


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _resolve_dir(value: Any, project_root: Path, cache_dir: Path | None = None) -> Path:
    text = str(value)
    if cache_dir is not None:
        text = text.replace(":cacheDir", str(cache_dir))
    text = text.replace(":project", str(project_root))
    text = text.replace(":resourceDir", str(project_root / "resources"))
    path = Path(text).expanduser()
    return path if path.is_absolute() else project_root / path


def _parse_permalinks(raw: Any) -> dict[str, str]:
    permalinks: dict[str, str] = {}
    for key, pattern in _as_mapping(raw, "permalinks").items():
        if not isinstance(pattern, str) or not pattern.strip():
            raise ConfigError(f"permalinks.{key} must be a non-empty string")
        unknown = [token for token in pattern_tokens(pattern) if token not in KNOWN_TOKENS]
        if unknown:
            raise ConfigError(
                f"permalinks.{key}: unknown token(s) "
                + ", ".join(f":{token}" for token in unknown)
            )
        permalinks[str(key)] = pattern
    return permalinks


def _parse_params(raw: Any) -> dict[str, Any]:
    params = dict(_as_mapping(raw, "params"))
    _lower_keys(params, "params")
    return params


def _parse_menus(lowered: Mapping[str, Any]) -> dict[str, tuple[MenuEntry, ...]]:
    raw = lowered.get("menus", lowered.get("menu"))
    menus: dict[str, tuple[MenuEntry, ...]] = {}
    for name, entries in _as_mapping(raw, "menu").items():
        menus[str(name)] = parse_menu_entries(str(name), entries)
    return menus


def _parse_markup(raw: Any) -> MarkupOptions:
    markup = _lower_keys(_as_mapping(raw, "markup"), "markup")
    goldmark = _lower_keys(_as_mapping(markup.get("goldmark"), "markup.goldmark"), "markup.goldmark")
    renderer = _lower_keys(
        _as_mapping(goldmark.get("renderer"), "markup.goldmark.renderer"),
        "markup.goldmark.renderer",
    )
    hl = _lower_keys(_as_mapping(markup.get("highlight"), "markup.highlight"), "markup.highlight")
    defaults = HighlightOptions()
    try:
        tab_width = int(hl.get("tabwidth", defaults.tab_width))
        line_no_start = int(hl.get("linenostart", defaults.line_no_start))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"markup.highlight: {exc}") from exc
    if tab_width < 1:
        raise ConfigError("markup.highlight.tabWidth must be positive")
    highlight = HighlightOptions(
        code_fences=_as_bool(hl.get("codefences"), defaults.code_fences),
        guess_syntax=_as_bool(hl.get("guesssyntax"), defaults.guess_syntax),
        style=str(hl.get("style", defaults.style)),
        tab_width=tab_width,
        line_nos=_as_bool(hl.get("linenos"), defaults.line_nos),
        line_numbers_in_table=_as_bool(
            hl.get("linenumbersintable"), defaults.line_numbers_in_table
        ),
        line_no_start=line_no_start,
        hl_lines=str(hl.get("hl_lines", "") or ""),
        no_classes=_as_bool(hl.get("noclasses"), defaults.no_classes),
        anchor_line_nos=_as_bool(hl.get("anchorlinenos"), defaults.anchor_line_nos),
        line_anchors=str(hl.get("lineanchors", "") or ""),
        wrapper_class=str(hl.get("wrapperclass", defaults.wrapper_class) or ""),
    )
    return MarkupOptions(unsafe=_as_bool(renderer.get("unsafe"), False), highlight=highlight)


def _parse_taxonomies(raw: Any) -> dict[str, str]:
    if raw is None:
        return dict(DEFAULT_TAXONOMIES)
    taxonomies: dict[str, str] = {}
    plurals: set[str] = set()
    for singular, plural in _as_mapping(raw, "taxonomies").items():
        if not isinstance(plural, str) or not plural.strip():
            raise ConfigError(f"taxonomies.{singular} must name the plural form")
        if plural in plurals:
            raise ConfigError(f"taxonomies: '{plural}' is used by more than one taxonomy")
        plurals.add(plural)
        taxonomies[str(singular)] = plural
    return taxonomies


def _parse_caches(
    raw: Any, project_root: Path, cache_dir: Path
) -> dict[str, CachePolicy]:
    caches: dict[str, CachePolicy] = {
        REMOTE_CACHE: CachePolicy(REMOTE_CACHE, cache_dir / REMOTE_CACHE)
    }
    for name, options in _as_mapping(raw, "caches").items():
        options = _lower_keys(_as_mapping(options, f"caches.{name}"), f"caches.{name}")
        directory = options.get("dir", f":cacheDir/{name}")
        try:
            max_age = parse_duration(options.get("maxage", -1))
        except ValueError as exc:
            raise ConfigError(f"caches.{name}.maxAge: {exc}") from exc
        caches[str(name)] = CachePolicy(
            name=str(name),
            directory=_resolve_dir(directory, project_root, cache_dir),
            max_age=max_age,
        )
    return caches


def _parse_feed_limit(lowered: Mapping[str, Any]) -> int:
    services = _lower_keys(_as_mapping(lowered.get("services"), "services"), "services")
    rss = _lower_keys(_as_mapping(services.get("rss"), "services.rss"), "services.rss")
    limit = rss.get("limit", lowered.get("rsslimit", DEFAULT_FEED_LIMIT))
    try:
        return int(limit)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"services.rss.limit must be an integer, got {limit!r}") from exc


def parse_config(
    raw: Mapping[str, Any],
    project_root: Path,
    source_path: Path | None = None,
) -> SiteConfig:
    """Validate a raw configuration mapping and build a SiteConfig.

    Args:
        raw: Decoded configuration document.
        project_root: Directory relative paths are resolved against.
        source_path: File the mapping was read from, for error messages.

    Returns:
        The resolved, immutable SiteConfig.

    Raises:
        ConfigError: If a required field is missing or a value is invalid.
    """
    try:
        lowered = _lower_keys(raw, "configuration")
        base_url = lowered.get("baseurl")
        title = lowered.get("title")
        if not isinstance(base_url, str) or not base_url.strip():
            raise ConfigError("baseURL is required")
        if not isinstance(title, str) or not title.strip():
            raise ConfigError("title is required")

        cache_dir = _resolve_dir(lowered.get("cachedir", ".cache"), project_root)
        formats = resolve_output_formats(_as_mapping(lowered.get("outputformats"), "outputFormats"))
        outputs = resolve_outputs(_as_mapping(lowered.get("outputs"), "outputs"), formats)

        ignore_errors = lowered.get("ignoreerrors") or []
        if isinstance(ignore_errors, str):
            ignore_errors = [ignore_errors]
        disable_kinds = lowered.get("disablekinds") or []
        if isinstance(disable_kinds, str):
            disable_kinds = [disable_kinds]
        try:
            timeout = parse_duration(lowered.get("timeout", DEFAULT_TIMEOUT))
        except ValueError as exc:
            raise ConfigError(f"timeout: {exc}") from exc
        if timeout <= 0:
            raise ConfigError("timeout must be positive")

        theme = lowered.get("theme")
        if isinstance(theme, list):
            theme = theme[0] if theme else None

        extra = {key: value for key, value in raw.items() if str(key).lower() not in _KNOWN_KEYS}
        return SiteConfig(
            base_url=base_url.strip(),
            title=title.strip(),
            project_root=project_root,
            language_code=str(lowered.get("languagecode", "en-us")),
            theme=str(theme) if theme else None,
            source_path=source_path,
            permalinks=MappingProxyType(_parse_permalinks(lowered.get("permalinks"))),
            params=MappingProxyType(_parse_params(lowered.get("params"))),
            menus=MappingProxyType(_parse_menus(lowered)),
            markup=_parse_markup(lowered.get("markup")),
            taxonomies=MappingProxyType(_parse_taxonomies(lowered.get("taxonomies"))),
            outputs=MappingProxyType(outputs),
            output_formats=MappingProxyType(formats),
            caches=MappingProxyType(_parse_caches(lowered.get("caches"), project_root, cache_dir)),
            ignore_errors=frozenset(str(item).lower() for item in ignore_errors),
            content_dir=_resolve_dir(lowered.get("contentdir", "content"), project_root),
            publish_dir=_resolve_dir(lowered.get("publishdir", "public"), project_root),
            layout_dir=_resolve_dir(lowered.get("layoutdir", "layouts"), project_root),
            themes_dir=_resolve_dir(lowered.get("themesdir", "themes"), project_root),
            cache_dir=cache_dir,
            timeout=timeout,
            feed_limit=_parse_feed_limit(lowered),
            build_drafts=_as_bool(lowered.get("builddrafts"), False),
            disable_kinds=frozenset(str(kind).lower() for kind in disable_kinds),
            extra=MappingProxyType(extra),
        )
    except ConfigError as exc:
        if exc.source_path is None and source_path is not None:
            raise ConfigError(exc.message, source_path) from exc
        raise


def load_config(project_root: Path, config_path: Path | None = None) -> SiteConfig:
    """Load the site configuration for a project.

    Args:
        project_root: Root directory of the project.
        config_path: Explicit configuration file, overriding discovery.

    Returns:
        The resolved SiteConfig.

    Raises:
        ConfigError: If the file is missing, undecodable or invalid.
    """
    path = config_path if config_path is not None else find_config(project_root)
    if not path.is_file():
        raise ConfigError("configuration file does not exist", path)
    return parse_config(read_config_file(path), project_root, source_path=path)
