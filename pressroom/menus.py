"""Navigation menus for Pressroom.

Menu entries are declared in the site configuration under ``menu`` (or
``menus``), grouped by menu name::

    [[menu.main]]
      identifier = "about"
      name = "About"
      url = "/about/"
      weight = -110

Menus are a pure function of configuration: entries sort by ascending weight
and keep their declaration order when weights tie.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .errors import ConfigError

if TYPE_CHECKING:
    from .config import SiteConfig


@dataclass(frozen=True)
class MenuEntry:
    """A single navigation entry.

    Attributes:
        identifier: Unique identifier within its menu.
        name: Display name.
        url: Target URL.
        weight: Sort weight; lower sorts first, may be negative.
        parent: Identifier of the parent entry for nested menus.
        order: Declaration index, used to break weight ties.
        params: Free-form parameters passed through to templates.
    """

    identifier: str
    name: str
    url: str
    weight: int | float = 0
    parent: str | None = None
    order: int = 0
    params: Mapping[str, Any] = field(default_factory=dict)


def _coerce_weight(value: Any, menu: str, identifier: str) -> int | float:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ConfigError(f"menu.{menu}.{identifier}: weight must be a number")
    if isinstance(value, str):
        text = value.strip()
        try:
            value = int(text)
        except ValueError:
            try:
                value = float(text)
            except ValueError:
                pass
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ConfigError(f"menu.{menu}.{identifier}: weight must be finite, got {value!r}")
        return value
    raise ConfigError(f"menu.{menu}.{identifier}: weight {value!r} is not a number")


def parse_menu_entries(menu: str, raw_entries: Any) -> tuple[MenuEntry, ...]:
    """Parse one menu's raw entries, keeping declaration order.

    Raises:
        ConfigError: If an entry is malformed or an identifier repeats.
    """
    if isinstance(raw_entries, Mapping):
        raw_entries = [raw_entries]
    if not isinstance(raw_entries, (list, tuple)):
        raise ConfigError(f"menu.{menu} must be a list of entries")
    entries: list[MenuEntry] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_entries):
        if not isinstance(raw, Mapping):
            raise ConfigError(f"menu.{menu}[{index}] must be a mapping")
        lowered = {str(k).lower(): v for k, v in raw.items()}
        name = lowered.get("name")
        identifier = lowered.get("identifier") or name
        if not identifier:
            raise ConfigError(f"menu.{menu}[{index}] needs an identifier or name")
        identifier = str(identifier)
        if identifier in seen:
            raise ConfigError(f"menu.{menu}: duplicate identifier '{identifier}'")
        seen.add(identifier)
        url = lowered.get("url") or lowered.get("pageref") or ""
        parent = lowered.get("parent")
        entries.append(
            MenuEntry(
                identifier=identifier,
                name=str(name or identifier),
                url=str(url),
                weight=_coerce_weight(lowered.get("weight"), menu, identifier),
                parent=str(parent) if parent else None,
                order=index,
                params=dict(lowered.get("params") or {}),
            )
        )
    return tuple(entries)


def sort_entries(entries: Iterable[MenuEntry]) -> list[MenuEntry]:
    """Sort entries by ascending weight, ties in declaration order."""
    return sorted(entries, key=lambda entry: (entry.weight, entry.order))


class Menu(Sequence[MenuEntry]):
    """An ordered menu with helpers for nested rendering."""

    def __init__(self, name: str, entries: Iterable[MenuEntry]):
        self.name = name
        self._entries = sort_entries(entries)

    def __iter__(self) -> Iterator[MenuEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, item):
        return self._entries[item]

    def roots(self) -> list[MenuEntry]:
        """Return entries without a parent, in menu order."""
        return [entry for entry in self._entries if entry.parent is None]

    def children(self, identifier: str) -> list[MenuEntry]:
        """Return the children of an entry, in menu order."""
        return [entry for entry in self._entries if entry.parent == identifier]

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"Menu({self.name!r}, {len(self._entries)} entries)"


def build_menus(config: SiteConfig) -> dict[str, Menu]:
    """Build all configured menus, ordered by weight.

    Returns:
        Mapping of menu name to Menu, in configuration order.

    Raises:
        ConfigError: If an entry names a parent that does not exist.
    """
    menus: dict[str, Menu] = {}
    for name, entries in config.menus.items():
        menu = Menu(name, entries)
        identifiers = {entry.identifier for entry in menu}
        for entry in menu:
            if entry.parent is not None and entry.parent not in identifiers:
                raise ConfigError(
                    f"menu.{name}.{entry.identifier}: unknown parent '{entry.parent}'"
                )
        menus[name] = menu
    return menus
