"""Limit classes and their glob-matched keys.

A catalog is built once at startup and never changes afterwards. Classes are
looked up by exact name; keys inside a class are tried in configuration order
and the first pattern that matches the whole value wins.

Patterns follow POSIX fnmatch(3) with no flags: ``*`` and ``?`` match any
character including ``/`` and a leading ``.``, ``[!...]`` and ``[^...]``
negate, ``[[:digit:]]`` style classes work and ``\\`` escapes the next
character.
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from wcmatch import fnmatch

DEFAULT_CLASS_NAME_MAX_LENGTH = 49
GLOB_FLAGS = fnmatch.CASE | fnmatch.DOTMATCH | fnmatch.FORCEUNIX


class ConfigurationError(Exception):
    """Raised when limits cannot be loaded; the service must not start."""


@dataclass(frozen=True)
class LimitKey:
    pattern: str
    window: int
    limit: int

    def matches(self, value: str) -> bool:
        return fnmatch.fnmatch(value, self.pattern, flags=GLOB_FLAGS)


@dataclass(frozen=True)
class LimitClass:
    name: str
    keys: tuple[LimitKey, ...]

    def match(self, value: str) -> LimitKey | None:
        for key in self.keys:
            if key.matches(value):
                return key
        return None


def _build_key(class_name: str, index: int, triple: Sequence[object]) -> LimitKey:
    if len(triple) != 3:
        raise ConfigurationError(f"Class {class_name}: key #{index} must be (pattern, window, limit)")
    pattern, window, limit = triple
    if not isinstance(pattern, str) or not pattern:
        raise ConfigurationError(f"Class {class_name}: key #{index} has an empty pattern")
    if isinstance(window, bool) or not isinstance(window, int) or window <= 0:
        raise ConfigurationError(f"Class {class_name}: key {pattern!r} window must be a positive integer")
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise ConfigurationError(f"Class {class_name}: key {pattern!r} limit must be a non-negative integer")
    return LimitKey(pattern=pattern, window=window, limit=limit)


class Catalog(Mapping[str, LimitClass]):
    def __init__(self, classes: Mapping[str, LimitClass]) -> None:
        self._classes = MappingProxyType(dict(classes))

    @classmethod
    def from_definitions(
        cls,
        definitions: Iterable[tuple[str, Iterable[Sequence[object]]]],
        *,
        max_name_length: int = DEFAULT_CLASS_NAME_MAX_LENGTH,
    ) -> "Catalog":
        classes: dict[str, LimitClass] = {}
        for name, triples in definitions:
            if not name:
                raise ConfigurationError("Class name must not be empty")
            if len(name) > max_name_length:
                raise ConfigurationError(f"Class name exceeds {max_name_length} characters: {name}")
            if name in classes:
                raise ConfigurationError(f"Duplicate class: {name}")
            keys = tuple(_build_key(name, index, triple) for index, triple in enumerate(triples))
            classes[name] = LimitClass(name=name, keys=keys)
        return cls(classes)

    def lookup(self, name: str) -> LimitClass | None:
        return self._classes.get(name)

    def max_window(self) -> int:
        return max((key.window for limit_class in self._classes.values() for key in limit_class.keys), default=0)

    def __getitem__(self, name: str) -> LimitClass:
        return self._classes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._classes)

    def __len__(self) -> int:
        return len(self._classes)
