"""Per-scope handler registries: plain event names plus ordered pattern rules."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, TypeAlias

from .model import STRUCTURAL_EVENTS

__all__ = [
    "EventRegistry",
    "Handler",
    "PatternRule",
    "parse_pattern_key",
    "serialize_pattern",
]

Handler: TypeAlias = Callable[[Any, Any], Awaitable[Any] | Any]

_FLAG_BITS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "a": re.ASCII,
}
# Accepted for compatibility; they change nothing for a single search.
_NOOP_FLAGS = frozenset("gu")


def _flags_from_letters(letters: str) -> int:
    bits = 0
    for letter in letters:
        if letter in _FLAG_BITS:
            bits |= _FLAG_BITS[letter]
        elif letter not in _NOOP_FLAGS:
            raise ValueError(f"Unsupported pattern flag {letter!r}")
    return bits


def _letters_from_flags(bits: int) -> str:
    return "".join(letter for letter, bit in _FLAG_BITS.items() if bits & bit)


def serialize_pattern(pattern: re.Pattern[str]) -> str:
    return f"/{pattern.pattern}/{_letters_from_flags(pattern.flags)}"


def parse_pattern_key(key: str) -> re.Pattern[str]:
    """Compile a `/body/flags` key into a pattern.

    The body is everything between the first and the last `/`; whatever
    follows the last `/` is the flag set.
    """
    if not key.startswith("/"):
        raise ValueError(f"Pattern key must start with '/': {key!r}")
    last = key.rfind("/")
    if last == 0:
        raise ValueError(f"Pattern key has no closing '/': {key!r}")
    body, letters = key[1:last], key[last + 1 :]
    try:
        return re.compile(body, _flags_from_letters(letters))
    except re.error as exc:
        raise ValueError(f"Invalid pattern key {key!r}: {exc}") from exc


def _check_handler(name: str, handler: Any) -> Handler:
    if not callable(handler):
        raise TypeError(f"Handler for {name!r} is not callable")
    return handler


@dataclass(frozen=True, slots=True)
class PatternRule:
    pattern: re.Pattern[str]
    handler: Handler
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", serialize_pattern(self.pattern))
        _check_handler(self.name, self.handler)

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


class EventRegistry:
    """Handlers for one scope. Read-only once built."""

    def __init__(
        self,
        events: Mapping[str, Handler] | None = None,
        rules: Iterable[PatternRule] = (),
    ) -> None:
        plain = {
            name: _check_handler(name, handler)
            for name, handler in (events or {}).items()
        }
        self._rules = tuple(rules)
        lookup = dict(plain)
        for rule in self._rules:
            if rule.name in STRUCTURAL_EVENTS:
                raise ValueError(
                    f"Pattern rule name {rule.name!r} is a structural event"
                )
            if rule.name in lookup:
                raise ValueError(f"Duplicate event name {rule.name!r}")
            lookup[rule.name] = rule.handler
        self._events = MappingProxyType(plain)
        self._lookup = MappingProxyType(lookup)

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[str | re.Pattern[str], Handler] | None
    ) -> EventRegistry:
        events: dict[str, Handler] = {}
        rules: list[PatternRule] = []
        for key, handler in (mapping or {}).items():
            if isinstance(key, re.Pattern):
                rules.append(PatternRule(pattern=key, handler=handler))
            elif isinstance(key, str):
                events[key] = handler
            else:
                raise TypeError(f"Unsupported event key {key!r}")
        return cls(events, rules)

    @property
    def events(self) -> Mapping[str, Handler]:
        return self._events

    @property
    def rules(self) -> tuple[PatternRule, ...]:
        return self._rules

    def get(self, name: str) -> Handler | None:
        return self._lookup.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._lookup

    def __len__(self) -> int:
        return len(self._lookup)
