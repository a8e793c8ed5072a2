"""Entry filters used by include/exclude selection.

Anything with a ``matches(entry) -> bool`` method can be used as a filter.
This module provides a small built-in set parsed from LDAP-style strings:

    (cn=John Doe)            equality (case-insensitive)
    (mail=*)                 presence
    (cn=Jo*n*)               substring
    (&(a=1)(b=2)) (|...) (!...)

Matching rules, approximate/ordering operators and extensible matches
are not supported.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from typing import Any, List, Protocol, Tuple, runtime_checkable

__all__ = [
    "AndFilter",
    "EntryFilter",
    "EqualityFilter",
    "NotFilter",
    "OrFilter",
    "PresenceFilter",
    "SubstringFilter",
    "parse_filter",
]


@runtime_checkable
class EntryFilter(Protocol):
    """Capability used by the selection policy."""

    def matches(self, entry: Any) -> bool:
        ...


@dataclass(frozen=True)
class PresenceFilter:
    attribute: str

    def matches(self, entry: Any) -> bool:
        return entry.has_attribute(self.attribute)

    def __str__(self) -> str:
        return f"({self.attribute}=*)"


@dataclass(frozen=True)
class EqualityFilter:
    attribute: str
    value: str

    def matches(self, entry: Any) -> bool:
        wanted = self.value.lower()
        return any(v.lower() == wanted for v in entry.get(self.attribute))

    def __str__(self) -> str:
        return f"({self.attribute}={self.value})"


@dataclass(frozen=True)
class SubstringFilter:
    attribute: str
    pattern: str

    def matches(self, entry: Any) -> bool:
        # Only '*' is a wildcard; escape the other fnmatch metacharacters.
        translated = "".join("[" + c + "]" if c in "?[]" else c for c in self.pattern.lower())
        return any(fnmatch.fnmatchcase(v.lower(), translated) for v in entry.get(self.attribute))

    def __str__(self) -> str:
        return f"({self.attribute}={self.pattern})"


@dataclass(frozen=True)
class AndFilter:
    components: Tuple[Any, ...]

    def matches(self, entry: Any) -> bool:
        return all(f.matches(entry) for f in self.components)

    def __str__(self) -> str:
        return "(&" + "".join(str(f) for f in self.components) + ")"


@dataclass(frozen=True)
class OrFilter:
    components: Tuple[Any, ...]

    def matches(self, entry: Any) -> bool:
        return any(f.matches(entry) for f in self.components)

    def __str__(self) -> str:
        return "(|" + "".join(str(f) for f in self.components) + ")"


@dataclass(frozen=True)
class NotFilter:
    component: Any

    def matches(self, entry: Any) -> bool:
        return not self.component.matches(entry)

    def __str__(self) -> str:
        return f"(!{self.component})"


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def error(self, message: str) -> ValueError:
        return ValueError(f"Invalid filter {self.text!r} at position {self.pos}: {message}")

    def expect(self, char: str) -> None:
        if self.pos >= len(self.text) or self.text[self.pos] != char:
            raise self.error(f"expected {char!r}")
        self.pos += 1

    def parse(self) -> Any:
        result = self.parse_filter()
        if self.pos != len(self.text):
            raise self.error("trailing characters")
        return result

    def parse_filter(self) -> Any:
        self.expect("(")
        if self.pos >= len(self.text):
            raise self.error("unexpected end")
        char = self.text[self.pos]
        if char in "&|":
            self.pos += 1
            components = self.parse_list()
            result: Any = AndFilter(components) if char == "&" else OrFilter(components)
        elif char == "!":
            self.pos += 1
            result = NotFilter(self.parse_filter())
        else:
            result = self.parse_item()
        self.expect(")")
        return result

    def parse_list(self) -> Tuple[Any, ...]:
        components: List[Any] = []
        while self.pos < len(self.text) and self.text[self.pos] == "(":
            components.append(self.parse_filter())
        if not components:
            raise self.error("empty filter list")
        return tuple(components)

    def parse_item(self) -> Any:
        end = self.text.find(")", self.pos)
        if end == -1:
            raise self.error("unterminated item")
        item = self.text[self.pos:end]
        attribute, sep, value = item.partition("=")
        attribute = attribute.strip()
        if not sep or not attribute or attribute[-1] in "<>~:":
            raise self.error(f"unsupported item {item!r}")
        self.pos = end
        if value == "*":
            return PresenceFilter(attribute)
        if "*" in value:
            return SubstringFilter(attribute, value)
        return EqualityFilter(attribute, value)


def parse_filter(text: str) -> Any:
    """Parse an LDAP-style filter string.

    A bare ``attr=value`` without parentheses is accepted as a convenience.

    Raises:
        ValueError: If the filter is malformed or uses unsupported syntax
    """
    stripped = text.strip()
    if not stripped.startswith("("):
        stripped = f"({stripped})"
    return _Parser(stripped).parse()
