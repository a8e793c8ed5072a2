"""Distinguished name values used for branch selection.

This is deliberately small: it splits a DN string into RDNs (honouring
backslash escapes), normalizes each component for case-insensitive
comparison, and answers hierarchical containment questions. It does not
implement the full RFC 4514 grammar (hex-encoded values, schema-aware
matching rules).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple, Union

__all__ = ["DN", "is_ancestor_or_equal"]


def _split_unescaped(value: str, separator: str) -> List[str]:
    parts: List[str] = []
    current: List[str] = []
    escaped = False
    for char in value:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            current.append(char)
            escaped = True
        elif char == separator:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    if escaped:
        raise ValueError(f"DN ends with a dangling escape: {value!r}")
    parts.append("".join(current))
    return parts


def _normalize_rdn(rdn: str, source: str) -> str:
    avas = []
    for ava in _split_unescaped(rdn, "+"):
        attr, sep, val = ava.partition("=")
        if not sep or not attr.strip():
            raise ValueError(f"Invalid RDN {rdn.strip()!r} in DN {source!r}")
        avas.append(f"{attr.strip().lower()}={val.strip().lower()}")
    return "+".join(sorted(avas))


@dataclass(frozen=True)
class DN:
    """A parsed distinguished name.

    ``rdns`` holds normalized RDNs ordered leaf first, the way they are
    written: ``uid=a,dc=example`` -> ``("uid=a", "dc=example")``.
    """

    rdns: Tuple[str, ...]
    raw: str = ""

    @classmethod
    def parse(cls, value: Union[str, "DN"]) -> "DN":
        """Parse a DN string; an empty string is the root DN."""
        if isinstance(value, DN):
            return value
        text = value.strip()
        if not text:
            return cls(rdns=(), raw="")
        rdns = tuple(_normalize_rdn(rdn, text) for rdn in _split_unescaped(text, ","))
        return cls(rdns=rdns, raw=text)

    def is_root(self) -> bool:
        return not self.rdns

    def parent(self) -> "DN":
        if self.is_root():
            raise ValueError("The root DN has no parent")
        return DN(rdns=self.rdns[1:], raw=",".join(self.rdns[1:]))

    def is_ancestor_or_equal(self, other: "DN") -> bool:
        """True if ``other`` is this DN or lies anywhere beneath it."""
        if len(self.rdns) > len(other.rdns):
            return False
        return other.rdns[len(other.rdns) - len(self.rdns):] == self.rdns

    def __str__(self) -> str:
        return self.raw or ",".join(self.rdns)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DN):
            return NotImplemented
        return self.rdns == other.rdns

    def __hash__(self) -> int:
        return hash(self.rdns)


def is_ancestor_or_equal(branch: DN, dn: DN) -> bool:
    """Default containment capability used by selection policies."""
    return branch.is_ancestor_or_equal(dn)
