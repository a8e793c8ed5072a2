"""Minimal LDIF record rendering.

Produces RFC 2849 content records: ``dn:`` line, one line per value,
base64 (``::``) for values that are not safe strings, optional folding at
a wrap column, and a blank line after each record.
"""

from __future__ import annotations

import base64
from typing import Dict, Iterable, List

__all__ = ["fold_line", "format_line", "render_entry"]

_UNSAFE_START = (" ", ":", "<")


def _is_safe(value: str) -> bool:
    if not value:
        return True
    if value.startswith(_UNSAFE_START) or value.endswith(" "):
        return False
    return all(0 < ord(c) < 128 and c not in "\r\n" for c in value)


def format_line(name: str, value: str) -> str:
    """Format one ``name: value`` line, base64-encoding unsafe values."""
    if _is_safe(value):
        return f"{name}: {value}" if value else f"{name}:"
    # Lone surrogates are written as their raw code units.
    encoded = base64.b64encode(value.encode("utf-8", "surrogatepass")).decode("ascii")
    return f"{name}:: {encoded}"


def fold_line(line: str, wrap_column: int) -> List[str]:
    """Split a line so no physical line exceeds ``wrap_column`` characters.

    Continuation lines start with a single space.
    """
    if wrap_column <= 1 or len(line) <= wrap_column:
        return [line]
    lines = [line[:wrap_column]]
    rest = line[wrap_column:]
    step = wrap_column - 1
    while rest:
        lines.append(" " + rest[:step])
        rest = rest[step:]
    return lines


def render_entry(
    dn: str,
    attributes: Dict[str, Iterable[str]],
    *,
    types_only: bool = False,
    wrap_column: int = -1,
) -> str:
    """Render one entry as an LDIF record, including the trailing blank line."""
    lines = [format_line("dn", dn)]
    for name, values in attributes.items():
        if types_only:
            lines.append(f"{name}:")
            continue
        lines.extend(format_line(name, value) for value in values)

    physical: List[str] = []
    for line in lines:
        physical.extend(fold_line(line, wrap_column) if wrap_column > 0 else [line])
    return "\n".join(physical) + "\n\n"
