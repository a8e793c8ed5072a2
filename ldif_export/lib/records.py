"""Directory entries handed to the export engine.

Entries are read from JSON lines, one object per line:

    {"dn": "uid=jdoe,ou=people,dc=example,dc=com",
     "attributes": {"objectClass": ["top", "person"], "cn": ["John Doe"]},
     "operational": ["createTimestamp"],
     "virtual": ["isMemberOf"]}

``operational`` and ``virtual`` name attributes (present in ``attributes``)
that carry those properties.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterator, List, Union

from ldif_export.lib.dn import DN
from ldif_export.lib.errors import ConfigurationError

__all__ = ["Entry", "entry_from_dict", "read_entries_jsonl"]


@dataclass(frozen=True)
class Entry:
    """One exported unit of directory data."""

    dn: DN
    attributes: Dict[str, List[str]] = field(default_factory=dict)
    operational_attributes: FrozenSet[str] = frozenset()
    virtual_attributes: FrozenSet[str] = frozenset()

    def get(self, attribute: str) -> List[str]:
        """Return the values of an attribute, matching the name case-insensitively."""
        wanted = attribute.lower()
        for name, values in self.attributes.items():
            if name.lower() == wanted:
                return values
        return []

    def has_attribute(self, attribute: str) -> bool:
        wanted = attribute.lower()
        return any(name.lower() == wanted for name in self.attributes)

    def is_operational(self, attribute: str) -> bool:
        return attribute.lower() in self.operational_attributes

    def is_virtual(self, attribute: str) -> bool:
        return attribute.lower() in self.virtual_attributes


def _as_text(value: Any) -> str:
    text = str(value)
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise ValueError(f"value {text!r} is not valid Unicode text") from exc
    return text


def _as_values(value: Any) -> List[str]:
    if isinstance(value, list):
        return [_as_text(v) for v in value]
    return [_as_text(value)]


def entry_from_dict(data: Dict[str, Any]) -> Entry:
    """Build an Entry from its JSON representation."""
    if "dn" not in data:
        raise ValueError("entry is missing 'dn'")
    attributes = {
        str(name): _as_values(values)
        for name, values in (data.get("attributes") or {}).items()
    }
    return Entry(
        dn=DN.parse(_as_text(data["dn"])),
        attributes=attributes,
        operational_attributes=frozenset(a.lower() for a in data.get("operational", [])),
        virtual_attributes=frozenset(a.lower() for a in data.get("virtual", [])),
    )


def read_entries_jsonl(
    path: Union[str, Path],
    *,
    encoding: str = "utf-8",
) -> Iterator[Entry]:
    """Yield entries from a JSON lines file, skipping blank lines.

    Raises:
        ConfigurationError: If a line is not a valid entry object
    """
    source = Path(path)
    with source.open(encoding=encoding) as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                yield entry_from_dict(json.loads(line))
            except (json.JSONDecodeError, ValueError) as exc:
                raise ConfigurationError(
                    f"Invalid entry on line {line_no} of {source}",
                    field="input",
                    value=line.strip()[:80],
                    details={"cause": str(exc)},
                ) from exc
