"""Shared test doubles for export tests."""

from typing import Any, Dict, List, Optional

from ldif_export.lib.dn import DN
from ldif_export.lib.records import Entry


def make_entry(
    dn: str,
    attributes: Optional[Dict[str, List[str]]] = None,
    *,
    operational: Optional[List[str]] = None,
    virtual: Optional[List[str]] = None,
) -> Entry:
    """Build an Entry for tests."""
    return Entry(
        dn=DN.parse(dn),
        attributes=attributes or {},
        operational_attributes=frozenset(a.lower() for a in operational or []),
        virtual_attributes=frozenset(a.lower() for a in virtual or []),
    )


class ExplodingFilter:
    """Filter whose evaluation always fails."""

    def matches(self, entry: Any) -> bool:
        raise RuntimeError("matching rule unavailable")

    def __str__(self) -> str:
        return "(exploding=*)"


class RecordingFilter:
    """Filter that records which entries it was asked about."""

    def __init__(self, result: bool):
        self.result = result
        self.seen: List[str] = []

    def matches(self, entry: Any) -> bool:
        self.seen.append(str(entry.dn))
        return self.result

    def __str__(self) -> str:
        return f"(recording={self.result})"


class XorEncryptor:
    """Toy streaming cipher for exercising the encryption hook."""

    def __init__(self, key: int = 0x5A):
        self.key = key
        self.finalized = False

    def update(self, data: bytes) -> bytes:
        return bytes(b ^ self.key for b in data)

    def finalize(self) -> bytes:
        self.finalized = True
        return b"END"


class FakeSigner:
    def __init__(self):
        self.signed: List[bytes] = []

    def sign(self, digest: bytes) -> bytes:
        self.signed.append(digest)
        return b"sig:" + digest[:4]


class FailingCloseStream:
    """Raw sink whose close() fails, for release-failure tests."""

    def __init__(self):
        self.data = bytearray()
        self.closed = False

    def write(self, data: bytes) -> int:
        self.data.extend(data)
        return len(data)

    def flush(self) -> None:
        raise OSError("disk went away")

    def close(self) -> None:
        self.closed = True
