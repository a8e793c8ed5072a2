"""Checksum manifests for hashed exports.

When an export runs with hashing enabled, the digest computed by the
pipeline (over the bytes that reached storage) is recorded next to the
export file so the output can be verified later without re-running it.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ldif_export.lib.layers import HashResult

logger = logging.getLogger(__name__)

__all__ = [
    "ExportManifest",
    "ManifestVerificationResult",
    "compute_file_sha256",
    "manifest_path_for",
    "verify_export_manifest",
    "write_export_manifest",
]

MANIFEST_SUFFIX = ".checksums.json"


@dataclass
class ExportManifest:
    """Checksum manifest for one export file."""

    timestamp: str
    file: str
    algorithm: str
    digest: str
    size_bytes: int
    entry_count: int = 0
    signature: Optional[str] = None  # base64
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportManifest":
        return cls(
            timestamp=data.get("timestamp", ""),
            file=data["file"],
            algorithm=data.get("algorithm", "sha256"),
            digest=data["digest"],
            size_bytes=data.get("size_bytes", 0),
            entry_count=data.get("entry_count", 0),
            signature=data.get("signature"),
            extra=data.get("extra", {}),
        )

    @classmethod
    def from_file(cls, path: Path) -> "ExportManifest":
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


@dataclass
class ManifestVerificationResult:
    """Result of checking an export file against its manifest."""

    valid: bool
    expected: Optional[str] = None
    actual: Optional[str] = None
    error: Optional[str] = None
    verification_time_ms: float = 0.0

    def __str__(self) -> str:
        status = "VALID" if self.valid else "INVALID"
        return f"ManifestVerification({status}, time={self.verification_time_ms:.1f}ms)"


def compute_file_sha256(path: Path) -> str:
    """Compute SHA256 of a file, reading it in 1MB chunks."""
    hasher = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def manifest_path_for(export_path: Path) -> Path:
    return export_path.with_name(export_path.name + MANIFEST_SUFFIX)


def write_export_manifest(
    export_path: Path,
    hash_result: HashResult,
    *,
    entry_count: int = 0,
    extra_metadata: Optional[Dict[str, Any]] = None,
) -> Path:
    """Write ``<export>.checksums.json`` beside the export file.

    The digest comes from the pipeline rather than a re-read of the file,
    so for an appended export it covers only the bytes of this run.
    """
    signature = (
        base64.b64encode(hash_result.signature).decode("ascii")
        if hash_result.signature is not None
        else None
    )
    manifest = ExportManifest(
        timestamp=datetime.now(timezone.utc).isoformat(),
        file=export_path.name,
        algorithm=hash_result.algorithm,
        digest=hash_result.hexdigest,
        size_bytes=hash_result.byte_count,
        entry_count=entry_count,
        signature=signature,
        extra=extra_metadata or {},
    )
    manifest_path = manifest_path_for(export_path)
    manifest_path.write_text(manifest.to_json(), encoding="utf-8")
    logger.info("Wrote checksum manifest to %s", manifest_path)
    return manifest_path


def verify_export_manifest(export_path: Path) -> ManifestVerificationResult:
    """Verify an export file against its manifest.

    Only meaningful for exports written from an empty file (FAIL or
    OVERWRITE policy, or APPEND to a new file).
    """
    start_time = time.perf_counter()

    def _elapsed() -> float:
        return (time.perf_counter() - start_time) * 1000

    manifest_path = manifest_path_for(export_path)
    if not manifest_path.exists():
        return ManifestVerificationResult(valid=False, error=f"missing {manifest_path.name}")
    if not export_path.exists():
        return ManifestVerificationResult(valid=False, error=f"missing {export_path.name}")

    try:
        manifest = ExportManifest.from_file(manifest_path)
    except (json.JSONDecodeError, KeyError, OSError) as exc:
        logger.warning("Failed to read checksum manifest: %s", exc)
        return ManifestVerificationResult(valid=False, error=str(exc), verification_time_ms=_elapsed())

    actual = compute_file_sha256(export_path)
    valid = actual == manifest.digest
    if not valid:
        logger.warning(
            "Checksum mismatch for %s: expected %s..., got %s...",
            export_path,
            manifest.digest[:16],
            actual[:16],
        )
    return ManifestVerificationResult(
        valid=valid,
        expected=manifest.digest,
        actual=actual,
        verification_time_ms=_elapsed(),
    )
