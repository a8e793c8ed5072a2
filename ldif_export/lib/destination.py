"""Export destination resolution.

Turns an ``ExportTarget`` plus a ``ConflictPolicy`` into an open raw byte
sink. Each policy has its own handler:

    FAIL       existing file -> DestinationConflictError, else create
    APPEND     create if missing, then open for appending
    OVERWRITE  create if missing, then open truncating

Files created here are restricted to owner read/write (0600). Files that
already existed keep their permissions.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List, Optional, Tuple

from ldif_export.lib.config import ConflictPolicy, ExportTarget
from ldif_export.lib.errors import (
    ConfigurationError,
    CreateFailedError,
    DestinationConflictError,
    PermissionSetupError,
)
from ldif_export.lib.observability import get_structlog_logger

logger = get_structlog_logger(__name__)

__all__ = ["ResolvedDestination", "SAFE_FILE_MODE", "harden_permissions", "resolve_destination"]

SAFE_FILE_MODE = 0o600


@dataclass
class ResolvedDestination:
    """An open raw sink and what it took to get it."""

    sink: BinaryIO
    path: Optional[Path] = None
    newly_created: bool = False
    owned: bool = False  # True when the session must close the sink
    warnings: List[PermissionSetupError] = field(default_factory=list)

    def close(self) -> None:
        """Flush the sink, closing it only when this resolver opened it."""
        try:
            self.sink.flush()
        finally:
            if self.owned:
                self.sink.close()


def harden_permissions(path: Path) -> None:
    """Restrict a file to owner read/write."""
    os.chmod(path, SAFE_FILE_MODE)


def _open_fail(path: Path) -> Tuple[BinaryIO, bool]:
    if path.exists():
        raise DestinationConflictError(str(path))
    # "x" closes the window between the existence check and creation.
    try:
        return open(path, "xb"), True
    except FileExistsError as exc:
        raise DestinationConflictError(str(path)) from exc


def _open_append(path: Path) -> Tuple[BinaryIO, bool]:
    created = not path.exists()
    return open(path, "ab"), created


def _open_overwrite(path: Path) -> Tuple[BinaryIO, bool]:
    created = not path.exists()
    return open(path, "wb"), created


_HANDLERS: Dict[ConflictPolicy, Callable[[Path], Tuple[BinaryIO, bool]]] = {
    ConflictPolicy.FAIL: _open_fail,
    ConflictPolicy.APPEND: _open_append,
    ConflictPolicy.OVERWRITE: _open_overwrite,
}


def resolve_destination(
    target: ExportTarget,
    policy: ConflictPolicy,
    *,
    hardener: Callable[[Path], None] = harden_permissions,
) -> ResolvedDestination:
    """Open the raw sink for an export target.

    Args:
        target: File path or caller-supplied stream
        policy: Conflict policy (ignored for streams)
        hardener: Applies owner-only permissions to newly created files

    Returns:
        ResolvedDestination wrapping the open sink

    Raises:
        DestinationConflictError: FAIL policy and the file already exists
        CreateFailedError: The file could not be created or opened
    """
    if target.stream is not None:
        logger.debug("destination_stream", target=target.describe())
        return ResolvedDestination(sink=target.stream)

    path = target.path
    if path is None:
        raise ConfigurationError("Export target has neither a path nor a stream", field="target")
    handler = _HANDLERS[policy]

    try:
        sink, created = handler(path)
    except DestinationConflictError:
        logger.error("destination_conflict", path=str(path), policy=policy.value)
        raise
    except OSError as exc:
        logger.error("destination_create_failed", path=str(path), error=str(exc))
        raise CreateFailedError(str(path), cause=exc) from exc

    resolved = ResolvedDestination(sink=sink, path=path, newly_created=created, owned=True)

    if created:
        try:
            hardener(path)
        except OSError as exc:
            warning = PermissionSetupError(str(path), cause=exc)
            resolved.warnings.append(warning)
            logger.warning("destination_permissions_not_set", path=str(path), error=str(exc))
        except Exception:
            sink.close()
            raise

    logger.info(
        "destination_resolved",
        path=str(path),
        policy=policy.value,
        newly_created=created,
    )
    return resolved
