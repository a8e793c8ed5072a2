"""Immutable export configuration.

An ``ExportConfig`` is built once by the caller (directly, or from YAML via
``ldif_export.lib.config_loader``) and handed to an ``ExportSession``. All
values are frozen: to change an option, derive a new config with
``dataclasses.replace``. An already-open session keeps the snapshot it was
created with.

Example:
    config = ExportConfig(
        target=ExportTarget.for_path("./out/export.ldif"),
        conflict_policy=ConflictPolicy.OVERWRITE,
        options=PipelineOptions(compress=True, hash=True),
        criteria=SelectionCriteria.build(exclude_branches=["ou=private,dc=example"]),
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, FrozenSet, Iterable, Optional, Tuple, Union

from ldif_export.lib.dn import DN
from ldif_export.lib.errors import ConfigurationError
from ldif_export.lib.filters import parse_filter

__all__ = [
    "ConflictPolicy",
    "ExportConfig",
    "ExportTarget",
    "PipelineOptions",
    "SelectionCriteria",
]


class ConflictPolicy(Enum):
    """What to do when the target file already exists."""

    APPEND = "append"  # Keep existing bytes, write after them
    OVERWRITE = "overwrite"  # Truncate existing content
    FAIL = "fail"  # Refuse to touch an existing file


@dataclass(frozen=True)
class ExportTarget:
    """Where exported bytes go: a file path XOR a caller-supplied sink."""

    path: Optional[Path] = None
    stream: Optional[BinaryIO] = None

    def __post_init__(self) -> None:
        if (self.path is None) == (self.stream is None):
            raise ConfigurationError(
                "Export target needs exactly one of a file path or an output stream",
                field="target",
            )

    @classmethod
    def for_path(cls, path: Union[str, Path]) -> "ExportTarget":
        return cls(path=Path(path))

    @classmethod
    def for_stream(cls, stream: BinaryIO) -> "ExportTarget":
        return cls(stream=stream)

    @property
    def is_file(self) -> bool:
        return self.path is not None

    def describe(self) -> str:
        """Human-readable name for logs and errors."""
        if self.path is not None:
            return str(self.path)
        return f"<stream {type(self.stream).__name__}>"


@dataclass(frozen=True)
class PipelineOptions:
    """Output pipeline switches."""

    compress: bool = False
    encrypt: bool = False
    hash: bool = False
    sign_hash: bool = False  # Only meaningful with hash=True
    types_only: bool = False
    wrap_column: int = -1  # <= 0 disables line folding

    @property
    def wraps_lines(self) -> bool:
        return self.wrap_column > 0

    @property
    def signs_hash(self) -> bool:
        return self.hash and self.sign_hash


def _normalize_attributes(names: Iterable[str]) -> FrozenSet[str]:
    return frozenset(name.strip().lower() for name in names if name.strip())


@dataclass(frozen=True)
class SelectionCriteria:
    """Which entries and attributes survive the export.

    Branch and filter collections are ordered; attribute sets hold
    lower-cased attribute type names.
    """

    exclude_branches: Tuple[DN, ...] = ()
    include_branches: Tuple[DN, ...] = ()
    exclude_filters: Tuple[Any, ...] = ()
    include_filters: Tuple[Any, ...] = ()
    exclude_attributes: FrozenSet[str] = frozenset()
    include_attributes: FrozenSet[str] = frozenset()

    @classmethod
    def build(
        cls,
        *,
        exclude_branches: Iterable[Union[str, DN]] = (),
        include_branches: Iterable[Union[str, DN]] = (),
        exclude_filters: Iterable[Any] = (),
        include_filters: Iterable[Any] = (),
        exclude_attributes: Iterable[str] = (),
        include_attributes: Iterable[str] = (),
    ) -> "SelectionCriteria":
        """Build criteria from strings or already-parsed values.

        Filter strings are parsed with ``parse_filter``; objects with a
        ``matches`` method are used as-is.
        """
        try:
            return cls(
                exclude_branches=tuple(DN.parse(b) for b in exclude_branches),
                include_branches=tuple(DN.parse(b) for b in include_branches),
                exclude_filters=tuple(_as_filter(f) for f in exclude_filters),
                include_filters=tuple(_as_filter(f) for f in include_filters),
                exclude_attributes=_normalize_attributes(exclude_attributes),
                include_attributes=_normalize_attributes(include_attributes),
            )
        except ValueError as exc:
            raise ConfigurationError(f"Invalid selection criteria: {exc}") from exc

    @property
    def is_empty(self) -> bool:
        return not (
            self.exclude_branches
            or self.include_branches
            or self.exclude_filters
            or self.include_filters
            or self.exclude_attributes
            or self.include_attributes
        )


def _as_filter(value: Any) -> Any:
    if isinstance(value, str):
        return parse_filter(value)
    if not hasattr(value, "matches"):
        raise ValueError(f"{value!r} is not a filter")
    return value


@dataclass(frozen=True)
class ExportConfig:
    """Complete, immutable description of one export."""

    target: ExportTarget
    conflict_policy: ConflictPolicy = ConflictPolicy.FAIL
    options: PipelineOptions = field(default_factory=PipelineOptions)
    criteria: SelectionCriteria = field(default_factory=SelectionCriteria)

    # Attribute classes carried over from the server's export settings
    include_object_classes: bool = True
    include_operational_attributes: bool = True
    include_virtual_attributes: bool = False
    invoke_export_plugins: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.conflict_policy, ConflictPolicy):
            raise ConfigurationError(
                "conflict_policy must be a ConflictPolicy",
                field="conflict_policy",
                value=self.conflict_policy,
            )
