"""Export driver.

Runs the export loop over candidate entries: decide, select attributes,
optionally run export plugins, render LDIF and write through the session
sink. Usage:

    from ldif_export.lib.exporter import export_entries

    result = export_entries(config, read_entries_jsonl("entries.jsonl"))
    print(result.to_dict())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ldif_export.lib.checksum import write_export_manifest
from ldif_export.lib.config import ExportConfig
from ldif_export.lib.errors import FilterEvaluationError
from ldif_export.lib.layers import HashResult, PipelineHooks
from ldif_export.lib.ldif import render_entry
from ldif_export.lib.observability import ExportMetrics, get_structlog_logger
from ldif_export.lib.selection import Decision
from ldif_export.lib.session import ExportSession

logger = get_structlog_logger(__name__)

__all__ = ["ExportPlugin", "ExportResult", "export_entries"]

ExportPlugin = Callable[[Any], Optional[Any]]
Renderer = Callable[..., str]

FILTER_ERROR_MODES = ("raise", "skip")


@dataclass
class ExportResult:
    """Outcome of an export run."""

    target: str
    entries_read: int = 0
    entries_exported: int = 0
    entries_excluded: int = 0
    entries_skipped_by_plugins: int = 0
    filter_errors: List[str] = field(default_factory=list)
    bytes_written: int = 0
    hash_result: Optional[HashResult] = None
    manifest_file: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "target": self.target,
            "entries_read": self.entries_read,
            "entries_exported": self.entries_exported,
            "entries_excluded": self.entries_excluded,
            "bytes_written": self.bytes_written,
        }
        if self.entries_skipped_by_plugins:
            result["entries_skipped_by_plugins"] = self.entries_skipped_by_plugins
        if self.filter_errors:
            result["filter_errors"] = self.filter_errors
        if self.hash_result:
            result["digest"] = f"{self.hash_result.algorithm}:{self.hash_result.hexdigest}"
        if self.manifest_file:
            result["manifest_file"] = self.manifest_file
        if self.warnings:
            result["warnings"] = self.warnings
        return result


def _apply_plugins(entry: Any, plugins: Sequence[ExportPlugin]) -> Optional[Any]:
    for plugin in plugins:
        entry = plugin(entry)
        if entry is None:
            return None
    return entry


def export_entries(
    config: ExportConfig,
    entries: Iterable[Any],
    *,
    hooks: Optional[PipelineHooks] = None,
    plugins: Sequence[ExportPlugin] = (),
    renderer: Renderer = render_entry,
    on_filter_error: str = "raise",
    flush_every: int = 100,
    write_manifest: bool = True,
) -> ExportResult:
    """Export entries through a new session.

    Args:
        config: Export configuration
        entries: Candidate entries (objects with ``dn`` and ``attributes``)
        hooks: Encryptor/signer implementations
        plugins: Export plugins, run only when ``config.invoke_export_plugins``
        renderer: ``(dn, attributes, types_only=, wrap_column=) -> str``
        on_filter_error: "raise" aborts the export, "skip" drops the entry
        flush_every: Flush the buffer after this many exported entries
        write_manifest: Write a checksum manifest for hashed file exports

    Returns:
        ExportResult with counts, digest and manifest location

    Raises:
        FilterEvaluationError: A filter failed and on_filter_error is "raise"
    """
    if on_filter_error not in FILTER_ERROR_MODES:
        raise ValueError(f"on_filter_error must be one of {FILTER_ERROR_MODES}")

    options = config.options
    session = ExportSession(config, hooks=hooks)
    result = ExportResult(target=session.target)
    metrics = ExportMetrics(session.target)
    active_plugins = plugins if config.invoke_export_plugins else ()

    with session:
        with metrics.time_phase("write"):
            for entry in entries:
                result.entries_read += 1
                try:
                    decision = session.decide(entry)
                except FilterEvaluationError as exc:
                    if on_filter_error == "raise":
                        raise
                    result.filter_errors.append(str(entry.dn))
                    logger.warning("entry_skipped_filter_error", dn=str(entry.dn), error=exc.message)
                    continue

                if decision is Decision.EXCLUDE:
                    result.entries_excluded += 1
                    continue

                if active_plugins:
                    entry = _apply_plugins(entry, active_plugins)
                    if entry is None:
                        result.entries_skipped_by_plugins += 1
                        continue

                attributes = session.policy.select_attributes(entry)
                text = renderer(
                    str(entry.dn),
                    attributes,
                    types_only=options.types_only,
                    wrap_column=options.wrap_column,
                )
                sink = session.sink()
                sink.write_text(text)
                result.entries_exported += 1
                if flush_every > 0 and result.entries_exported % flush_every == 0:
                    sink.flush()

            # An empty export still gets gzip framing and a digest.
            session.sink()

        close_result = session.close()

    result.bytes_written = close_result.bytes_written
    result.hash_result = close_result.hash_result
    result.warnings = [w.message for w in close_result.warnings]

    path = config.target.path
    if write_manifest and path is not None and result.hash_result is not None:
        manifest = write_export_manifest(
            path,
            result.hash_result,
            entry_count=result.entries_exported,
        )
        result.manifest_file = str(manifest)

    metrics.record("entries_read", result.entries_read, unit="entries")
    metrics.record("entries_exported", result.entries_exported, unit="entries")
    metrics.record("entries_excluded", result.entries_excluded, unit="entries")
    metrics.record("bytes_written", result.bytes_written, unit="bytes")
    metrics.finish()
    logger.info("export_complete", **metrics.to_log_dict())
    return result
