"""Export library modules.

This package contains the destination resolver, output pipeline, selection
policy and export session, plus the small collaborators (DN values,
filters, LDIF rendering) used to drive them.
"""

from ldif_export.lib.checksum import (
    ExportManifest,
    ManifestVerificationResult,
    compute_file_sha256,
    verify_export_manifest,
    write_export_manifest,
)
from ldif_export.lib.config import (
    ConflictPolicy,
    ExportConfig,
    ExportTarget,
    PipelineOptions,
    SelectionCriteria,
)
from ldif_export.lib.config_loader import (
    ExportSettingsModel,
    RuntimeSettings,
    build_export_config,
    load_export_config,
)
from ldif_export.lib.destination import ResolvedDestination, resolve_destination
from ldif_export.lib.dn import DN, is_ancestor_or_equal
from ldif_export.lib.env import expand_env_vars, expand_values, load_env_file
from ldif_export.lib.errors import (
    CloseError,
    ConfigurationError,
    CreateFailedError,
    DestinationConflictError,
    ExportError,
    FilterEvaluationError,
    PermissionSetupError,
    PipelineConstructionError,
    SessionStateError,
)
from ldif_export.lib.exporter import ExportResult, export_entries
from ldif_export.lib.filters import parse_filter
from ldif_export.lib.layers import (
    Encryptor,
    ExportWriter,
    HashResult,
    HashSigner,
    PipelineHooks,
    SinkLayer,
)
from ldif_export.lib.ldif import render_entry
from ldif_export.lib.pipeline import LAYER_ORDER, BuiltPipeline, build_pipeline
from ldif_export.lib.records import Entry, entry_from_dict, read_entries_jsonl
from ldif_export.lib.selection import Decision, SelectionPolicy
from ldif_export.lib.session import CloseResult, ExportSession, SessionState

__all__ = [
    # Checksum
    "ExportManifest",
    "ManifestVerificationResult",
    "compute_file_sha256",
    "verify_export_manifest",
    "write_export_manifest",
    # Config
    "ConflictPolicy",
    "ExportConfig",
    "ExportTarget",
    "PipelineOptions",
    "SelectionCriteria",
    "ExportSettingsModel",
    "RuntimeSettings",
    "build_export_config",
    "load_export_config",
    # Destination
    "ResolvedDestination",
    "resolve_destination",
    # DN
    "DN",
    "is_ancestor_or_equal",
    # Environment
    "expand_env_vars",
    "expand_values",
    "load_env_file",
    # Errors
    "CloseError",
    "ConfigurationError",
    "CreateFailedError",
    "DestinationConflictError",
    "ExportError",
    "FilterEvaluationError",
    "PermissionSetupError",
    "PipelineConstructionError",
    "SessionStateError",
    # Exporter
    "ExportResult",
    "export_entries",
    # Filters
    "parse_filter",
    # Layers
    "Encryptor",
    "ExportWriter",
    "HashResult",
    "HashSigner",
    "PipelineHooks",
    "SinkLayer",
    # LDIF
    "render_entry",
    # Pipeline
    "LAYER_ORDER",
    "BuiltPipeline",
    "build_pipeline",
    # Records
    "Entry",
    "entry_from_dict",
    "read_entries_jsonl",
    # Selection
    "Decision",
    "SelectionPolicy",
    # Session
    "CloseResult",
    "ExportSession",
    "SessionState",
]
