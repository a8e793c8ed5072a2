"""Staged LDIF export for directory data.

This package resolves export destinations, builds the layered output
pipeline (compression, encryption, hashing, buffering) and decides which
entries and attributes are exported.

Usage:
    python -m ldif_export people_export.yaml --input entries.jsonl
"""

from ldif_export.lib.config import ConflictPolicy, ExportConfig, ExportTarget, PipelineOptions, SelectionCriteria
from ldif_export.lib.session import ExportSession

__all__ = [
    "ConflictPolicy",
    "ExportConfig",
    "ExportSession",
    "ExportTarget",
    "PipelineOptions",
    "SelectionCriteria",
]
