"""CLI entry point for running exports.

Usage:
    python -m ldif_export people_export.yaml --input entries.jsonl
    python -m ldif_export people_export.yaml --input entries.jsonl --dry-run
    python -m ldif_export --verify ./out/people.ldif
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ldif_export.lib.checksum import verify_export_manifest
from ldif_export.lib.config import ExportConfig
from ldif_export.lib.config_loader import RuntimeSettings, load_export_config
from ldif_export.lib.env import load_env_file
from ldif_export.lib.errors import ExportError
from ldif_export.lib.exporter import export_entries
from ldif_export.lib.observability import setup_logging
from ldif_export.lib.records import read_entries_jsonl
from ldif_export.lib.selection import SelectionPolicy

logger = logging.getLogger(__name__)


def explain(config: ExportConfig) -> None:
    """Print what an export would do without writing anything."""
    options = config.options
    criteria = config.criteria
    layers = [
        name
        for name, on in (("compress", options.compress), ("encrypt", options.encrypt), ("hash", options.hash))
        if on
    ]
    print(f"Target:          {config.target.describe()}")
    print(f"Conflict policy: {config.conflict_policy.value}")
    print(f"Layers:          {' -> '.join(['buffer'] + layers + ['file'])}")
    if options.signs_hash:
        print("Hash signing:    enabled")
    print(f"Wrap column:     {options.wrap_column if options.wraps_lines else 'none'}")
    for label, values in (
        ("Exclude branches", criteria.exclude_branches),
        ("Include branches", criteria.include_branches),
        ("Exclude filters", criteria.exclude_filters),
        ("Include filters", criteria.include_filters),
        ("Exclude attrs", sorted(criteria.exclude_attributes)),
        ("Include attrs", sorted(criteria.include_attributes)),
    ):
        if values:
            print(f"{label + ':':<17}{', '.join(str(v) for v in values)}")


def dry_run(config: ExportConfig, input_path: Path) -> int:
    """Count which entries would be exported; nothing is written."""
    policy = SelectionPolicy.from_config(config)
    included = excluded = 0
    for entry in read_entries_jsonl(input_path):
        if policy.include_entry(entry):
            included += 1
        else:
            excluded += 1
    print(json.dumps({"dry_run": True, "would_export": included, "would_exclude": excluded}))
    return 0


def verify(path: Path) -> int:
    result = verify_export_manifest(path)
    print(result)
    if result.error:
        print(f"  {result.error}")
    return 0 if result.valid else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="ldif-export",
        description="Export directory entries to LDIF",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run an export
    python -m ldif_export people_export.yaml --input entries.jsonl

    # Show the resolved configuration
    python -m ldif_export people_export.yaml --explain

    # Skip entries whose filters cannot be evaluated instead of aborting
    python -m ldif_export people_export.yaml --input entries.jsonl --skip-filter-errors

    # Check an export against its checksum manifest
    python -m ldif_export --verify ./out/people.ldif
        """,
    )
    parser.add_argument("config", nargs="?", help="Export config YAML file")
    parser.add_argument("--input", "-i", help="Entries to export (JSON lines)")
    parser.add_argument("--dry-run", action="store_true", help="Evaluate selection without writing")
    parser.add_argument("--explain", action="store_true", help="Print the resolved configuration")
    parser.add_argument("--verify", metavar="LDIF", help="Verify an export against its manifest")
    parser.add_argument(
        "--skip-filter-errors",
        action="store_true",
        help="Skip entries whose filters fail instead of aborting",
    )
    parser.add_argument("--env-file", help="Load environment variables from this .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--json-log", action="store_true", help="Output logs in JSON format")
    parser.add_argument("--log-file", help="Write logs to a file in addition to console")

    args = parser.parse_args(argv)

    if args.env_file:
        load_env_file(args.env_file)
    settings = RuntimeSettings()
    setup_logging(
        verbose=args.verbose or settings.log_level.upper() == "DEBUG",
        json_format=args.json_log or settings.log_format == "json",
        log_file=args.log_file or settings.log_file,
    )

    if args.verify:
        return verify(Path(args.verify))

    if not args.config:
        parser.error("a config file is required")

    try:
        config = load_export_config(args.config)
        if args.explain:
            explain(config)
            return 0
        if not args.input:
            parser.error("--input is required to run an export")
        if args.dry_run:
            return dry_run(config, Path(args.input))

        result = export_entries(
            config,
            read_entries_jsonl(args.input),
            on_filter_error="skip" if args.skip_filter_errors else "raise",
            flush_every=settings.flush_every,
        )
    except ExportError as exc:
        logger.error("Export failed: %s", exc, extra={"error": exc.to_dict()})
        return 1

    print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
