"""YAML configuration loader for exports.

Lets operators describe an export in a small YAML file instead of Python.

Example YAML (people_export.yaml):
    export:
      target: ${EXPORT_DIR}/people.ldif.gz
      conflict_policy: overwrite
      compress: true
      hash: true
      wrap_column: 76
      exclude_branches: ["ou=private,dc=example,dc=com"]
      include_filters: ["(objectClass=person)"]
      exclude_attributes: [userPassword]

Usage:
    from ldif_export.lib.config_loader import load_export_config
    config = load_export_config("./people_export.yaml")
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ldif_export.lib.config import (
    ConflictPolicy,
    ExportConfig,
    ExportTarget,
    PipelineOptions,
    SelectionCriteria,
)
from ldif_export.lib.dn import DN
from ldif_export.lib.env import expand_values
from ldif_export.lib.errors import ConfigurationError
from ldif_export.lib.filters import parse_filter

logger = logging.getLogger(__name__)

__all__ = [
    "ExportSettingsModel",
    "RuntimeSettings",
    "build_export_config",
    "load_export_config",
]


class ExportSettingsModel(BaseModel):
    """Pydantic model validating the ``export`` section of a config file."""

    model_config = ConfigDict(extra="forbid")

    target: str = Field(..., min_length=1, description="Path of the LDIF file to write")
    conflict_policy: str = Field(default="fail", description="append, overwrite or fail")
    compress: bool = False
    encrypt: bool = False
    hash: bool = False
    sign_hash: bool = False
    types_only: bool = False
    wrap_column: int = -1
    exclude_branches: List[str] = Field(default_factory=list)
    include_branches: List[str] = Field(default_factory=list)
    exclude_filters: List[str] = Field(default_factory=list)
    include_filters: List[str] = Field(default_factory=list)
    exclude_attributes: List[str] = Field(default_factory=list)
    include_attributes: List[str] = Field(default_factory=list)
    include_object_classes: bool = True
    include_operational_attributes: bool = True
    include_virtual_attributes: bool = False
    invoke_export_plugins: bool = False

    @field_validator("conflict_policy")
    @classmethod
    def validate_conflict_policy(cls, v: str) -> str:
        valid = [p.value for p in ConflictPolicy]
        if v.lower() not in valid:
            raise ValueError(f"conflict_policy must be one of: {valid}")
        return v.lower()

    @field_validator("exclude_branches", "include_branches")
    @classmethod
    def validate_branches(cls, v: List[str]) -> List[str]:
        for branch in v:
            DN.parse(branch)
        return v

    @field_validator("exclude_filters", "include_filters")
    @classmethod
    def validate_filters(cls, v: List[str]) -> List[str]:
        for text in v:
            parse_filter(text)
        return v

    @model_validator(mode="after")
    def warn_sign_without_hash(self) -> "ExportSettingsModel":
        if self.sign_hash and not self.hash:
            logger.warning("sign_hash is set without hash; it will be ignored")
        return self

    def to_export_config(self, base_dir: Optional[Path] = None) -> ExportConfig:
        target = Path(self.target)
        if base_dir is not None and not target.is_absolute():
            target = base_dir / target
        return ExportConfig(
            target=ExportTarget.for_path(target),
            conflict_policy=ConflictPolicy(self.conflict_policy),
            options=PipelineOptions(
                compress=self.compress,
                encrypt=self.encrypt,
                hash=self.hash,
                sign_hash=self.sign_hash,
                types_only=self.types_only,
                wrap_column=self.wrap_column,
            ),
            criteria=SelectionCriteria.build(
                exclude_branches=self.exclude_branches,
                include_branches=self.include_branches,
                exclude_filters=self.exclude_filters,
                include_filters=self.include_filters,
                exclude_attributes=self.exclude_attributes,
                include_attributes=self.include_attributes,
            ),
            include_object_classes=self.include_object_classes,
            include_operational_attributes=self.include_operational_attributes,
            include_virtual_attributes=self.include_virtual_attributes,
            invoke_export_plugins=self.invoke_export_plugins,
        )


class RuntimeSettings(BaseSettings):
    """Environment-based runtime settings (``LDIF_EXPORT_`` prefix).

    Example:
        >>> # LDIF_EXPORT_LOG_LEVEL=DEBUG
        >>> RuntimeSettings().log_level
        'DEBUG'
    """

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Log format: 'json' or 'console'")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")
    flush_every: int = Field(default=100, ge=1, description="Entries per buffer flush")

    model_config = SettingsConfigDict(
        env_prefix="LDIF_EXPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def _format_validation_error(exc: ValidationError) -> List[str]:
    issues = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "export"
        issues.append(f"export.{location}: {error['msg']}")
    return issues


def build_export_config(
    data: Dict[str, Any],
    *,
    base_dir: Optional[Path] = None,
    expand_env: bool = True,
) -> ExportConfig:
    """Validate the ``export`` mapping and build an ExportConfig.

    Raises:
        ConfigurationError: If the mapping is invalid
    """
    if expand_env:
        data = expand_values(data)
    try:
        model = ExportSettingsModel(**data)
    except ValidationError as exc:
        issues = _format_validation_error(exc)
        raise ConfigurationError(
            "Invalid export configuration:\n" + "\n".join(f"  - {i}" for i in issues),
            details={"issue_count": len(issues)},
        ) from exc
    return model.to_export_config(base_dir)


def load_export_config(path: Union[str, Path]) -> ExportConfig:
    """Load an export config from a YAML file.

    Relative targets starting with ``./`` or ``../`` resolve against the
    directory containing the YAML file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}", field="config")

    try:
        with config_path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}", field="config") from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("export"), dict):
        raise ConfigurationError(
            f"{config_path} must contain an 'export' mapping",
            field="export",
            suggestion="Start the file with 'export:' followed by the target and options.",
        )

    section = expand_values(raw["export"])
    target = str(section.get("target", ""))
    base_dir = config_path.parent if target.startswith(("./", "../")) else None
    if target and not os.path.isabs(target) and base_dir is None:
        logger.debug("Target %s resolves against the working directory", target)

    return build_export_config(section, base_dir=base_dir, expand_env=False)
