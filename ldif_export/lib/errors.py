"""Structured exception hierarchy for LDIF exports.

Provides specific exception types for each export failure mode,
with rich context for debugging and troubleshooting.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = [
    "ExportError",
    "ConfigurationError",
    "DestinationConflictError",
    "PermissionSetupError",
    "CreateFailedError",
    "PipelineConstructionError",
    "FilterEvaluationError",
    "CloseError",
    "SessionStateError",
]


class ExportError(Exception):
    """Base exception for all export errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        target: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.target = target
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if target:
            parts.insert(0, f"[{target}]")

        if self.details:
            parts.append("\nDetails:")
            parts.extend(f"  {k}: {v}" for k, v in self.details.items())

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "target": self.target,
            "details": self.details,
            "suggestion": self.suggestion,
        }


def _cause_details(details: Dict[str, Any], cause: Optional[BaseException]) -> Dict[str, Any]:
    if cause is not None:
        details["cause"] = str(cause)
        details["cause_type"] = type(cause).__name__
    return details


class ConfigurationError(ExportError):
    """Error in export configuration.

    Raised when configuration is invalid or incomplete.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class DestinationConflictError(ExportError):
    """The target file already exists and the conflict policy is FAIL."""

    def __init__(self, path: str, **kwargs: Any) -> None:
        self.path = path
        suggestion = kwargs.pop("suggestion", None) or (
            "Remove the existing file or choose the 'append' or 'overwrite' "
            "conflict policy."
        )
        super().__init__(
            f"Export target already exists: {path}",
            target=path,
            suggestion=suggestion,
            **kwargs,
        )


class PermissionSetupError(ExportError):
    """Owner-only permissions could not be applied to a new export file.

    Never raised by the resolver: it is recorded as a warning and the
    export continues with the filesystem's default permissions.
    """

    def __init__(
        self,
        path: str,
        *,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.path = path
        self.cause = cause
        details = _cause_details(kwargs.pop("details", {}), cause)
        super().__init__(
            f"Could not restrict permissions on {path}",
            target=path,
            details=details,
            **kwargs,
        )


class CreateFailedError(ExportError):
    """The export target could not be created or opened."""

    def __init__(
        self,
        path: str,
        *,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.path = path
        self.cause = cause
        details = _cause_details(kwargs.pop("details", {}), cause)
        suggestion = kwargs.pop("suggestion", None) or (
            "Check that the parent directory exists and is writable."
        )
        super().__init__(
            f"Failed to open export target {path}",
            target=path,
            details=details,
            suggestion=suggestion,
            **kwargs,
        )


class PipelineConstructionError(ExportError):
    """A layer of the output pipeline could not be built."""

    def __init__(
        self,
        message: str,
        *,
        layer: str,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.layer = layer
        self.cause = cause
        details = _cause_details(kwargs.pop("details", {}), cause)
        details["layer"] = layer
        super().__init__(message, details=details, **kwargs)


class FilterEvaluationError(ExportError):
    """A branch or filter check failed while deciding on a record."""

    def __init__(
        self,
        message: str,
        *,
        dn: Optional[str] = None,
        criterion: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.dn = dn
        self.criterion = criterion
        self.cause = cause

        details = kwargs.pop("details", {})
        if dn is not None:
            details["dn"] = dn
        if criterion:
            details["criterion"] = criterion
        _cause_details(details, cause)

        super().__init__(message, details=details, **kwargs)


class CloseError(ExportError):
    """One or more pipeline layers failed to release.

    Every layer is given the chance to release before this is raised;
    ``released`` lists the layers that closed cleanly.
    """

    def __init__(
        self,
        message: str,
        *,
        failures: Optional[Dict[str, BaseException]] = None,
        released: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.failures = dict(failures or {})
        self.released = list(released or [])

        details = kwargs.pop("details", {})
        for layer, exc in self.failures.items():
            details[f"failed.{layer}"] = f"{type(exc).__name__}: {exc}"
        if self.released:
            details["released"] = ", ".join(self.released)

        super().__init__(message, details=details, **kwargs)


class SessionStateError(ExportError):
    """An export session operation was called in the wrong state."""

    def __init__(self, message: str, *, state: Optional[str] = None, **kwargs: Any) -> None:
        self.state = state
        details = kwargs.pop("details", {})
        if state:
            details["state"] = state
        super().__init__(message, details=details, **kwargs)
