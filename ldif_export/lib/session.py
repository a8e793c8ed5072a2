"""Export session lifecycle.

An ``ExportSession`` moves one way through UNOPENED -> OPEN -> CLOSED:

    with ExportSession(config) as session:        # open(): resolve target
        for entry in entries:
            if session.decide(entry) is Decision.INCLUDE:
                attrs = session.policy.select_attributes(entry)
                session.sink().write_text(render(entry, attrs))  # built once
    # close(): flush + release layers outermost first

The session owns the built pipeline and, for file targets, the raw sink.
It is meant for a single writer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ldif_export.lib.config import ExportConfig
from ldif_export.lib.destination import ResolvedDestination, resolve_destination
from ldif_export.lib.errors import (
    CloseError,
    PermissionSetupError,
    PipelineConstructionError,
    SessionStateError,
)
from ldif_export.lib.layers import ExportWriter, HashResult, PipelineHooks
from ldif_export.lib.observability import get_structlog_logger
from ldif_export.lib.pipeline import BuiltPipeline, build_pipeline
from ldif_export.lib.selection import Decision, SelectionPolicy

logger = get_structlog_logger(__name__)

__all__ = ["CloseResult", "ExportSession", "SessionState"]

RAW_SINK = "raw"


class SessionState(Enum):
    UNOPENED = "unopened"
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class CloseResult:
    """What ``close()`` released and produced."""

    released: List[str] = field(default_factory=list)
    hash_result: Optional[HashResult] = None
    bytes_written: int = 0
    warnings: List[PermissionSetupError] = field(default_factory=list)


class ExportSession:
    """Composes destination, pipeline and selection for one export.

    Args:
        config: Immutable export configuration
        hooks: Implementations for the encrypt / sign-hash extension points
        policy: Selection policy; built from ``config`` when omitted
    """

    def __init__(
        self,
        config: ExportConfig,
        *,
        hooks: Optional[PipelineHooks] = None,
        policy: Optional[SelectionPolicy] = None,
    ) -> None:
        self.config = config
        self.hooks = hooks or PipelineHooks()
        self.policy = policy or SelectionPolicy.from_config(config)
        self.state = SessionState.UNOPENED
        self.destination: Optional[ResolvedDestination] = None
        self._pipeline: Optional[BuiltPipeline] = None
        self._build_error: Optional[PipelineConstructionError] = None
        self._close_result: Optional[CloseResult] = None

    @property
    def target(self) -> str:
        return self.config.target.describe()

    @property
    def warnings(self) -> List[PermissionSetupError]:
        return list(self.destination.warnings) if self.destination else []

    @property
    def pipeline_built(self) -> bool:
        return self._pipeline is not None

    def open(self) -> "ExportSession":
        """Resolve the destination. A second call on an open session is a no-op.

        Raises:
            SessionStateError: The session is already closed
            DestinationConflictError / CreateFailedError: from the resolver
        """
        if self.state is SessionState.OPEN:
            return self
        if self.state is SessionState.CLOSED:
            raise SessionStateError("Cannot reopen a closed export session", state=self.state.value)

        self.destination = resolve_destination(self.config.target, self.config.conflict_policy)
        self.state = SessionState.OPEN
        logger.info("session_opened", target=self.target)
        return self

    def sink(self) -> ExportWriter:
        """Return the pipeline writer, building the pipeline on first use.

        A failed build is final: later calls raise instead of retrying.

        Raises:
            SessionStateError: The session is closed, or its pipeline
                already failed to build
            PipelineConstructionError: A layer could not be built
        """
        if self.state is SessionState.CLOSED:
            raise SessionStateError("Export session is closed", state=self.state.value)
        if self._build_error is not None:
            raise SessionStateError(
                "Export pipeline failed to build; nothing can be written",
                state=self.state.value,
                details={"layer": self._build_error.layer},
            ) from self._build_error
        if self._pipeline is None:
            if self.state is SessionState.UNOPENED:
                self.open()
            if self.destination is None:
                raise SessionStateError("Export session has no destination", state=self.state.value)
            try:
                self._pipeline = build_pipeline(
                    self.destination.sink,
                    self.config.options,
                    self.hooks,
                )
            except PipelineConstructionError as exc:
                self._build_error = exc
                logger.error("pipeline_build_failed", target=self.target, layer=exc.layer)
                raise
            logger.info("pipeline_ready", target=self.target, layers=self._pipeline.layer_names)
        return self._pipeline.writer

    def decide(self, entry: Any) -> Decision:
        return self.policy.decide(entry)

    def retain_attribute(self, attribute_type: str) -> bool:
        return self.policy.retain_attribute(attribute_type)

    def close(self) -> CloseResult:
        """Flush and release every layer, then the raw sink.

        Closing twice returns the first result without releasing again.

        Raises:
            CloseError: One or more layers failed to release; all of them
                were still given the chance to
        """
        if self.state is SessionState.CLOSED:
            return self._close_result or CloseResult()

        previous = self.state
        self.state = SessionState.CLOSED

        released: List[str] = []
        failures: Dict[str, BaseException] = {}
        result = CloseResult(warnings=self.warnings)

        if self._pipeline is not None:
            layer_released, layer_failures = self._pipeline.release()
            released.extend(layer_released)
            failures.update(layer_failures)
            result.hash_result = self._pipeline.hash_result
            result.bytes_written = self._pipeline.writer.bytes_written

        if previous is SessionState.OPEN and self.destination is not None:
            try:
                self.destination.close()
            except Exception as exc:
                failures[RAW_SINK] = exc
                logger.error("raw_sink_release_failed", target=self.target, error=str(exc))
            else:
                released.append(RAW_SINK)

        result.released = released
        self._close_result = result

        if failures:
            raise CloseError(
                f"Failed to release {len(failures)} export layer(s)",
                target=self.target,
                failures=failures,
                released=released,
            )

        logger.info(
            "session_closed",
            target=self.target,
            released=released,
            bytes_written=result.bytes_written,
            digest=result.hash_result.hexdigest if result.hash_result else None,
        )
        return result

    def __enter__(self) -> "ExportSession":
        return self.open()

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is None:
            self.close()
            return
        try:
            self.close()
        except CloseError as close_exc:
            logger.error("session_close_failed_during_error", error=close_exc.to_dict())
