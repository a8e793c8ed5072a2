"""Output pipeline builder.

Composes the enabled layers around a raw sink. ``LAYER_ORDER`` lists the
transforms in the order bytes pass through them on the way to storage;
the builder constructs them from the raw sink outwards and finishes with
the buffering ``ExportWriter``. Release happens in reverse order of
construction.

Usage:
    pipeline = build_pipeline(raw_sink, PipelineOptions(compress=True, hash=True))
    pipeline.writer.write_text("dn: dc=example\\n\\n")
    released, failures = pipeline.release()
    digest = pipeline.hash_result.hexdigest
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ldif_export.lib.config import PipelineOptions
from ldif_export.lib.errors import ExportError, PipelineConstructionError
from ldif_export.lib.layers import (
    CompressionLayer,
    EncryptionLayer,
    ExportWriter,
    HashingLayer,
    HashingStream,
    HashResult,
    LayerStream,
    PipelineHooks,
    SinkLayer,
)
from ldif_export.lib.observability import get_structlog_logger

logger = get_structlog_logger(__name__)

__all__ = ["BuiltPipeline", "LAYER_ORDER", "build_pipeline"]

LAYER_ORDER: Tuple[SinkLayer, ...] = (
    CompressionLayer(),
    EncryptionLayer(),
    HashingLayer(),
)


@dataclass
class BuiltPipeline:
    """The constructed layer stack.

    ``layers`` is in construction order: the layer next to the raw sink
    first, the ``ExportWriter`` last.
    """

    writer: ExportWriter
    layers: List[LayerStream] = field(default_factory=list)

    @property
    def layer_names(self) -> List[str]:
        return [layer.name for layer in self.layers]

    @property
    def hash_result(self) -> Optional[HashResult]:
        for layer in self.layers:
            if isinstance(layer, HashingStream):
                return layer.result
        return None

    def release(self) -> Tuple[List[str], Dict[str, BaseException]]:
        """Close every layer, outermost first.

        A failing layer does not stop the ones beneath it from closing.

        Returns:
            (names of layers released cleanly, {layer name: exception})
        """
        return _release(self.layers)


def _release(layers: Sequence[LayerStream]) -> Tuple[List[str], Dict[str, BaseException]]:
    released: List[str] = []
    failures: Dict[str, BaseException] = {}
    for layer in reversed(layers):
        try:
            layer.close()
        except Exception as exc:
            failures[layer.name] = exc
            logger.error("layer_release_failed", layer=layer.name, error=str(exc))
        else:
            released.append(layer.name)
    return released, failures


def build_pipeline(
    raw_sink: Any,
    options: PipelineOptions,
    hooks: Optional[PipelineHooks] = None,
    *,
    layers: Sequence[SinkLayer] = LAYER_ORDER,
    encoding: str = "utf-8",
) -> BuiltPipeline:
    """Wrap a raw sink with the layers enabled in ``options``.

    Args:
        raw_sink: Open binary stream (owned by the caller)
        options: Pipeline switches
        hooks: Encryptor/signer implementations for the extension points
        layers: Transforms in byte-path order (first sees the data first)
        encoding: Text encoding used by ``ExportWriter.write_text``

    Returns:
        BuiltPipeline whose ``writer`` accepts exported bytes

    Raises:
        PipelineConstructionError: A layer could not be built; every layer
            built before it has already been released
    """
    hooks = hooks or PipelineHooks()
    built: List[LayerStream] = []
    current: Any = raw_sink

    for layer in reversed(layers):
        if not layer.enabled(options):
            continue
        try:
            stream = layer.wrap(current, options, hooks)
        except Exception as exc:
            _, failures = _release(built)
            for name, release_exc in failures.items():
                logger.warning("partial_pipeline_release_failed", layer=name, error=str(release_exc))
            if isinstance(exc, PipelineConstructionError):
                raise
            if isinstance(exc, ExportError):
                raise PipelineConstructionError(exc.message, layer=layer.name, cause=exc) from exc
            raise PipelineConstructionError(
                f"Failed to build the {layer.name} layer",
                layer=layer.name,
                cause=exc,
            ) from exc
        built.append(stream)
        current = stream

    writer = ExportWriter(current, encoding=encoding)
    built.append(writer)

    logger.debug("pipeline_built", layers=[s.name for s in built])
    return BuiltPipeline(writer=writer, layers=built)
