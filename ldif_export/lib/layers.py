"""Output pipeline layers.

Each layer wraps an inner byte stream and returns a ``LayerStream``.
Bytes written by the exporter travel:

    ExportWriter (buffer + UTF-8) -> compress -> encrypt -> hash -> raw sink

so the digest covers exactly the bytes that reach storage. Closing a layer
finalizes it (gzip trailer, cipher padding, digest) but never closes the
stream it wraps; the session releases layers outermost first.

Encryption and hash signing are extension points: the pipeline calls the
``Encryptor``/``HashSigner`` supplied in ``PipelineHooks`` and refuses to
build when a switched-on hook has no implementation.
"""

from __future__ import annotations

import gzip
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from ldif_export.lib.config import PipelineOptions
from ldif_export.lib.errors import PipelineConstructionError

logger = logging.getLogger(__name__)

__all__ = [
    "CompressionLayer",
    "EncryptionLayer",
    "Encryptor",
    "ExportWriter",
    "HashResult",
    "HashSigner",
    "HashingLayer",
    "HashingStream",
    "LayerStream",
    "PipelineHooks",
    "SinkLayer",
]

HASH_ALGORITHM = "sha256"


@runtime_checkable
class Encryptor(Protocol):
    """Streaming cipher supplied by the caller."""

    def update(self, data: bytes) -> bytes:
        ...

    def finalize(self) -> bytes:
        ...


@runtime_checkable
class HashSigner(Protocol):
    """Produces a detached signature over the final digest."""

    def sign(self, digest: bytes) -> bytes:
        ...


@dataclass(frozen=True)
class PipelineHooks:
    """Implementations backing the encrypt and sign-hash switches."""

    encryptor_factory: Optional[Callable[[], Encryptor]] = None
    signer: Optional[HashSigner] = None


@dataclass(frozen=True)
class HashResult:
    """Digest of the exported bytes, with an optional detached signature."""

    algorithm: str
    hexdigest: str
    byte_count: int
    signature: Optional[bytes] = None


class LayerStream(ABC):
    """Writable stream produced by a layer."""

    name = "layer"

    def __init__(self, inner: Any):
        self.inner = inner
        self.closed = False

    @abstractmethod
    def write(self, data: bytes) -> int:
        pass

    def flush(self) -> None:
        self.inner.flush()

    def close(self) -> None:
        """Finalize this layer once; the inner stream stays open."""
        if self.closed:
            return
        self.closed = True
        self._finalize()

    def _finalize(self) -> None:
        pass


class SinkLayer(ABC):
    """A sink-transforming capability composed by the pipeline builder."""

    name = "layer"

    @abstractmethod
    def enabled(self, options: PipelineOptions) -> bool:
        pass

    @abstractmethod
    def wrap(self, inner: Any, options: PipelineOptions, hooks: PipelineHooks) -> LayerStream:
        pass


# ---------------------------------------------------------------- compress


class CompressionStream(LayerStream):
    name = "compress"

    def __init__(self, inner: Any):
        super().__init__(inner)
        # Explicit filename: GzipFile would otherwise read inner.name.
        self._gzip = gzip.GzipFile(filename="", fileobj=inner, mode="wb")

    def write(self, data: bytes) -> int:
        return self._gzip.write(data)

    def flush(self) -> None:
        self._gzip.flush()

    def _finalize(self) -> None:
        self._gzip.close()


class CompressionLayer(SinkLayer):
    name = "compress"

    def enabled(self, options: PipelineOptions) -> bool:
        return options.compress

    def wrap(self, inner: Any, options: PipelineOptions, hooks: PipelineHooks) -> LayerStream:
        return CompressionStream(inner)


# ---------------------------------------------------------------- encrypt


class EncryptionStream(LayerStream):
    name = "encrypt"

    def __init__(self, inner: Any, encryptor: Encryptor):
        super().__init__(inner)
        self.encryptor = encryptor

    def write(self, data: bytes) -> int:
        self.inner.write(self.encryptor.update(data))
        return len(data)

    def _finalize(self) -> None:
        tail = self.encryptor.finalize()
        if tail:
            self.inner.write(tail)


class EncryptionLayer(SinkLayer):
    name = "encrypt"

    def enabled(self, options: PipelineOptions) -> bool:
        return options.encrypt

    def wrap(self, inner: Any, options: PipelineOptions, hooks: PipelineHooks) -> LayerStream:
        if hooks.encryptor_factory is None:
            raise PipelineConstructionError(
                "Encryption was requested but no encryptor is configured",
                layer=self.name,
                suggestion="Pass PipelineHooks(encryptor_factory=...) or disable encryption.",
            )
        return EncryptionStream(inner, hooks.encryptor_factory())


# ---------------------------------------------------------------- hash


class HashingStream(LayerStream):
    name = "hash"

    def __init__(self, inner: Any, signer: Optional[HashSigner] = None):
        super().__init__(inner)
        self.signer = signer
        self.result: Optional[HashResult] = None
        self._hasher = hashlib.new(HASH_ALGORITHM)
        self._byte_count = 0

    def write(self, data: bytes) -> int:
        self._hasher.update(data)
        self._byte_count += len(data)
        self.inner.write(data)
        return len(data)

    def _finalize(self) -> None:
        digest = self._hasher.digest()
        signature = self.signer.sign(digest) if self.signer is not None else None
        self.result = HashResult(
            algorithm=HASH_ALGORITHM,
            hexdigest=digest.hex(),
            byte_count=self._byte_count,
            signature=signature,
        )
        logger.debug("Export digest %s over %d bytes", self.result.hexdigest, self._byte_count)


class HashingLayer(SinkLayer):
    name = "hash"

    def enabled(self, options: PipelineOptions) -> bool:
        return options.hash

    def wrap(self, inner: Any, options: PipelineOptions, hooks: PipelineHooks) -> LayerStream:
        signer = None
        if options.signs_hash:
            if hooks.signer is None:
                raise PipelineConstructionError(
                    "Hash signing was requested but no signer is configured",
                    layer=self.name,
                    suggestion="Pass PipelineHooks(signer=...) or disable sign_hash.",
                )
            signer = hooks.signer
        elif options.sign_hash:
            logger.debug("sign_hash ignored because hashing is disabled")
        return HashingStream(inner, signer)


# ---------------------------------------------------------------- buffer


class ExportWriter(LayerStream):
    """Outermost layer: batches writes and encodes text.

    Nothing reaches the inner layers until ``flush()`` or ``close()``, so
    callers control chunk boundaries (the exporter flushes between whole
    entries).
    """

    name = "buffer"

    def __init__(self, inner: Any, encoding: str = "utf-8"):
        super().__init__(inner)
        self.encoding = encoding
        self._buffer = bytearray()
        self.bytes_written = 0

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("write to a closed export writer")
        self._buffer.extend(data)
        return len(data)

    def write_text(self, text: str) -> int:
        return self.write(text.encode(self.encoding))

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def _drain(self) -> None:
        if self._buffer:
            chunk = bytes(self._buffer)
            self._buffer.clear()
            self.inner.write(chunk)
            self.bytes_written += len(chunk)

    def flush(self) -> None:
        if self.closed:
            return
        self._drain()
        self.inner.flush()

    def _finalize(self) -> None:
        self._drain()
