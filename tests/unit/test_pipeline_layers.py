"""Tests for ldif_export/lib/layers.py and pipeline.py - layered output."""

import gzip
import hashlib
import io

import pytest

from ldif_export.lib.config import PipelineOptions
from ldif_export.lib.errors import PipelineConstructionError
from ldif_export.lib.layers import (
    CompressionLayer,
    ExportWriter,
    HashingLayer,
    LayerStream,
    PipelineHooks,
    SinkLayer,
)
from ldif_export.lib.pipeline import LAYER_ORDER, build_pipeline
from tests.helpers import FakeSigner, XorEncryptor

TEXT = "dn: uid=a,dc=example\ncn: a\n\n" * 50


class TrackingStream(LayerStream):
    name = "tracking"

    def __init__(self, inner, log):
        super().__init__(inner)
        self.log = log

    def write(self, data: bytes) -> int:
        self.inner.write(data)
        return len(data)

    def _finalize(self) -> None:
        self.log.append("closed")


class TrackingLayer(SinkLayer):
    name = "tracking"

    def __init__(self, log):
        self.log = log

    def enabled(self, options):
        return True

    def wrap(self, inner, options, hooks):
        self.log.append("built")
        return TrackingStream(inner, self.log)


class BrokenLayer(SinkLayer):
    name = "broken"

    def enabled(self, options):
        return True

    def wrap(self, inner, options, hooks):
        raise RuntimeError("no codec")


class TestExportWriter:
    def test_nothing_reaches_inner_before_flush(self):
        raw = io.BytesIO()
        writer = ExportWriter(raw)
        writer.write_text("dn: dc=example\n")
        assert raw.getvalue() == b""
        assert writer.pending == len("dn: dc=example\n")

        writer.flush()
        assert raw.getvalue() == b"dn: dc=example\n"
        assert writer.pending == 0

    def test_close_drains_buffer(self):
        raw = io.BytesIO()
        writer = ExportWriter(raw)
        writer.write(b"abc")
        writer.close()
        assert raw.getvalue() == b"abc"
        assert writer.bytes_written == 3

    def test_write_after_close_fails(self):
        writer = ExportWriter(io.BytesIO())
        writer.close()
        with pytest.raises(ValueError):
            writer.write(b"x")

    def test_encodes_text_as_utf8(self):
        raw = io.BytesIO()
        writer = ExportWriter(raw)
        writer.write_text("cn: Zoë\n")
        writer.close()
        assert raw.getvalue() == "cn: Zoë\n".encode("utf-8")


class TestBuildPipeline:
    def test_plain_pipeline_is_just_the_writer(self):
        raw = io.BytesIO()
        pipeline = build_pipeline(raw, PipelineOptions())
        assert pipeline.layer_names == ["buffer"]
        pipeline.writer.write_text(TEXT)
        released, failures = pipeline.release()
        assert released == ["buffer"]
        assert failures == {}
        assert raw.getvalue() == TEXT.encode()
        assert not raw.closed

    def test_construction_order_starts_at_raw_sink(self):
        options = PipelineOptions(compress=True, encrypt=True, hash=True)
        hooks = PipelineHooks(encryptor_factory=XorEncryptor)
        pipeline = build_pipeline(io.BytesIO(), options, hooks)
        assert pipeline.layer_names == ["hash", "encrypt", "compress", "buffer"]

    def test_release_runs_outermost_first(self):
        options = PipelineOptions(compress=True, hash=True)
        pipeline = build_pipeline(io.BytesIO(), options)
        released, _ = pipeline.release()
        assert released == ["buffer", "compress", "hash"]

    def test_default_layer_order_is_byte_path_order(self):
        assert [layer.name for layer in LAYER_ORDER] == ["compress", "encrypt", "hash"]

    def test_compression_produces_gzip(self):
        raw = io.BytesIO()
        pipeline = build_pipeline(raw, PipelineOptions(compress=True))
        pipeline.writer.write_text(TEXT)
        pipeline.release()
        assert gzip.decompress(raw.getvalue()) == TEXT.encode()
        assert len(raw.getvalue()) < len(TEXT)


class TestHashing:
    def test_digest_covers_compressed_bytes(self):
        raw = io.BytesIO()
        pipeline = build_pipeline(raw, PipelineOptions(compress=True, hash=True))
        pipeline.writer.write_text(TEXT)
        pipeline.writer.flush()
        pipeline.writer.write_text(TEXT)
        pipeline.release()

        stored = raw.getvalue()
        result = pipeline.hash_result
        assert result.hexdigest == hashlib.sha256(stored).hexdigest()
        assert result.hexdigest != hashlib.sha256((TEXT * 2).encode()).hexdigest()
        assert result.byte_count == len(stored)
        assert result.algorithm == "sha256"

    def test_digest_of_uncompressed_output(self):
        raw = io.BytesIO()
        pipeline = build_pipeline(raw, PipelineOptions(hash=True))
        pipeline.writer.write_text(TEXT)
        pipeline.release()
        assert pipeline.hash_result.hexdigest == hashlib.sha256(TEXT.encode()).hexdigest()

    def test_digest_covers_encrypted_bytes(self):
        raw = io.BytesIO()
        hooks = PipelineHooks(encryptor_factory=XorEncryptor)
        pipeline = build_pipeline(raw, PipelineOptions(encrypt=True, hash=True), hooks)
        pipeline.writer.write_text("secret")
        pipeline.release()

        stored = raw.getvalue()
        assert stored.endswith(b"END")
        assert b"secret" not in stored
        assert pipeline.hash_result.hexdigest == hashlib.sha256(stored).hexdigest()

    def test_no_hash_result_without_hashing(self):
        pipeline = build_pipeline(io.BytesIO(), PipelineOptions(compress=True))
        pipeline.release()
        assert pipeline.hash_result is None

    def test_signer_signs_final_digest(self):
        raw = io.BytesIO()
        signer = FakeSigner()
        pipeline = build_pipeline(
            raw,
            PipelineOptions(hash=True, sign_hash=True),
            PipelineHooks(signer=signer),
        )
        pipeline.writer.write_text(TEXT)
        pipeline.release()

        digest = hashlib.sha256(raw.getvalue()).digest()
        assert signer.signed == [digest]
        assert pipeline.hash_result.signature == b"sig:" + digest[:4]

    def test_sign_hash_ignored_without_hash(self):
        signer = FakeSigner()
        pipeline = build_pipeline(
            io.BytesIO(), PipelineOptions(sign_hash=True), PipelineHooks(signer=signer)
        )
        pipeline.release()
        assert pipeline.hash_result is None
        assert signer.signed == []


class TestExtensionPoints:
    def test_encrypt_without_encryptor_fails(self):
        with pytest.raises(PipelineConstructionError) as exc_info:
            build_pipeline(io.BytesIO(), PipelineOptions(encrypt=True))
        assert exc_info.value.layer == "encrypt"

    def test_sign_without_signer_fails(self):
        with pytest.raises(PipelineConstructionError) as exc_info:
            build_pipeline(io.BytesIO(), PipelineOptions(hash=True, sign_hash=True))
        assert exc_info.value.layer == "hash"

    def test_encryption_finalized_on_release(self):
        encryptor = XorEncryptor()
        pipeline = build_pipeline(
            io.BytesIO(),
            PipelineOptions(encrypt=True),
            PipelineHooks(encryptor_factory=lambda: encryptor),
        )
        pipeline.release()
        assert encryptor.finalized is True


class TestConstructionFailure:
    def test_built_layers_released_before_error(self):
        log = []
        raw = io.BytesIO()
        with pytest.raises(PipelineConstructionError) as exc_info:
            # Byte-path order: broken sees data first, so tracking is built first.
            build_pipeline(raw, PipelineOptions(), layers=[BrokenLayer(), TrackingLayer(log)])

        assert log == ["built", "closed"]
        assert exc_info.value.layer == "broken"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert not raw.closed

    def test_encrypt_failure_releases_hash_layer(self):
        raw = io.BytesIO()
        with pytest.raises(PipelineConstructionError):
            build_pipeline(raw, PipelineOptions(encrypt=True, hash=True, compress=True))
        assert raw.getvalue() == b""

    def test_custom_layers_respect_enabled(self):
        options = PipelineOptions(compress=False)
        pipeline = build_pipeline(io.BytesIO(), options, layers=[CompressionLayer(), HashingLayer()])
        assert pipeline.layer_names == ["buffer"]
