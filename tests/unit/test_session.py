"""Tests for ldif_export/lib/session.py - export session lifecycle."""

import hashlib
import io
from dataclasses import replace
from pathlib import Path

import pytest

from ldif_export.lib.config import (
    ConflictPolicy,
    ExportConfig,
    ExportTarget,
    PipelineOptions,
    SelectionCriteria,
)
from ldif_export.lib.errors import (
    CloseError,
    DestinationConflictError,
    PipelineConstructionError,
    SessionStateError,
)
from ldif_export.lib.layers import PipelineHooks
from ldif_export.lib.selection import Decision
from ldif_export.lib.session import ExportSession, SessionState
from tests.helpers import FailingCloseStream, XorEncryptor, make_entry


def file_config(path: Path, **kwargs) -> ExportConfig:
    kwargs.setdefault("conflict_policy", ConflictPolicy.OVERWRITE)
    return ExportConfig(target=ExportTarget.for_path(path), **kwargs)


class TestLifecycle:
    def test_starts_unopened(self, export_path: Path):
        session = ExportSession(file_config(export_path))
        assert session.state is SessionState.UNOPENED
        assert not export_path.exists()

    def test_open_resolves_but_does_not_build(self, export_path: Path):
        session = ExportSession(file_config(export_path)).open()
        assert session.state is SessionState.OPEN
        assert export_path.exists()
        assert session.pipeline_built is False
        session.close()

    def test_open_twice_is_noop(self, export_path: Path):
        session = ExportSession(file_config(export_path))
        session.open()
        destination = session.destination
        session.open()
        assert session.destination is destination
        session.close()

    def test_sink_is_built_once(self, export_path: Path):
        session = ExportSession(file_config(export_path)).open()
        first = session.sink()
        assert session.sink() is first
        session.close()

    def test_sink_opens_an_unopened_session(self, export_path: Path):
        session = ExportSession(file_config(export_path))
        session.sink().write_text("dn: dc=example\n\n")
        assert session.state is SessionState.OPEN
        session.close()
        assert export_path.read_text() == "dn: dc=example\n\n"

    def test_close_twice_is_noop(self, export_path: Path):
        session = ExportSession(file_config(export_path))
        session.sink().write_text("x")
        first = session.close()
        second = session.close()
        assert second is first
        assert first.released == ["buffer", "raw"]

    def test_close_unopened_session(self, export_path: Path):
        session = ExportSession(file_config(export_path))
        result = session.close()
        assert result.released == []
        assert session.state is SessionState.CLOSED
        assert not export_path.exists()

    def test_closed_session_cannot_reopen_or_write(self, export_path: Path):
        session = ExportSession(file_config(export_path))
        session.close()
        with pytest.raises(SessionStateError):
            session.open()
        with pytest.raises(SessionStateError):
            session.sink()

    def test_context_manager_closes(self, export_path: Path):
        with ExportSession(file_config(export_path)) as session:
            session.sink().write_text("dn: dc=example\n\n")
        assert session.state is SessionState.CLOSED
        assert session.destination.sink.closed


class TestOptionsSnapshot:
    def test_replacing_config_after_build_has_no_effect(self, export_path: Path):
        config = file_config(export_path)
        session = ExportSession(config)
        session.sink().write_text("plain")

        # A derived config is a new value; the session keeps its snapshot.
        compressed = replace(config, options=PipelineOptions(compress=True))
        assert session.config is config
        assert compressed.options.compress is True

        session.close()
        assert export_path.read_bytes() == b"plain"

    def test_options_cannot_be_mutated(self):
        options = PipelineOptions()
        with pytest.raises(AttributeError):
            options.compress = True  # type: ignore[misc]


class TestStreamTarget:
    def test_caller_stream_flushed_not_closed(self):
        stream = io.BytesIO()
        config = ExportConfig(target=ExportTarget.for_stream(stream))
        with ExportSession(config) as session:
            session.sink().write_text("dn: dc=example\n\n")
        assert not stream.closed
        assert stream.getvalue() == b"dn: dc=example\n\n"

    def test_stream_target_ignores_conflict_policy(self):
        stream = io.BytesIO(b"existing")
        stream.seek(0, io.SEEK_END)
        config = ExportConfig(target=ExportTarget.for_stream(stream), conflict_policy=ConflictPolicy.FAIL)
        with ExportSession(config) as session:
            session.sink().write(b"+more")
        assert stream.getvalue() == b"existing+more"


class TestFailures:
    def test_conflict_leaves_file_untouched(self, export_path: Path):
        export_path.write_text("keep me")
        session = ExportSession(file_config(export_path, conflict_policy=ConflictPolicy.FAIL))
        with pytest.raises(DestinationConflictError):
            session.open()
        assert session.state is SessionState.UNOPENED
        assert export_path.read_text() == "keep me"

    def test_construction_failure_then_close_releases_raw(self, export_path: Path):
        session = ExportSession(file_config(export_path, options=PipelineOptions(encrypt=True)))
        session.open()
        with pytest.raises(PipelineConstructionError):
            session.sink()
        assert session.pipeline_built is False

        result = session.close()
        assert result.released == ["raw"]
        assert session.destination.sink.closed
        assert export_path.read_bytes() == b""

    def test_failed_build_is_final(self, export_path: Path):
        calls = []

        def flaky_encryptor():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("key store unavailable")
            return XorEncryptor()

        config = file_config(export_path, options=PipelineOptions(encrypt=True))
        session = ExportSession(config, hooks=PipelineHooks(encryptor_factory=flaky_encryptor))
        with pytest.raises(PipelineConstructionError):
            session.sink()

        with pytest.raises(SessionStateError) as exc_info:
            session.sink()
        assert isinstance(exc_info.value.__cause__, PipelineConstructionError)
        assert exc_info.value.details["layer"] == "encrypt"
        assert len(calls) == 1

        session.close()
        assert export_path.read_bytes() == b""

    def test_release_failure_is_aggregated(self):
        raw = FailingCloseStream()
        config = ExportConfig(target=ExportTarget.for_stream(raw), options=PipelineOptions(hash=True))
        session = ExportSession(config)
        session.sink().write(b"data")

        with pytest.raises(CloseError) as exc_info:
            session.close()

        error = exc_info.value
        # The buffer's flush reaches the failing raw stream; the hash layer
        # beneath it still gets released, and so does the raw sink attempt.
        assert "raw" in error.failures
        assert "hash" in error.released
        assert session.state is SessionState.CLOSED
        assert session.close().released == error.released

    def test_close_after_abort_releases_layers(self, export_path: Path):
        session = ExportSession(file_config(export_path, options=PipelineOptions(compress=True)))
        with pytest.raises(RuntimeError):
            with session:
                session.sink().write_text("partial")
                raise RuntimeError("driver aborted")
        assert session.state is SessionState.CLOSED
        assert session.destination.sink.closed


class TestSessionHashing:
    def test_close_reports_digest(self, export_path: Path):
        config = file_config(export_path, options=PipelineOptions(compress=True, hash=True))
        with ExportSession(config) as session:
            session.sink().write_text("dn: dc=example\n\n")
        result = session.close()
        assert result.hash_result.hexdigest == hashlib.sha256(export_path.read_bytes()).hexdigest()

    def test_encryption_hook_used(self, export_path: Path):
        config = file_config(export_path, options=PipelineOptions(encrypt=True))
        with ExportSession(config, hooks=PipelineHooks(encryptor_factory=XorEncryptor)) as session:
            session.sink().write_text("dn: dc=example\n\n")
        assert b"dn:" not in export_path.read_bytes()


class TestSelectionDelegation:
    def test_decide_and_retain(self, export_path: Path):
        config = file_config(
            export_path,
            criteria=SelectionCriteria.build(
                exclude_branches=["dc=private"], exclude_attributes=["userPassword"]
            ),
        )
        session = ExportSession(config)
        assert session.decide(make_entry("uid=a,dc=private")) is Decision.EXCLUDE
        assert session.decide(make_entry("uid=b,dc=example")) is Decision.INCLUDE
        assert session.retain_attribute("userPassword") is False
        assert session.retain_attribute("cn") is True
