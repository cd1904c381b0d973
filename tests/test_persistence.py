"""
Tests for persistence sinks and the file-based entry points.
"""

import json

import pytest

from reconcile.config import TestConfig
from reconcile.exceptions import PermissionDeniedError
from reconcile.main import format_summary_json, import_file, load_import_batch_from_file
from reconcile.persistence import JsonFileSink, MemorySink, NullSink
from reconcile.session import ReconciliationSession


def test_every_mutation_is_emitted(loaded_session, sink, analyst):
    emitted = len(sink.saved)
    loaded_session.create_match(["L1"], ["R1"], None, analyst)

    assert len(sink.saved) == emitted + 1
    assert len(sink.saved[-1].matches) == 1


def test_undo_is_emitted(loaded_session, sink, analyst):
    loaded_session.create_match(["L1"], ["R1"], None, analyst)
    loaded_session.undo()
    assert sink.saved[-1].matches == []


def test_rejected_operation_is_not_emitted(loaded_session, sink, analyst):
    emitted = len(sink.saved)
    with pytest.raises(PermissionDeniedError):
        loaded_session.set_cutoff("2024-06-30", analyst)
    assert len(sink.saved) == emitted


def test_empty_memory_sink_loads_nothing():
    sink = MemorySink()
    assert sink.load() is None


def test_null_sink_discards(admin, sample_batch):
    null_session = ReconciliationSession(config=TestConfig(), sink=NullSink())
    null_session.import_transactions(sample_batch, admin, "2024-07-05")
    assert null_session.sink.load() is None


def test_json_file_sink_round_trip(tmp_path, loaded_session, analyst, clock):
    path = tmp_path / "state" / "workspace.json"
    loaded_session.sink = JsonFileSink(str(path))
    loaded_session.create_match(["L2"], ["R2"], "saved", analyst)

    reopened = ReconciliationSession.from_sink(JsonFileSink(str(path)), config=TestConfig(), clock=clock)

    assert reopened.workspace.capture() == loaded_session.workspace.capture()
    assert reopened.workspace.matches[0].comment == "saved"
    assert not (tmp_path / "state" / "workspace.json.tmp").exists()


def test_json_file_sink_missing_file(tmp_path):
    assert JsonFileSink(str(tmp_path / "absent.json")).load() is None


def test_json_file_sink_unreadable_file(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{\"transactions\": 42}")
    assert JsonFileSink(str(path)).load() is None


def test_json_file_sink_invalid_utf8(tmp_path):
    path = tmp_path / "binary.json"
    path.write_bytes(b"\xff\xfe\x00garbage")
    assert JsonFileSink(str(path)).load() is None


def test_json_file_sink_path_is_directory(tmp_path):
    path = tmp_path / "workspace.json"
    path.mkdir()
    assert JsonFileSink(str(path)).load() is None


def test_session_starts_fresh_from_undecodable_file(tmp_path, clock):
    path = tmp_path / "workspace.json"
    path.write_bytes(b"\xff\xfe\x00garbage")

    session = ReconciliationSession.from_sink(JsonFileSink(str(path)), config=TestConfig(), clock=clock)

    assert session.workspace.transactions == []
    assert session.resolve_user("u0").name == "System Admin"


def test_import_file(tmp_path, session, sample_batch):
    batch_file = tmp_path / "batch.json"
    batch_file.write_text(json.dumps(sample_batch))

    result = import_file(session, str(batch_file), "2024-07-05", user_id="u1")

    assert result.imported == 7
    assert session.workspace.transactions[0].imported_by == "u1"


def test_load_batch_defaults_name_to_file(tmp_path, sample_batch):
    del sample_batch["name"]
    batch_file = tmp_path / "batch.json"
    batch_file.write_text(json.dumps(sample_batch))

    batch = load_import_batch_from_file(str(batch_file))

    assert batch.name == str(batch_file)
    assert len(batch.right) == 4


def test_format_summary_json(loaded_session, analyst):
    loaded_session.create_match(["L1"], ["R1"], None, analyst)

    summary = json.loads(format_summary_json(loaded_session))

    assert summary["total_transactions"] == 7
    assert summary["matched_count"] == 2
    assert summary["matched_value"] == "100.00"
    assert summary["can_undo"] is True
    assert summary["date_warning"] is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
