"""Tests for adds, copies, and moves on canonical records."""

from __future__ import annotations

from jobstash.contracts import CanonicalRecord
from jobstash.core.config import AddOperation, CopyOperation, MoveOperation
from jobstash.engine.field_operations import apply_adds, apply_copies, apply_field_operations, apply_moves


def _record() -> CanonicalRecord:
    return CanonicalRecord({"job_name": "backup", "event": {"message": "ok", "step_id": 0}})


def test_add_sets_constant() -> None:
    record = _record()
    apply_adds(record, [AddOperation.model_validate("environment:prod")])

    assert record["environment"] == "prod"


def test_add_overwrites_existing() -> None:
    record = _record()
    apply_adds(record, [AddOperation.model_validate("job_name:restore")])

    assert record["job_name"] == "restore"


def test_add_nested_path() -> None:
    record = _record()
    apply_adds(record, [AddOperation(field="meta.team", value="dba")])

    assert record.to_dict()["meta"] == {"team": "dba"}


def test_copy_keeps_source() -> None:
    record = _record()
    apply_copies(record, [CopyOperation.model_validate("event.message:text")])

    assert record["text"] == "ok"
    assert record.get_path("event.message") == "ok"


def test_copy_missing_source_is_skipped() -> None:
    record = _record()
    before = record.to_dict()
    apply_copies(record, [CopyOperation.model_validate("nope:text")])

    assert record.to_dict() == before


def test_copy_of_subtree_does_not_alias() -> None:
    record = _record()
    apply_copies(record, [CopyOperation.model_validate("event:backup_event")])
    record.set_path("backup_event.message", "changed")

    assert record.get_path("event.message") == "ok"


def test_move_relocates_field() -> None:
    record = _record()
    apply_moves(record, [MoveOperation.model_validate("event.message:message")])

    assert record["message"] == "ok"
    assert record.to_dict()["event"] == {"step_id": 0}


def test_move_onto_itself_is_noop() -> None:
    record = _record()
    apply_moves(record, [MoveOperation.model_validate("job_name:job_name")])

    assert record["job_name"] == "backup"


def test_move_missing_source_is_skipped() -> None:
    record = _record()
    before = record.to_dict()
    apply_moves(record, [MoveOperation.model_validate("nope:other")])

    assert record.to_dict() == before


def test_order_is_adds_then_copies_then_moves() -> None:
    record = CanonicalRecord({"a": 1})

    apply_field_operations(
        record,
        adds=[AddOperation.model_validate("b:added")],
        copies=[CopyOperation.model_validate("b:c")],
        moves=[MoveOperation.model_validate("c:d")],
    )

    assert record.to_dict() == {"a": 1, "b": "added", "d": "added"}


def test_configured_order_within_a_list() -> None:
    record = CanonicalRecord({"a": 1})

    apply_moves(record, [MoveOperation.model_validate("a:b"), MoveOperation.model_validate("b:c")])

    assert record.to_dict() == {"c": 1}
