"""Structural field operations on canonical records.

Adds, copies, and moves run against the record tree before serialization.
Field names may be dotted ("event.server") to address nested records.

Order is fixed: every add, then every copy, then every move, each list in
configured order. A copy or move whose source is missing is skipped, which
makes repeated application safe: a second copy rewrites the same value, a
second move finds its source already gone.
"""

from collections.abc import Sequence

from jobstash.contracts import MISSING, CanonicalRecord
from jobstash.core.config import AddOperation, CopyOperation, MoveOperation


def apply_adds(record: CanonicalRecord, adds: Sequence[AddOperation]) -> None:
    """Insert or overwrite a field with a constant value."""
    for op in adds:
        record.set_path(op.field, op.value)


def apply_copies(record: CanonicalRecord, copies: Sequence[CopyOperation]) -> None:
    """Duplicate a field under a new name. The source is left untouched."""
    for op in copies:
        value = record.get_path(op.source)
        if value is MISSING:
            continue
        # Nested records are copied so later edits don't alias
        if isinstance(value, CanonicalRecord):
            value = value.copy()
        record.set_path(op.target, value)


def apply_moves(record: CanonicalRecord, moves: Sequence[MoveOperation]) -> None:
    """Rename or relocate a field, removing the original location."""
    for op in moves:
        if op.source == op.target:
            continue
        value = record.pop_path(op.source)
        if value is MISSING:
            continue
        record.set_path(op.target, value)


def apply_field_operations(
    record: CanonicalRecord,
    *,
    adds: Sequence[AddOperation] = (),
    copies: Sequence[CopyOperation] = (),
    moves: Sequence[MoveOperation] = (),
) -> CanonicalRecord:
    """Apply adds, copies, then moves in place and return the record."""
    apply_adds(record, adds)
    apply_copies(record, copies)
    apply_moves(record, moves)
    return record
