"""Canonical record: the sink-agnostic form of one deliverable event.

A CanonicalRecord is a tree. Leaves are scalars (str, int, float, bool,
None) or timestamps; inner nodes are nested CanonicalRecords. Keeping the
tree typed until serialization lets payload nesting and field operations
work on structure instead of rewriting JSON text.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping, MutableMapping
from datetime import datetime
from typing import Any, TypeAlias

from jobstash.contracts.sentinels import MISSING, MissingSentinel

FieldValue: TypeAlias = "str | int | float | bool | datetime | None | CanonicalRecord"

_SCALAR_TYPES = (str, int, float, bool, datetime, type(None))


def _coerce(value: Any) -> FieldValue:
    """Validate a value on its way into a record.

    Plain mappings become nested records. Anything else outside the
    supported leaf types is a programming error upstream.
    """
    if isinstance(value, CanonicalRecord):
        return value
    if isinstance(value, Mapping):
        return CanonicalRecord(value)
    if isinstance(value, _SCALAR_TYPES):
        return value
    raise TypeError(f"Unsupported record value type {type(value).__name__}: {value!r}")


def _to_plain(value: FieldValue) -> Any:
    if isinstance(value, CanonicalRecord):
        return value.to_dict()
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class CanonicalRecord(MutableMapping[str, "FieldValue"]):
    """Ordered mapping of field name to scalar, timestamp, or nested record.

    Dotted paths ("event.timestamp") address nested records through
    get_path/set_path/pop_path. Plain item access never interprets dots.

    Example:
        >>> record = CanonicalRecord({"name": "agent_job"})
        >>> record.set_path("meta.env", "prod")
        >>> record.to_dict()
        {'name': 'agent_job', 'meta': {'env': 'prod'}}
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, Any] | None = None) -> None:
        self._fields: dict[str, FieldValue] = {}
        if fields is not None:
            for key, value in fields.items():
                self[key] = value

    def __getitem__(self, key: str) -> FieldValue:
        return self._fields[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if not isinstance(key, str) or not key:
            raise KeyError(f"Record field names must be non-empty strings, got {key!r}")
        self._fields[key] = _coerce(value)

    def __delitem__(self, key: str) -> None:
        del self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CanonicalRecord):
            return self._fields == other._fields
        if isinstance(other, Mapping):
            return self.to_dict() == dict(other) or self._fields == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"CanonicalRecord({self._fields!r})"

    def set_if_empty(self, key: str, value: Any) -> None:
        """Set a field only when it is absent, None, or an empty string."""
        current = self._fields.get(key)
        if current is None or current == "":
            self[key] = value

    # === Dotted path access ===

    def get_path(self, path: str) -> FieldValue | MissingSentinel:
        """Get the value at a dotted path, or MISSING when any segment is absent."""
        current: FieldValue = self
        for part in path.split("."):
            if not isinstance(current, CanonicalRecord) or part not in current:
                return MISSING
            current = current[part]
        return current

    def set_path(self, path: str, value: Any) -> None:
        """Set the value at a dotted path, creating intermediate records.

        An intermediate segment that holds a scalar is replaced by a record.
        """
        *parents, leaf = path.split(".")
        current = self
        for part in parents:
            child = current._fields.get(part)
            if not isinstance(child, CanonicalRecord):
                child = CanonicalRecord()
                current[part] = child
            current = child
        current[leaf] = value

    def pop_path(self, path: str) -> FieldValue | MissingSentinel:
        """Remove and return the value at a dotted path, or MISSING if absent."""
        *parents, leaf = path.split(".")
        current: FieldValue = self
        for part in parents:
            if not isinstance(current, CanonicalRecord) or part not in current:
                return MISSING
            current = current[part]
        if not isinstance(current, CanonicalRecord) or leaf not in current:
            return MISSING
        return current._fields.pop(leaf)

    # === Conversion ===

    def copy(self) -> CanonicalRecord:
        """Deep copy of the tree. Leaves are immutable so they are shared."""
        clone = CanonicalRecord()
        for key, value in self._fields.items():
            clone._fields[key] = value.copy() if isinstance(value, CanonicalRecord) else value
        return clone

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible plain dict. Timestamps render as ISO-8601 text."""
        return {key: _to_plain(value) for key, value in self._fields.items()}

    def to_json(self) -> str:
        """Serialize to compact JSON.

        Raises:
            ValueError: If a float leaf is NaN or infinite
        """
        return json.dumps(self.to_dict(), allow_nan=False, ensure_ascii=False, separators=(",", ":"))
