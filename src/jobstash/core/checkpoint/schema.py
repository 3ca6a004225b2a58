# src/jobstash/core/checkpoint/schema.py
"""SQLAlchemy table definitions for checkpoint storage.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
)

metadata = MetaData()

_SOURCE_KEY_COLUMNS = ("domain", "server", "event_class", "session")


def _source_key_columns() -> list[Column]:
    return [
        Column("domain", String(128), nullable=False),
        Column("server", String(256), nullable=False),
        Column("event_class", String(64), nullable=False),
        Column("session", String(128), nullable=False),
    ]


# === Committed offsets ===
# One row per logical source. This is what the next run resumes from.

checkpoint_offsets_table = Table(
    "checkpoint_offsets",
    metadata,
    *_source_key_columns(),
    Column("batch_key", String(256), nullable=False),
    Column("cursor", Integer, nullable=False),  # Never decreases
    Column("state", String(32), nullable=False),  # CheckpointState
    Column("committed_at", DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint(*_SOURCE_KEY_COLUMNS),
)

# === Per-row progress ===
# Incremental saves during a scan. Diagnostic only: never read to resume.

checkpoint_progress_table = Table(
    "checkpoint_progress",
    metadata,
    *_source_key_columns(),
    Column("batch_key", String(256), nullable=False),
    Column("cursor", Integer, nullable=False),
    Column("state", String(32), nullable=False),
    Column("saved_at", DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint(*_SOURCE_KEY_COLUMNS, "batch_key"),
)

# === Run leases ===
# Cross-process liveness for the concurrency guard.

run_leases_table = Table(
    "run_leases",
    metadata,
    Column("source_key", String(640), primary_key=True),
    Column("holder", Text, nullable=False),  # host:pid:token
    Column("acquired_at", DateTime(timezone=True), nullable=False),
)
