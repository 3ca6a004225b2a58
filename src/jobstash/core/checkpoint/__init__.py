"""Checkpoint persistence: committed cursors, per-row progress, run leases."""

from jobstash.core.checkpoint.database import CheckpointDB
from jobstash.core.checkpoint.store import CheckpointStore, list_offsets

__all__ = [
    "CheckpointDB",
    "CheckpointStore",
    "list_offsets",
]
