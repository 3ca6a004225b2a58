"""Checkpoint contracts returned by the checkpoint store."""

from dataclasses import dataclass
from datetime import datetime

from jobstash.contracts.enums import CheckpointState


@dataclass(frozen=True, slots=True)
class CheckpointOffset:
    """Last committed position of a logical source.

    A source that has never committed reads as cursor 0 with no metadata.
    """

    cursor: int
    batch_key: str | None = None
    state: CheckpointState | None = None
    committed_at: datetime | None = None

    @property
    def is_initial(self) -> bool:
        return self.committed_at is None


@dataclass(frozen=True, slots=True)
class CheckpointRow:
    """One committed checkpoint, as listed for status reporting."""

    domain: str
    server: str
    event_class: str
    session: str
    cursor: int
    state: CheckpointState
    committed_at: datetime
