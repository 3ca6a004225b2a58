"""Result types passed out of the transformer and the run orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from jobstash.contracts.enums import RunStatus, Severity
from jobstash.contracts.errors import JobstashError
from jobstash.contracts.record import CanonicalRecord


class TransformAction(StrEnum):
    """What the orchestrator should do with one transformed row.

    Values:
        DELIVER: Write the serialized record to every sink
        SUPPRESS: Row processed but filtered by delivery mode; checkpoint only
        SKIP: Row is before the start boundary; checkpoint only
        STOP: Row is past the stop boundary; end the scan without checkpointing it
    """

    DELIVER = "deliver"
    SUPPRESS = "suppress"
    SKIP = "skip"
    STOP = "stop"


@dataclass(frozen=True, slots=True)
class Classification:
    """Severity classification of a job status code."""

    label: str
    severity: Severity


@dataclass(frozen=True, slots=True)
class TransformDecision:
    """Outcome of transforming one RawEvent.

    record/payload are set for DELIVER. record is also set for SUPPRESS so
    the classification is observable; it is never written to a sink.
    """

    action: TransformAction
    classification: Classification | None = None
    record: CanonicalRecord | None = None
    payload: str | None = None

    @classmethod
    def skip(cls) -> TransformDecision:
        return cls(action=TransformAction.SKIP)

    @classmethod
    def stop(cls) -> TransformDecision:
        return cls(action=TransformAction.STOP)


@dataclass
class RunResult:
    """Aggregate outcome of one source run. Returned to the caller, not persisted.

    Mutable because the orchestrator fills it in while the run progresses.
    instance starts as the configured fqdn and is replaced by the resolved
    server name once the connection is up.
    """

    session: str
    instance: str
    status: RunStatus = RunStatus.COMPLETED
    rows_delivered: int = 0
    rows_scanned: int = 0
    last_cursor: int | None = None
    committed_cursor: int | None = None
    error: JobstashError | Exception | None = field(default=None)

    @property
    def failed(self) -> bool:
        return self.status == RunStatus.FAILED
