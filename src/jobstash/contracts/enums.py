"""Status codes, modes, and kinds used across subsystem boundaries.

Values that are persisted (checkpoint state, run status) are StrEnums so
they serialize to stable lowercase strings.
"""

from enum import IntEnum, StrEnum


class RunStatus(StrEnum):
    """Terminal status of one source run.

    SKIPPED means the concurrency guard reported a conflict; it is not a failure.
    """

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class CheckpointState(StrEnum):
    """State recorded alongside a checkpoint cursor.

    Stored in database (checkpoint_offsets.state, checkpoint_progress.state).
    """

    SUCCESS = "success"
    RESET = "reset"


class DeliveryMode(StrEnum):
    """Which job history rows are delivered to sinks.

    Values:
        ALL: Every row inside the time window
        FAILED: Only failed, retried, and cancelled rows
    """

    ALL = "all"
    FAILED = "failed"


class EventClass(StrEnum):
    """Class of event stream a logical source reads from."""

    AGENT_JOBS = "agent_jobs"


class RecordKind(StrEnum):
    """Kind of job history row.

    Job-level rows have step_id 0; everything else is a step.
    """

    JOB = "agent_job"
    STEP = "agent_job_step"


class Severity(IntEnum):
    """Ordinal severity attached to every record.

    Serialized as the integer value (xe_severity_value) and the lowercase
    keyword (xe_severity_keyword).
    """

    INFO = 1
    WARNING = 2
    ERROR = 3

    @property
    def keyword(self) -> str:
        return self.name.lower()


class GuardOutcome(StrEnum):
    """Result of asking the concurrency guard for a logical source."""

    ACQUIRED = "acquired"
    CONFLICT = "conflict"
