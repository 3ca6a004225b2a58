"""Shared contracts for cross-boundary data types.

Dataclasses, enums, and errors that cross subsystem boundaries live here.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Settings classes are NOT re-exported here - import them from jobstash.core.config.

Import patterns:
    # Contracts (lightweight, no heavy dependencies)
    from jobstash.contracts import RawEvent, RunResult, SourceIdentity

    # Settings classes
    from jobstash.core.config import JobstashSettings, SourceSettings
"""

from jobstash.contracts.checkpoint import CheckpointOffset, CheckpointRow
from jobstash.contracts.enums import (
    CheckpointState,
    DeliveryMode,
    EventClass,
    GuardOutcome,
    RecordKind,
    RunStatus,
    Severity,
)
from jobstash.contracts.errors import (
    CheckpointError,
    CheckpointRegressionError,
    ConnectivityError,
    DuplicateRunError,
    JobstashError,
    PluginNotFoundError,
    ScanDecodeError,
    SinkCloseError,
    SinkFlushOrCleanError,
    SinkOpenError,
    SinkWriteError,
)
from jobstash.contracts.events import RawEvent
from jobstash.contracts.identity import InstanceInfo, SourceIdentity
from jobstash.contracts.record import CanonicalRecord, FieldValue
from jobstash.contracts.results import (
    Classification,
    RunResult,
    TransformAction,
    TransformDecision,
)
from jobstash.contracts.sentinels import MISSING

__all__ = [
    "MISSING",
    "CanonicalRecord",
    "CheckpointError",
    "CheckpointOffset",
    "CheckpointRegressionError",
    "CheckpointRow",
    "CheckpointState",
    "Classification",
    "ConnectivityError",
    "DeliveryMode",
    "DuplicateRunError",
    "EventClass",
    "FieldValue",
    "GuardOutcome",
    "InstanceInfo",
    "JobstashError",
    "PluginNotFoundError",
    "RawEvent",
    "RecordKind",
    "RunResult",
    "RunStatus",
    "ScanDecodeError",
    "Severity",
    "SinkCloseError",
    "SinkFlushOrCleanError",
    "SinkOpenError",
    "SinkWriteError",
    "SourceIdentity",
    "TransformAction",
    "TransformDecision",
]
