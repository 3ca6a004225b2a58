"""Raw source events as produced by a connector."""

from dataclasses import dataclass
from datetime import datetime

from jobstash.contracts.enums import RecordKind


@dataclass(frozen=True, slots=True)
class RawEvent:
    """One job history row, in cursor order.

    Transient: produced by the connector, consumed immediately by the
    transformer, never retained.

    timestamp_utc is kept as the connector delivered it (ISO-8601 text or a
    datetime). Decoding happens in the transformer so that a malformed value
    aborts the run with a ScanDecodeError.
    """

    instance_id: int
    kind: RecordKind
    job_id: str
    step_id: int
    step_name: str
    job_name: str
    message: str
    run_status: int
    run_duration: int
    timestamp_local: datetime
    timestamp_utc: str | datetime

    @property
    def cursor(self) -> int:
        return self.instance_id
