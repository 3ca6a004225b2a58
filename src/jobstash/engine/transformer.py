"""Record transformer: RawEvent -> zero or one delivered record.

Steps, in order:

1. Time window. Rows before the start boundary are skipped; the first row
   after the stop boundary ends the scan.
2. Classification of run_status into (label, severity).
3. Description synthesis (xe_description).
4. Delivery-mode filter. Filtered rows are fully built but never written.
5. Projection: nest under payload_field, or rename the root timestamp.
6. Field operations (adds, copies, moves) on the record tree.

A RecordTransformer instance lives for one run; it remembers whether the
start-boundary skip has been logged.
"""

from datetime import UTC, datetime

from jobstash.contracts import (
    CanonicalRecord,
    Classification,
    DeliveryMode,
    InstanceInfo,
    RawEvent,
    RecordKind,
    ScanDecodeError,
    Severity,
    TransformAction,
    TransformDecision,
)
from jobstash.core.config import DEFAULT_TIMESTAMP_FIELD, SourceSettings
from jobstash.core.logging import get_logger
from jobstash.engine.field_operations import apply_field_operations

logger = get_logger(__name__)

_STATUS_CLASSES: dict[int, Classification] = {
    0: Classification("failed", Severity.ERROR),
    1: Classification("succeeded", Severity.INFO),
    2: Classification("retry", Severity.WARNING),
    3: Classification("cancelled", Severity.WARNING),
    4: Classification("inprogress", Severity.INFO),
}

UNDEFINED = Classification("undefined", Severity.WARNING)

# Labels delivered in DeliveryMode.FAILED
FAILURE_LABELS: frozenset[str] = frozenset({"failed", "retry", "cancelled"})


def classify(run_status: int) -> Classification:
    """Map an agent run_status code to its label and severity.

    Total: codes outside 0-4 are "undefined" with WARNING severity.
    """
    return _STATUS_CLASSES.get(run_status, UNDEFINED)


def describe(event: RawEvent) -> str:
    """Human-readable one-liner for a job or step outcome."""
    if event.kind is RecordKind.STEP:
        return f"{event.job_name}: [{event.step_id}] {event.step_name}: {event.message}"
    return f"{event.job_name}: {event.message}"


def is_delivered(mode: DeliveryMode, classification: Classification) -> bool:
    return mode is DeliveryMode.ALL or classification.label in FAILURE_LABELS


def parse_utc(value: str | datetime) -> datetime:
    """Decode the connector's UTC timestamp into an aware datetime.

    Raises:
        ScanDecodeError: If the value is not ISO-8601 text or a datetime
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise ScanDecodeError("scan.timestamp", f"invalid utc timestamp {value!r}") from exc
    else:
        raise ScanDecodeError("scan.timestamp", f"invalid utc timestamp type {type(value).__name__}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


class RecordTransformer:
    """Per-run transformer for one source.

    Args:
        settings: Source configuration
        instance: Resolved server identity, copied into every record
        now: Reference time for lookback_days (default: current UTC time)
    """

    def __init__(self, settings: SourceSettings, instance: InstanceInfo, *, now: datetime | None = None) -> None:
        self._settings = settings
        self._instance = instance
        self._start_at = settings.effective_start_at(now)
        self._stop_at = settings.stop_at
        self._start_skip_logged = False

    @property
    def start_at(self) -> datetime | None:
        return self._start_at

    def process(self, event: RawEvent) -> TransformDecision:
        """Transform one row.

        Raises:
            ScanDecodeError: If the UTC timestamp cannot be decoded
        """
        timestamp = parse_utc(event.timestamp_utc)

        if self._start_at is not None and timestamp < self._start_at:
            if not self._start_skip_logged:
                logger.debug("Start boundary skipped at least one event", start_at=self._start_at.isoformat(), cursor=event.cursor)
                self._start_skip_logged = True
            return TransformDecision.skip()

        if self._stop_at is not None and timestamp > self._stop_at:
            logger.debug("Stop boundary reached", stop_at=self._stop_at.isoformat(), cursor=event.cursor)
            return TransformDecision.stop()

        classification = classify(event.run_status)
        base = self.build_record(event, timestamp, classification)

        if not is_delivered(self._settings.agent_jobs, classification):
            return TransformDecision(action=TransformAction.SUPPRESS, classification=classification, record=base)

        record = self.project(base)
        apply_field_operations(
            record,
            adds=self._settings.adds,
            copies=self._settings.copies,
            moves=self._settings.moves,
        )
        try:
            payload = record.to_json()
        except ValueError as exc:
            raise ScanDecodeError("record.tojson", str(exc)) from exc

        return TransformDecision(
            action=TransformAction.DELIVER,
            classification=classification,
            record=record,
            payload=payload,
        )

    def build_record(self, event: RawEvent, timestamp: datetime, classification: Classification) -> CanonicalRecord:
        """Flat canonical record for one row, before projection."""
        info = self._instance
        record = CanonicalRecord(
            {
                "name": str(event.kind),
                "instance_id": event.instance_id,
                "job_id": event.job_id,
                "step_id": event.step_id,
                "step_name": event.step_name,
                "job_name": event.job_name,
                "message": event.message,
                "run_status": event.run_status,
                "run_status_text": classification.label,
                "xe_severity_value": int(classification.severity),
                "xe_severity_keyword": classification.severity.keyword,
                "run_duration": event.run_duration,
                "timestamp": timestamp,
                "timestamp_local": event.timestamp_local,
                "timestamp_utc_calculated": timestamp,
                "mssql_domain": info.domain,
                "mssql_computer": info.computer,
                "mssql_server_name": info.server,
                "mssql_version": info.version,
                "mssql_product_version": info.product_version,
            }
        )
        record.set_if_empty("server_instance_name", info.server)
        description = describe(event)
        if description:
            record["xe_description"] = description
        return record

    def project(self, base: CanonicalRecord) -> CanonicalRecord:
        """Nest under payload_field, or rename the root timestamp field."""
        payload_field = self._settings.payload_field
        timestamp_field = self._settings.timestamp_field

        if payload_field:
            projected = CanonicalRecord()
            projected[payload_field] = base
            projected[timestamp_field] = base[DEFAULT_TIMESTAMP_FIELD]
            return projected

        if timestamp_field != DEFAULT_TIMESTAMP_FIELD:
            base[timestamp_field] = base.pop(DEFAULT_TIMESTAMP_FIELD)
        return base
