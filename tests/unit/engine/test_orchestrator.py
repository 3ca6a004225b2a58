"""Tests for RunOrchestrator: scan, deliver, checkpoint, and failure paths."""

from __future__ import annotations

from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import pytest

from jobstash.contracts import (
    CheckpointError,
    ConnectivityError,
    EventClass,
    GuardOutcome,
    RawEvent,
    RunStatus,
    ScanDecodeError,
    SinkCloseError,
    SinkFlushOrCleanError,
    SinkOpenError,
    SinkWriteError,
    SourceIdentity,
)
from jobstash.core.checkpoint import CheckpointDB, CheckpointStore
from jobstash.core.checkpoint.schema import run_leases_table
from jobstash.core.guard import ConcurrencyGuard
from jobstash.core.metrics import METRICS
from jobstash.engine.orchestrator import SESSION_AGENT_JOBS, RunOrchestrator
from tests.conftest import INSTANCE, ListConnector, MemorySink, event_time, make_event, make_source

IDENTITY = SourceIdentity.for_instance(INSTANCE, EventClass.AGENT_JOBS, SESSION_AGENT_JOBS)


@pytest.fixture
def orchestrator(checkpoint_db: CheckpointDB, guard: ConcurrencyGuard) -> RunOrchestrator:
    return RunOrchestrator(db=checkpoint_db, guard=guard)


def _committed(db: CheckpointDB) -> int:
    return CheckpointStore(db, IDENTITY).read_offset().cursor


def _events(count: int) -> list[RawEvent]:
    return [make_event(cursor) for cursor in range(1, count + 1)]


class TestDelivery:
    def test_delivers_all_rows_and_commits_last_cursor(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        sink = MemorySink()
        connector = ListConnector(_events(3))

        result = orchestrator.run(1, make_source(), connector, [sink])

        assert result.status is RunStatus.COMPLETED
        assert result.instance == "SQL01\\PROD"
        assert result.session == "agent_jobs"
        assert result.rows_delivered == 3
        assert result.rows_scanned == 3
        assert result.committed_cursor == 3
        assert sink.delivered_cursors == [1, 2, 3]
        assert sink.calls == ["open", "write", "write", "write", "flush", "clean", "close"]
        assert _committed(checkpoint_db) == 3

    def test_sinks_opened_with_resolved_sink_id(self, orchestrator: RunOrchestrator) -> None:
        sink = MemorySink()

        orchestrator.run(1, make_source(), ListConnector(_events(1)), [sink])

        assert sink.sink_id == "SQL01_PROD"

    def test_every_sink_gets_every_record(self, orchestrator: RunOrchestrator) -> None:
        first, second = MemorySink({"name": "first"}), MemorySink({"name": "second"})

        orchestrator.run(1, make_source(), ListConnector(_events(2)), [first, second])

        assert first.records == second.records
        assert len(first.records) == 2

    def test_record_kind_passed_to_sink(self, orchestrator: RunOrchestrator) -> None:
        sink = MemorySink()
        events = [make_event(1), make_event(2, step_id=1)]

        orchestrator.run(1, make_source(), ListConnector(events), [sink])

        assert [kind for kind, _ in sink.records] == ["agent_job", "agent_job_step"]

    def test_metrics_counted_per_server(self, orchestrator: RunOrchestrator) -> None:
        orchestrator.run(1, make_source(), ListConnector(_events(3)), [MemorySink()])

        snapshot = METRICS.snapshot()
        assert snapshot.rows_read == 3
        assert snapshot.records_delivered == 3
        assert snapshot.servers == {"CORP-SQL01-PROD-agent_jobs": 3}
        assert snapshot.events == {"agent_job": 3}

    def test_empty_source_completes_without_commit(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        sink = MemorySink()

        result = orchestrator.run(1, make_source(), ListConnector([]), [sink])

        assert result.status is RunStatus.COMPLETED
        assert result.last_cursor is None
        assert result.committed_cursor is None
        assert sink.calls == ["open", "close"]
        assert CheckpointStore(checkpoint_db, IDENTITY).read_offset().is_initial


class TestRowCap:
    def test_cap_limits_delivered_rows_and_commit(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        sink = MemorySink()

        result = orchestrator.run(1, make_source(rows=5), ListConnector(_events(10)), [sink])

        assert sink.delivered_cursors == [1, 2, 3, 4, 5]
        assert result.rows_delivered == 5
        assert result.committed_cursor == 5
        assert _committed(checkpoint_db) == 5

    def test_cap_counts_delivered_rows_only(self, orchestrator: RunOrchestrator) -> None:
        sink = MemorySink()
        statuses = [1, 0, 1, 0, 1, 0]
        events = [make_event(i, status=s) for i, s in enumerate(statuses, start=1)]

        result = orchestrator.run(1, make_source(rows=2, agent_jobs="failed"), ListConnector(events), [sink])

        assert sink.delivered_cursors == [2, 4]
        assert result.committed_cursor == 4

    def test_next_run_resumes_after_cap(self, orchestrator: RunOrchestrator) -> None:
        events = _events(10)
        orchestrator.run(1, make_source(rows=5), ListConnector(events), [MemorySink()])

        sink = MemorySink()
        connector = ListConnector(events)
        result = orchestrator.run(1, make_source(), connector, [sink])

        assert connector.fetch_calls == [5]
        assert sink.delivered_cursors == [6, 7, 8, 9, 10]
        assert result.committed_cursor == 10


class TestDeliveryMode:
    def test_failed_only_delivers_failures_and_checkpoints_everything(
        self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB
    ) -> None:
        sink = MemorySink()
        events = [make_event(cursor, status=status) for cursor, status in zip([10, 11, 12, 13], [0, 1, 2, 3], strict=True)]

        result = orchestrator.run(1, make_source(agent_jobs="failed"), ListConnector(events), [sink])

        assert [p["run_status"] for p in sink.payloads] == [0, 2, 3]
        assert result.rows_delivered == 3
        assert result.rows_scanned == 4
        assert _committed(checkpoint_db) == 13

    def test_only_suppressed_rows_still_commit(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        sink = MemorySink()

        result = orchestrator.run(1, make_source(agent_jobs="failed"), ListConnector(_events(3)), [sink])

        assert sink.records == []
        assert result.committed_cursor == 3
        assert sink.calls == ["open", "flush", "clean", "close"]


class TestTimeWindow:
    def test_stop_boundary_ends_scan_without_checkpointing_the_row(
        self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB
    ) -> None:
        sink = MemorySink()

        result = orchestrator.run(1, make_source(stop_at=event_time(5)), ListConnector(_events(10)), [sink])

        assert sink.delivered_cursors == [1, 2, 3, 4, 5]
        assert result.rows_scanned == 5
        assert _committed(checkpoint_db) == 5

    def test_rows_before_start_advance_checkpoint(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        sink = MemorySink()

        result = orchestrator.run(1, make_source(start_at=event_time(4)), ListConnector(_events(6)), [sink])

        assert sink.delivered_cursors == [4, 5, 6]
        assert result.rows_scanned == 6
        assert _committed(checkpoint_db) == 6

    def test_all_rows_before_start(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        sink = MemorySink()

        result = orchestrator.run(1, make_source(start_at=event_time(100)), ListConnector(_events(3)), [sink])

        assert sink.records == []
        assert result.status is RunStatus.COMPLETED
        assert _committed(checkpoint_db) == 3


class TestIdempotentRerun:
    def test_second_run_has_nothing_new(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        events = _events(4)
        orchestrator.run(1, make_source(), ListConnector(events), [MemorySink()])

        sink = MemorySink()
        connector = ListConnector(events)
        result = orchestrator.run(1, make_source(), connector, [sink])

        assert connector.fetch_calls == [4]
        assert result.rows_scanned == 0
        assert result.committed_cursor is None
        assert sink.records == []
        assert _committed(checkpoint_db) == 4


class TestFailures:
    def test_resolve_failure(self, orchestrator: RunOrchestrator, guard: ConcurrencyGuard) -> None:
        sink = MemorySink()
        connector = ListConnector(_events(3), fail_resolve=True)

        result = orchestrator.run(1, make_source(), connector, [sink])

        assert result.status is RunStatus.FAILED
        assert isinstance(result.error, ConnectivityError)
        assert result.instance == "SQL01"
        assert connector.closed
        assert sink.calls == []
        assert not guard.is_active(IDENTITY)

    def test_guard_conflict_is_skipped(self, orchestrator: RunOrchestrator, guard: ConcurrencyGuard) -> None:
        guard.acquire(IDENTITY)
        sink = MemorySink()
        connector = ListConnector(_events(3))

        result = orchestrator.run(2, make_source(), connector, [sink])

        assert result.status is RunStatus.SKIPPED
        assert not result.failed
        assert result.error is None
        assert connector.fetch_calls == []
        assert connector.closed
        assert sink.calls == []
        assert guard.is_active(IDENTITY)

    def test_open_failure_scans_nothing(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        good, bad = MemorySink({"name": "good"}), MemorySink({"name": "bad", "fail_on": ["open"]})
        connector = ListConnector(_events(3))

        result = orchestrator.run(1, make_source(), connector, [good, bad])

        assert isinstance(result.error, SinkOpenError)
        assert connector.fetch_calls == []
        assert good.closed and bad.closed
        assert _committed(checkpoint_db) == 0

    def test_write_failure_aborts_without_commit(
        self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB, guard: ConcurrencyGuard
    ) -> None:
        sink = MemorySink({"fail_write_after": 2})
        connector = ListConnector(_events(5))

        result = orchestrator.run(1, make_source(), connector, [sink])

        assert result.status is RunStatus.FAILED
        assert isinstance(result.error, SinkWriteError)
        assert result.rows_delivered == 2
        assert result.committed_cursor is None
        assert sink.closed
        assert "flush" not in sink.calls
        assert connector.closed
        assert _committed(checkpoint_db) == 0
        assert not guard.is_active(IDENTITY)

    def test_flush_failure_skips_commit(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        sink = MemorySink({"fail_on": ["flush"]})

        result = orchestrator.run(1, make_source(), ListConnector(_events(3)), [sink])

        assert isinstance(result.error, SinkFlushOrCleanError)
        assert result.rows_delivered == 3
        assert result.committed_cursor is None
        assert sink.closed
        assert _committed(checkpoint_db) == 0

    def test_failed_batch_is_redelivered_next_run(self, orchestrator: RunOrchestrator) -> None:
        events = _events(3)
        orchestrator.run(1, make_source(), ListConnector(events), [MemorySink({"fail_on": ["clean"]})])

        sink = MemorySink()
        orchestrator.run(1, make_source(), ListConnector(events), [sink])

        assert sink.delivered_cursors == [1, 2, 3]

    def test_decode_error_keeps_last_commit(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        sink = MemorySink()
        events = [make_event(1), make_event(2), make_event(3, timestamp="garbage"), make_event(4)]

        result = orchestrator.run(1, make_source(), ListConnector(events), [sink])

        assert isinstance(result.error, ScanDecodeError)
        assert sink.delivered_cursors == [1, 2]
        assert sink.closed
        assert _committed(checkpoint_db) == 0

    def test_close_failure_after_commit(self, orchestrator: RunOrchestrator, checkpoint_db: CheckpointDB) -> None:
        sink = MemorySink({"fail_on": ["close"]})

        result = orchestrator.run(1, make_source(), ListConnector(_events(2)), [sink])

        assert result.status is RunStatus.FAILED
        assert isinstance(result.error, SinkCloseError)
        assert result.committed_cursor == 2
        assert _committed(checkpoint_db) == 2


class LeaseStealingConnector(ListConnector):
    """Hands the run lease to another holder after serving the first row."""

    def __init__(self, events: list[RawEvent], db: CheckpointDB) -> None:
        super().__init__(events)
        self.db = db

    def fetch_after(self, cursor: int) -> Generator[RawEvent, None, None]:
        for index, event in enumerate(super().fetch_after(cursor)):
            if index == 1:
                with self.db.connection() as conn:
                    conn.execute(run_leases_table.update().values(holder="host-b:2:bbbb"))
            yield event


class TestLeaseRenewal:
    def test_lost_lease_fails_run_without_commit(self, checkpoint_db: CheckpointDB) -> None:
        guard = ConcurrencyGuard(checkpoint_db, lease_seconds=60, renew_seconds=0)
        orchestrator = RunOrchestrator(db=checkpoint_db, guard=guard)
        sink = MemorySink()

        result = orchestrator.run(1, make_source(), LeaseStealingConnector(_events(3), checkpoint_db), [sink])

        assert result.status is RunStatus.FAILED
        assert isinstance(result.error, CheckpointError)
        assert result.error.operation == "guard.renew"
        assert sink.delivered_cursors == [1]
        assert "flush" not in sink.calls
        assert result.committed_cursor is None
        assert _committed(checkpoint_db) == 0
        assert not guard.is_active(IDENTITY)

    def test_long_run_keeps_lease_fresh(self, checkpoint_db: CheckpointDB) -> None:
        guard = ConcurrencyGuard(checkpoint_db, lease_seconds=60, renew_seconds=0, holder="host-a:1:aaaa")
        other = ConcurrencyGuard(checkpoint_db, lease_seconds=60, holder="host-b:2:bbbb")
        orchestrator = RunOrchestrator(db=checkpoint_db, guard=guard)
        outcomes: list[GuardOutcome] = []

        class BackdatingConnector(ListConnector):
            def fetch_after(self, cursor: int) -> Generator[RawEvent, None, None]:
                for event in super().fetch_after(cursor):
                    # Age the lease past its TTL, then check it after the next renewal
                    with checkpoint_db.connection() as conn:
                        conn.execute(run_leases_table.update().values(acquired_at=datetime.now(UTC) - timedelta(hours=1)))
                    yield event
                    outcomes.append(other.acquire(IDENTITY))

        result = orchestrator.run(1, make_source(), BackdatingConnector(_events(3)), [MemorySink()])

        assert result.status is RunStatus.COMPLETED
        assert outcomes == [GuardOutcome.CONFLICT] * 3
