"""Run orchestrator: one checkpointed pass over one source.

State machine:

    Init -> Resolve -> Guard-Acquire -> Checkpoint-Read -> Scanning
         -> Committing -> Done

with an exit to Failed from any state. A guard conflict exits to Done with
status SKIPPED and no side effects. The run lease is renewed while scanning;
a run that finds its lease taken by another holder fails before commit.

The committed cursor only moves after every sink flushed and cleaned the
rows written in this run. Rows are therefore delivered at least once: a
failed flush or a crash before commit re-delivers the batch next run.
"""

from collections.abc import Sequence
from contextlib import closing
from datetime import datetime

import structlog

from jobstash.contracts import (
    CheckpointState,
    DuplicateRunError,
    EventClass,
    InstanceInfo,
    JobstashError,
    RunResult,
    RunStatus,
    SourceIdentity,
    TransformAction,
)
from jobstash.core.checkpoint import CheckpointDB, CheckpointStore
from jobstash.core.config import SourceSettings
from jobstash.core.guard import ConcurrencyGuard
from jobstash.core.logging import get_logger
from jobstash.core.metrics import METRICS, MetricsRegistry
from jobstash.engine.fanout import SinkFanout
from jobstash.engine.transformer import RecordTransformer
from jobstash.plugins.protocols import SinkProtocol, SourceConnectorProtocol

logger = get_logger(__name__)

SESSION_AGENT_JOBS = "agent_jobs"


class RunOrchestrator:
    """Runs sources against one checkpoint database and guard.

    Shared by every worker in the process. Holds no per-run state; each
    run() call gets its own connector and sink instances.

    Example:
        orchestrator = RunOrchestrator(db=db, guard=guard)
        result = orchestrator.run(1, source_settings, connector, sinks)
    """

    def __init__(
        self,
        *,
        db: CheckpointDB,
        guard: ConcurrencyGuard,
        metrics: MetricsRegistry = METRICS,
        event_class: EventClass = EventClass.AGENT_JOBS,
        session: str = SESSION_AGENT_JOBS,
        now: datetime | None = None,
    ) -> None:
        self._db = db
        self._guard = guard
        self._metrics = metrics
        self._event_class = event_class
        self._session = session
        self._now = now

    def run(
        self,
        worker_id: int,
        settings: SourceSettings,
        connector: SourceConnectorProtocol,
        sinks: Sequence[SinkProtocol],
    ) -> RunResult:
        """Run one source once and return its result.

        Terminal JobstashErrors are recorded on the result (status FAILED)
        rather than raised. The connector is closed on every path.
        """
        result = RunResult(session=self._session, instance=settings.fqdn)

        with structlog.contextvars.bound_contextvars(worker_id=worker_id, server=settings.fqdn, session=self._session):
            try:
                self._execute(result, settings, connector, sinks)
            except DuplicateRunError as exc:
                result.status = RunStatus.SKIPPED
                logger.info("Source already running, skipping", source=exc.source_key)
            except JobstashError as exc:
                result.status = RunStatus.FAILED
                result.error = exc
                logger.error(
                    "Run failed",
                    operation=exc.operation,
                    error=exc.message,
                    error_type=type(exc).__name__,
                    rows_delivered=result.rows_delivered,
                )
            finally:
                connector.close()

            if result.status == RunStatus.COMPLETED:
                logger.info(
                    "Run completed",
                    instance=result.instance,
                    rows_scanned=result.rows_scanned,
                    rows_delivered=result.rows_delivered,
                    committed_cursor=result.committed_cursor,
                )
        return result

    def _execute(
        self,
        result: RunResult,
        settings: SourceSettings,
        connector: SourceConnectorProtocol,
        sinks: Sequence[SinkProtocol],
    ) -> None:
        # Resolve
        info = connector.resolve_instance()
        result.instance = info.server
        structlog.contextvars.bind_contextvars(server=info.server)
        identity = SourceIdentity.for_instance(info, self._event_class, self._session)

        # Guard-Acquire; raises DuplicateRunError on conflict
        with self._guard.lease(identity):
            # Checkpoint-Read
            store = CheckpointStore(self._db, identity)
            offset = store.read_offset()
            logger.debug("Resuming from checkpoint", cursor=offset.cursor, initial=offset.is_initial)

            with SinkFanout(sinks) as fanout:
                fanout.open_all(info.sink_id)
                self._scan(result, settings, info, identity, connector, store, fanout, offset.cursor)

                # Committing
                if result.rows_scanned == 0 or result.last_cursor is None:
                    logger.debug("No new rows")
                    return
                self._guard.heartbeat(identity)
                fanout.flush_and_clean()
                committed = store.commit(info.sink_id, result.last_cursor, CheckpointState.SUCCESS)
                result.committed_cursor = committed.cursor

    def _scan(
        self,
        result: RunResult,
        settings: SourceSettings,
        info: InstanceInfo,
        identity: SourceIdentity,
        connector: SourceConnectorProtocol,
        store: CheckpointStore,
        fanout: SinkFanout,
        resume_cursor: int,
    ) -> None:
        transformer = RecordTransformer(settings, info, now=self._now)
        row_cap = settings.rows

        with closing(connector.fetch_after(resume_cursor)) as events:
            for event in events:
                if row_cap > 0 and result.rows_delivered >= row_cap:
                    logger.debug("Row cap reached", rows=row_cap)
                    break

                # Raises CheckpointError if another holder took the source over
                self._guard.heartbeat(identity)
                self._metrics.record_read()
                decision = transformer.process(event)
                if decision.action is TransformAction.STOP:
                    break

                if decision.action is TransformAction.DELIVER:
                    assert decision.payload is not None
                    kind = str(event.kind)
                    fanout.write(kind, decision.payload)
                    result.rows_delivered += 1
                    self._metrics.record_delivery(kind, identity.metrics_key)

                # Filtered and pre-window rows still advance progress
                store.save(info.sink_id, event.cursor, CheckpointState.SUCCESS)
                result.rows_scanned += 1
                result.last_cursor = event.cursor if result.last_cursor is None else max(result.last_cursor, event.cursor)
