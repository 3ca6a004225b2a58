# src/jobstash/engine/pool.py
"""Worker pool: every configured source, one worker each, in parallel.

Workers share the concurrency guard and the metrics registry. Nothing else
crosses workers: each gets its own connector and its own sink instances.

A worker that raises never affects its siblings; the exception becomes that
worker's failed RunResult.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from jobstash.contracts import RunResult, RunStatus
from jobstash.core.config import JobstashSettings, SourceSettings
from jobstash.core.logging import get_logger
from jobstash.engine.orchestrator import SESSION_AGENT_JOBS, RunOrchestrator
from jobstash.plugins.manager import PluginManager
from jobstash.plugins.protocols import SourceConnectorProtocol

logger = get_logger(__name__)

ConnectorFactory = Callable[[SourceSettings], SourceConnectorProtocol]


def default_connector_factory(settings: SourceSettings) -> SourceConnectorProtocol:
    from jobstash.plugins.sources.agent_history import AgentHistoryConnector

    return AgentHistoryConnector(settings.fqdn, settings.url)


@dataclass(frozen=True, slots=True)
class WorkerTask:
    """One source assigned to one worker."""

    worker_id: int
    source: SourceSettings


class WorkerPool:
    """Run every source once through a bounded thread pool.

    Usage:
        pool = WorkerPool(settings, orchestrator, plugin_manager)
        results = pool.run_all()

    Results come back in configured source order, whatever order the
    workers finish in.
    """

    def __init__(
        self,
        settings: JobstashSettings,
        orchestrator: RunOrchestrator,
        plugin_manager: PluginManager,
        *,
        connector_factory: ConnectorFactory = default_connector_factory,
    ) -> None:
        self._settings = settings
        self._orchestrator = orchestrator
        self._plugins = plugin_manager
        self._connector_factory = connector_factory

    def tasks(self) -> list[WorkerTask]:
        """Worker ids are 1-based, in configured source order."""
        return [WorkerTask(worker_id=i, source=source) for i, source in enumerate(self._settings.sources, start=1)]

    def run_all(self) -> list[RunResult]:
        tasks = self.tasks()
        results: dict[int, RunResult] = {}
        max_workers = min(self._settings.concurrency.max_workers, len(tasks))

        logger.info("Starting workers", sources=len(tasks), max_workers=max_workers)
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="jobstash-worker") as executor:
            futures: dict[Future[RunResult], WorkerTask] = {executor.submit(self._run_worker, task): task for task in tasks}
            for future in as_completed(futures):
                task = futures[future]
                try:
                    results[task.worker_id] = future.result()
                except Exception as exc:
                    logger.exception("Worker crashed", worker_id=task.worker_id, server=task.source.fqdn)
                    results[task.worker_id] = RunResult(
                        session=SESSION_AGENT_JOBS,
                        instance=task.source.fqdn,
                        status=RunStatus.FAILED,
                        error=exc,
                    )

        return [results[task.worker_id] for task in tasks]

    def _run_worker(self, task: WorkerTask) -> RunResult:
        sinks = self._plugins.create_sinks(self._settings.sinks)
        connector = self._connector_factory(task.source)
        return self._orchestrator.run(task.worker_id, task.source, connector, sinks)
