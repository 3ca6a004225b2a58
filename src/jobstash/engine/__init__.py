# src/jobstash/engine/__init__.py
"""Engine: record transformation, sink fan-out, run orchestration, worker pool.

Example:
    from jobstash.engine import RunOrchestrator, WorkerPool

    orchestrator = RunOrchestrator(db=db, guard=guard)
    results = WorkerPool(settings, orchestrator, plugin_manager).run_all()
"""

from jobstash.engine.fanout import SinkFanout
from jobstash.engine.field_operations import apply_field_operations
from jobstash.engine.orchestrator import RunOrchestrator
from jobstash.engine.pool import WorkerPool, WorkerTask
from jobstash.engine.transformer import RecordTransformer, classify, describe

__all__ = [
    "RecordTransformer",
    "RunOrchestrator",
    "SinkFanout",
    "WorkerPool",
    "WorkerTask",
    "apply_field_operations",
    "classify",
    "describe",
]
