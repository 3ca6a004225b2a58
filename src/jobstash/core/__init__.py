# src/jobstash/core/__init__.py
"""Core infrastructure: Configuration, Checkpoint, Guard, Metrics, Logging."""

from jobstash.core.checkpoint import CheckpointDB, CheckpointStore, list_offsets
from jobstash.core.config import (
    CheckpointSettings,
    ConcurrencySettings,
    JobstashSettings,
    LoggingSettings,
    SinkSettings,
    SourceSettings,
    load_settings,
)
from jobstash.core.guard import ConcurrencyGuard
from jobstash.core.logging import configure_logging, get_logger
from jobstash.core.metrics import METRICS, MetricsRegistry, MetricsSnapshot, get_metrics

__all__ = [
    "METRICS",
    "CheckpointDB",
    "CheckpointSettings",
    "CheckpointStore",
    "ConcurrencyGuard",
    "ConcurrencySettings",
    "JobstashSettings",
    "LoggingSettings",
    "MetricsRegistry",
    "MetricsSnapshot",
    "SinkSettings",
    "SourceSettings",
    "configure_logging",
    "get_logger",
    "get_metrics",
    "list_offsets",
    "load_settings",
]
