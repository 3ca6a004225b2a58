# tests/conftest.py
"""Shared test fixtures and helpers.

Test doubles:
- MemorySink: BaseSink that records every call and can be told to fail
- ListConnector: SourceConnectorProtocol over an in-memory list of RawEvents
- make_event(): RawEvent factory with a cursor-derived timestamp
- make_source(): SourceSettings with test defaults

Tests instantiate these directly; the PluginManager path is covered by
tests/unit/plugins.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import json
import os
from collections.abc import Generator, Iterable, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings

from jobstash.contracts import ConnectivityError, InstanceInfo, RawEvent, RecordKind
from jobstash.core.checkpoint import CheckpointDB
from jobstash.core.config import SourceSettings
from jobstash.core.guard import ConcurrencyGuard
from jobstash.core.metrics import METRICS
from jobstash.plugins.base import BaseSink

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Timing varies on CI
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Test doubles
# =============================================================================

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)

INSTANCE = InstanceInfo(
    fqdn="SQL01",
    domain="CORP",
    computer="SQL01",
    server="SQL01\\PROD",
    version="SQL Server 2019",
    product_version="15.0.4153.1",
)


def event_time(cursor: int) -> datetime:
    """Timestamp used by make_event(): one minute per cursor step."""
    return BASE_TIME + timedelta(minutes=cursor)


def make_event(
    cursor: int,
    *,
    status: int = 1,
    step_id: int = 0,
    timestamp: datetime | str | None = None,
    job_name: str = "Nightly Backup",
    step_name: str = "",
    message: str = "The job succeeded.",
) -> RawEvent:
    ts = timestamp if timestamp is not None else event_time(cursor)
    ts_utc = ts.isoformat() if isinstance(ts, datetime) else ts
    local = ts.replace(tzinfo=None) if isinstance(ts, datetime) else BASE_TIME.replace(tzinfo=None)
    return RawEvent(
        instance_id=cursor,
        kind=RecordKind.JOB if step_id == 0 else RecordKind.STEP,
        job_id="6f0c1a2e-0000-4000-8000-000000000001",
        step_id=step_id,
        step_name=step_name or ("(Job outcome)" if step_id == 0 else f"Step {step_id}"),
        job_name=job_name,
        message=message,
        run_status=status,
        run_duration=42,
        timestamp_local=local,
        timestamp_utc=ts_utc,
    )


def make_source(**overrides: Any) -> SourceSettings:
    values: dict[str, Any] = {"fqdn": "SQL01", "url": "sqlite://"}
    values.update(overrides)
    return SourceSettings(**values)


class MemorySink(BaseSink):
    """Sink that keeps everything in memory.

    Config:
        name: Sink name (default "memory")
        fail_on: Method names that raise RuntimeError ("open", "write",
            "flush", "clean", "close")
        fail_write_after: Raise on the write after this many successes
    """

    name = "memory"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        config = dict(config or {})
        super().__init__(config)
        self.name = config.get("name", "memory")
        self.fail_on: set[str] = set(config.get("fail_on", ()))
        self.fail_write_after: int | None = config.get("fail_write_after")
        self.calls: list[str] = []
        self.records: list[tuple[str, str]] = []
        self.sink_id: str | None = None
        self.closed = False

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        if method in self.fail_on:
            raise RuntimeError(f"{self.name} {method} failed")

    def open(self, sink_id: str) -> None:
        self._enter("open")
        self.sink_id = sink_id

    def write(self, kind: str, payload: str) -> int:
        self._enter("write")
        if self.fail_write_after is not None and len(self.records) >= self.fail_write_after:
            raise RuntimeError(f"{self.name} write failed")
        self.records.append((kind, payload))
        return len(payload)

    def flush(self) -> None:
        self._enter("flush")

    def clean(self) -> None:
        self._enter("clean")

    def close(self) -> None:
        self.closed = True
        self._enter("close")

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(payload) for _, payload in self.records]

    @property
    def delivered_cursors(self) -> list[int]:
        return [p["instance_id"] for p in self.payloads]


class ListConnector:
    """Connector over a fixed list of events, served in cursor order."""

    def __init__(
        self,
        events: Iterable[RawEvent],
        info: InstanceInfo = INSTANCE,
        *,
        fail_resolve: bool = False,
    ) -> None:
        self.events = sorted(events, key=lambda e: e.cursor)
        self.info = info
        self.fail_resolve = fail_resolve
        self.fetch_calls: list[int] = []
        self.served: list[int] = []
        self.closed = False

    def resolve_instance(self) -> InstanceInfo:
        if self.fail_resolve:
            raise ConnectivityError("db.instance", f"{self.info.fqdn}: login failed")
        return self.info

    def fetch_after(self, cursor: int) -> Generator[RawEvent, None, None]:
        self.fetch_calls.append(cursor)
        for event in self.events:
            if event.cursor > cursor:
                self.served.append(event.cursor)
                yield event

    def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_metrics() -> Iterator[None]:
    """METRICS is process-wide; every test starts from zero."""
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def checkpoint_db() -> Iterator[CheckpointDB]:
    db = CheckpointDB.in_memory()
    yield db
    db.close()


@pytest.fixture
def guard(checkpoint_db: CheckpointDB) -> ConcurrencyGuard:
    return ConcurrencyGuard(checkpoint_db, lease_seconds=60)
