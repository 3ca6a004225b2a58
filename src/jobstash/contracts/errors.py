"""Error taxonomy for source runs.

Every error carries the operation it failed in. Callers can match on the
class to decide what happened; none of these classes are retried inside
jobstash. Re-invoking a run is the scheduler's job.
"""

from __future__ import annotations


class JobstashError(Exception):
    """Base class for all run-terminating errors.

    Attributes:
        operation: Short name of the operation that failed (e.g. "db.ping",
            "sink.write")
    """

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"{operation}: {message}")


class ConnectivityError(JobstashError):
    """Source unreachable, authentication failed, or the query could not run.

    Fatal to the run. The checkpoint does not advance.
    """


class DuplicateRunError(JobstashError):
    """Another live run holds the same logical source.

    NOT a failure - the invocation is skipped with no side effects.
    """

    def __init__(self, source_key: str, holder: str | None = None) -> None:
        self.source_key = source_key
        self.holder = holder
        detail = f"held by {holder}" if holder else "already running"
        super().__init__("guard.acquire", f"{source_key} {detail}")


class ScanDecodeError(JobstashError):
    """A source row or its timestamp could not be decoded.

    Fatal to the run. The checkpoint stays at the last commit.
    """


class SinkOpenError(JobstashError):
    """A sink could not be opened. Fatal to the run; nothing is scanned."""

    def __init__(self, sink_name: str, message: str) -> None:
        self.sink_name = sink_name
        super().__init__(f"sink.open: {sink_name}", message)


class SinkWriteError(JobstashError):
    """A sink rejected a record. Fail-fast: remaining sinks and rows are skipped."""

    def __init__(self, sink_name: str, message: str) -> None:
        self.sink_name = sink_name
        super().__init__(f"sink.write: {sink_name}", message)


class SinkFlushOrCleanError(JobstashError):
    """One or more sinks failed to flush or clean.

    Every sink still had both calls attempted. The message reflects the last
    failure; all failures are kept in `errors` as (operation, exception) pairs.
    The checkpoint commit is skipped, so the next run re-delivers the batch.
    """

    def __init__(self, errors: list[tuple[str, Exception]]) -> None:
        if not errors:
            raise ValueError("SinkFlushOrCleanError requires at least one error")
        self.errors = list(errors)
        operation, last = self.errors[-1]
        super().__init__(operation, str(last))


class SinkCloseError(JobstashError):
    """One or more sinks failed to close after an otherwise clean run."""

    def __init__(self, errors: list[tuple[str, Exception]]) -> None:
        if not errors:
            raise ValueError("SinkCloseError requires at least one error")
        self.errors = list(errors)
        operation, last = self.errors[-1]
        super().__init__(operation, str(last))


class CheckpointError(JobstashError):
    """The checkpoint store could not be read or written."""


class CheckpointRegressionError(CheckpointError):
    """A commit would move the committed cursor backwards."""

    def __init__(self, source_key: str, committed: int, attempted: int) -> None:
        self.committed = committed
        self.attempted = attempted
        super().__init__(
            "checkpoint.commit",
            f"{source_key} cursor would regress from {committed} to {attempted}",
        )


class PluginNotFoundError(JobstashError):
    """A configured sink plugin name is not registered."""

    def __init__(self, plugin_name: str, available: list[str]) -> None:
        self.plugin_name = plugin_name
        self.available = available
        super().__init__("plugins.lookup", f"Unknown sink plugin '{plugin_name}'. Available: {sorted(available)}")
