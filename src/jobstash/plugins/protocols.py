# src/jobstash/plugins/protocols.py
"""Plugin protocols defining the contracts for sinks and source connectors.

These protocols define what methods plugins must implement.
They're used for type checking, not runtime enforcement (that's pluggy's job).

Plugin Types:
- Source connector: Reads job history rows from one server (one per worker)
- Sink: Receives serialized records (one or more per worker)
"""

from collections.abc import Generator
from typing import Any, Protocol, runtime_checkable

from jobstash.contracts import InstanceInfo, RawEvent


@runtime_checkable
class SinkProtocol(Protocol):
    """Protocol for sink plugins.

    Every worker instantiates its own sink objects; instances are never
    shared between workers.

    Lifecycle (driven by the sink fan-out):
    1. __init__(config) - Plugin instantiation
    2. open(id) - Once per run, id is the filesystem-safe server name
    3. write(kind, payload) - Once per delivered record, in cursor order
    4. flush() then clean() - Once at the end of a run that scanned rows
    5. close() - Always, on every exit path

    Any method may raise; the fan-out maps the exception onto the run's
    error taxonomy.
    """

    name: str

    def __init__(self, config: dict[str, Any]) -> None:
        """Initialize with configuration."""
        ...

    def open(self, sink_id: str) -> None:
        """Prepare to receive records for one server."""
        ...

    def write(self, kind: str, payload: str) -> int:
        """Write one serialized record.

        Args:
            kind: Record kind ("agent_job" or "agent_job_step")
            payload: Serialized JSON record

        Returns:
            Acknowledged byte count
        """
        ...

    def flush(self) -> None:
        """Ensure all written records are durable.

        The checkpoint commit assumes that everything written before a
        successful flush() will never need to be re-delivered.
        """
        ...

    def clean(self) -> None:
        """Housekeeping after flush (retention, compaction)."""
        ...

    def close(self) -> None:
        """Release resources. Must be safe to call after a failed open()."""
        ...


@runtime_checkable
class SourceConnectorProtocol(Protocol):
    """Protocol for source connectors.

    A connector owns one live connection to one monitored server.

    Lifecycle:
    1. resolve_instance() - Server identity from the live connection
    2. fetch_after(cursor) - Rows with cursor strictly greater, ascending
    3. close() - Release the connection
    """

    def resolve_instance(self) -> InstanceInfo:
        """Return the server identity.

        Raises:
            ConnectivityError: If the server cannot be reached
        """
        ...

    def fetch_after(self, cursor: int) -> Generator[RawEvent, None, None]:
        """Yield rows with cursor > the given value, in ascending order.

        The caller closes the generator when it stops early.

        Raises:
            ConnectivityError: If the query cannot run
            ScanDecodeError: If a row cannot be decoded
        """
        ...

    def close(self) -> None:
        """Release the connection."""
        ...
