# src/jobstash/plugins/base.py
"""Base class for sink plugins.

Subclass BaseSink and implement open(), write(), flush(), close().
clean() defaults to a no-op.
"""

from abc import ABC, abstractmethod
from typing import Any


class BaseSink(ABC):
    """Base class for sink plugins.

    Lifecycle (called by the sink fan-out on the worker's thread):

        1. open(sink_id)       -- once per run, before any write
        2. write(kind, payload) -- once per delivered record
        3. flush()             -- durability point, before the checkpoint commit
        4. clean()             -- housekeeping after flush
        5. close()             -- release resources

    Guarantees:
        - close() runs on every exit path, including a failed open().
        - flush() and clean() are both attempted even if another sink's
          flush or clean failed.

    Example:
        class StdoutSink(BaseSink):
            name = "stdout"

            def open(self, sink_id: str) -> None:
                self._prefix = sink_id

            def write(self, kind: str, payload: str) -> int:
                return sys.stdout.write(payload + "\\n")

            def flush(self) -> None:
                sys.stdout.flush()

            def close(self) -> None:
                pass
    """

    name: str
    plugin_version: str = "0.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        """Initialize with configuration.

        Args:
            config: Plugin configuration (the sink's `options` mapping)
        """
        self.config = config

    @abstractmethod
    def open(self, sink_id: str) -> None:
        """Prepare to receive records for one server."""
        ...

    @abstractmethod
    def write(self, kind: str, payload: str) -> int:
        """Write one serialized record and return the acknowledged size."""
        ...

    @abstractmethod
    def flush(self) -> None:
        """Make every written record durable."""
        ...

    def clean(self) -> None:  # noqa: B027 - intentional no-op default
        """Post-flush housekeeping. Override for retention or compaction."""

    @abstractmethod
    def close(self) -> None:
        """Release resources."""
        ...
