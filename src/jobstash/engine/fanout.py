"""Sink fan-out: one lifecycle across every configured sink.

Failure policy differs per phase:

- open: fail-fast (SinkOpenError)
- write: fail-fast (SinkWriteError); later sinks and rows are skipped
- flush/clean: every sink gets both calls; errors are collected and raised
  together (SinkFlushOrCleanError)
- close: every sink whose open() was attempted, on every exit path
"""

from __future__ import annotations

from collections.abc import Sequence
from types import TracebackType

from jobstash.contracts import SinkCloseError, SinkFlushOrCleanError, SinkOpenError, SinkWriteError
from jobstash.core.logging import get_logger
from jobstash.plugins.protocols import SinkProtocol

logger = get_logger(__name__)


class SinkFanout:
    """Drive N sinks through open/write/flush/clean/close for one run.

    Use as a context manager so close_all() runs on every exit path:

        with SinkFanout(sinks) as fanout:
            fanout.open_all(info.sink_id)
            for payload in records:
                fanout.write(kind, payload)
            fanout.flush_and_clean()

    Close failures on an otherwise clean exit raise SinkCloseError. When the
    block is already raising, close failures are only logged and the
    pending error propagates unchanged.
    """

    def __init__(self, sinks: Sequence[SinkProtocol]) -> None:
        self._sinks = list(sinks)
        self._opened: list[SinkProtocol] = []

    @property
    def sinks(self) -> list[SinkProtocol]:
        return list(self._sinks)

    def __enter__(self) -> SinkFanout:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        errors = self.close_all()
        if errors and exc_type is None:
            raise SinkCloseError(errors)

    def open_all(self, sink_id: str) -> None:
        """Open every sink with the same id, in configured order.

        Raises:
            SinkOpenError: On the first sink that fails to open
        """
        for sink in self._sinks:
            # Tracked before the call: close() must be safe after a failed open()
            self._opened.append(sink)
            try:
                sink.open(sink_id)
            except Exception as exc:
                logger.error("Sink open failed", sink=sink.name, sink_id=sink_id, error=str(exc))
                raise SinkOpenError(sink.name, f"{sink_id}: {exc}") from exc

    def write(self, kind: str, payload: str) -> int:
        """Write one record to every sink, in configured order.

        Returns:
            Sum of the sinks' acknowledgements

        Raises:
            SinkWriteError: On the first sink that fails
        """
        acked = 0
        for sink in self._sinks:
            try:
                acked += sink.write(kind, payload)
            except Exception as exc:
                logger.error("Sink write failed", sink=sink.name, kind=kind, error=str(exc))
                raise SinkWriteError(sink.name, str(exc)) from exc
        return acked

    def flush_and_clean(self) -> None:
        """Flush then clean every sink, regardless of earlier failures.

        Raises:
            SinkFlushOrCleanError: If any flush or clean failed; carries every
                failure and reports the last
        """
        errors: list[tuple[str, Exception]] = []
        for sink in self._sinks:
            try:
                sink.flush()
            except Exception as exc:
                logger.error("Sink flush failed", sink=sink.name, error=str(exc))
                errors.append((f"sink.flush: {sink.name}", exc))
            try:
                sink.clean()
            except Exception as exc:
                logger.error("Sink clean failed", sink=sink.name, error=str(exc))
                errors.append((f"sink.clean: {sink.name}", exc))
        if errors:
            raise SinkFlushOrCleanError(errors)

    def close_all(self) -> list[tuple[str, Exception]]:
        """Close every opened sink. Returns the failures instead of raising."""
        errors: list[tuple[str, Exception]] = []
        for sink in self._opened:
            try:
                sink.close()
            except Exception as exc:
                logger.warning("Sink close failed", sink=sink.name, error=str(exc), error_type=type(exc).__name__)
                errors.append((f"sink.close: {sink.name}", exc))
        self._opened = []
        return errors
