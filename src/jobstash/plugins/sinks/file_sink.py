# src/jobstash/plugins/sinks/file_sink.py
"""File sink plugin for jobstash.

Appends records as JSON lines to one file per server per UTC day:

    <directory>/<prefix><sink_id>-<YYYYMMDD>.jsonl

Append-only, so a batch re-delivered after a skipped checkpoint commit
shows up as duplicate lines rather than corrupting earlier output.
"""

import os
import re
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import IO, Any

from pydantic import Field, field_validator

from jobstash.plugins.base import BaseSink
from jobstash.plugins.config_base import PluginConfig


class FileSinkConfig(PluginConfig):
    """Configuration for the file sink.

    retain_hours=None disables cleanup.
    """

    directory: str
    prefix: str = ""
    retain_hours: int | None = Field(default=168, gt=0)
    encoding: str = "utf-8"

    @field_validator("directory")
    @classmethod
    def validate_directory_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("directory cannot be empty")
        return v


class FileSink(BaseSink):
    """Write serialized records to per-server JSONL files.

    Config options:
        directory: Output directory, created on open (required)
        prefix: File name prefix (default: "")
        retain_hours: Files for this server older than this are removed by
            clean() (default: 168, None to keep everything)
        encoding: File encoding (default: "utf-8")
    """

    name = "file"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        cfg = FileSinkConfig.from_dict(config)

        self._directory = Path(cfg.directory)
        self._prefix = cfg.prefix
        self._retain = timedelta(hours=cfg.retain_hours) if cfg.retain_hours is not None else None
        self._encoding = cfg.encoding

        self._sink_id: str | None = None
        self._path: Path | None = None
        self._file: IO[str] | None = None

    @property
    def path(self) -> Path | None:
        """Current output file, set by open()."""
        return self._path

    def _daily_file(self, sink_id: str) -> re.Pattern[str]:
        # Anchored so "SQL01" never matches "SQL01-PROD-20200101.jsonl"
        return re.compile(rf"{re.escape(self._prefix)}{re.escape(sink_id)}-\d{{8}}\.jsonl")

    def open(self, sink_id: str) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        day = datetime.now(UTC).strftime("%Y%m%d")
        self._sink_id = sink_id
        self._path = self._directory / f"{self._prefix}{sink_id}-{day}.jsonl"
        self._file = open(self._path, "a", encoding=self._encoding)  # noqa: SIM115 - lifecycle managed by close()

    def write(self, kind: str, payload: str) -> int:
        if self._file is None:
            raise RuntimeError("FileSink.write() called before open()")
        written = self._file.write(payload)
        written += self._file.write("\n")
        return written

    def flush(self) -> None:
        """Flush buffered data to disk with fsync for durability.

        Called BEFORE the checkpoint commit. When this returns, every
        written record survives a process crash.
        """
        if self._file is not None:
            self._file.flush()
            os.fsync(self._file.fileno())

    def clean(self) -> None:
        """Delete this server's files last modified more than retain_hours ago.

        The file currently open is never removed.
        """
        if self._retain is None or self._sink_id is None:
            return
        cutoff = (datetime.now(UTC) - self._retain).timestamp()
        own = self._daily_file(self._sink_id)
        for candidate in self._directory.iterdir():
            if candidate == self._path or not own.fullmatch(candidate.name):
                continue
            if candidate.stat().st_mtime < cutoff:
                candidate.unlink()

    def close(self) -> None:
        """Close the file handle."""
        if self._file is not None:
            self._file.close()
            self._file = None
