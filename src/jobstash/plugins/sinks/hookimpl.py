"""Hook implementation registering the built-in sinks."""

from jobstash.plugins.base import BaseSink
from jobstash.plugins.hookspecs import hookimpl
from jobstash.plugins.sinks.file_sink import FileSink


class BuiltinSinks:
    @hookimpl
    def jobstash_get_sinks(self) -> list[type[BaseSink]]:
        return [FileSink]
