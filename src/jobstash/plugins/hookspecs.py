# src/jobstash/plugins/hookspecs.py
"""pluggy hook specifications for jobstash plugins.

Plugins implement these hooks to register themselves with the framework.
The plugin manager calls these hooks during discovery.

Usage (implementing a plugin):
    from jobstash.plugins.hookspecs import hookimpl

    class MyPlugin:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def jobstash_get_sinks(self):
            return [MySink]

Third-party packages expose the same object under the "jobstash" entry
point group.
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from jobstash.plugins.base import BaseSink

# Project name for pluggy
PROJECT_NAME = "jobstash"

# Hook specification marker
hookspec = pluggy.HookspecMarker(PROJECT_NAME)

# Hook implementation marker (for plugins to use)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class JobstashSinkSpec:
    """Hook specifications for sink plugins."""

    @hookspec
    def jobstash_get_sinks(self) -> list[type["BaseSink"]]:  # type: ignore[empty-body]
        """Return sink plugin classes.

        Returns:
            List of Sink plugin classes (not instances)
        """
