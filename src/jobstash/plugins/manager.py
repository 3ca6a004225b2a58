# src/jobstash/plugins/manager.py
"""Plugin manager for discovery, registration, and sink instantiation.

Uses pluggy for hook-based plugin registration.
"""

from collections.abc import Sequence
from typing import Any

import pluggy

from jobstash.contracts import PluginNotFoundError
from jobstash.core.config import SinkSettings
from jobstash.plugins.base import BaseSink
from jobstash.plugins.hookspecs import PROJECT_NAME, JobstashSinkSpec


class PluginManager:
    """Manages sink plugin discovery, registration, and lookup.

    Usage:
        manager = PluginManager()
        manager.register_builtin_plugins()

        sink_cls = manager.get_sink_by_name("file")
        sinks = manager.create_sinks(settings.sinks)
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(JobstashSinkSpec)

        # Cache - map name to plugin class for duplicate detection
        self._sinks: dict[str, type[BaseSink]] = {}

    def register_builtin_plugins(self) -> None:
        """Register the sinks shipped with jobstash.

        Call this once at startup to make built-in plugins discoverable.
        """
        from jobstash.plugins.sinks.hookimpl import BuiltinSinks

        self.register(BuiltinSinks())

    def load_entrypoint_plugins(self) -> int:
        """Register plugins published by installed packages.

        Returns:
            Number of entry points loaded
        """
        count = self._pm.load_setuptools_entrypoints(PROJECT_NAME)
        self._refresh_caches()
        return count

    def register(self, plugin: Any) -> None:
        """Register a plugin.

        Args:
            plugin: Plugin instance implementing hook methods
        """
        self._pm.register(plugin)
        self._refresh_caches()

    def _refresh_caches(self) -> None:
        """Refresh plugin caches from hooks.

        Raises:
            ValueError: If a sink with the same name is already registered
        """
        new_sinks: dict[str, type[BaseSink]] = {}

        for sinks in self._pm.hook.jobstash_get_sinks():
            for cls in sinks:
                name = cls.name
                if name in new_sinks:
                    raise ValueError(f"Duplicate sink plugin name: '{name}'. Already registered by {new_sinks[name].__name__}")
                new_sinks[name] = cls

        self._sinks = new_sinks

    # === Getters ===

    def get_sinks(self) -> list[type[BaseSink]]:
        """Get all registered sink plugins."""
        return list(self._sinks.values())

    def get_sink_by_name(self, name: str) -> type[BaseSink] | None:
        """Get sink plugin by name."""
        return self._sinks.get(name)

    # === Instantiation ===

    def create_sinks(self, sink_settings: Sequence[SinkSettings]) -> list[BaseSink]:
        """Instantiate one sink per configured entry, in configured order.

        Each call returns fresh instances; workers never share sinks.

        Raises:
            PluginNotFoundError: If a configured plugin name is not registered
        """
        sinks: list[BaseSink] = []
        for entry in sink_settings:
            sink_cls = self.get_sink_by_name(entry.plugin)
            if sink_cls is None:
                raise PluginNotFoundError(entry.plugin, list(self._sinks))
            sinks.append(sink_cls(dict(entry.options)))
        return sinks
