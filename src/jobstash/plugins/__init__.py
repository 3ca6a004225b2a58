# src/jobstash/plugins/__init__.py
"""Plugin system: sink registry, built-in sinks, and source connectors.

Sinks are registered through pluggy hooks (see hookspecs.py); the SQL Agent
job history connector lives in plugins.sources.
"""

from jobstash.plugins.base import BaseSink
from jobstash.plugins.config_base import PluginConfig, PluginConfigError
from jobstash.plugins.hookspecs import hookimpl
from jobstash.plugins.manager import PluginManager
from jobstash.plugins.protocols import SinkProtocol, SourceConnectorProtocol

__all__ = [
    "BaseSink",
    "PluginConfig",
    "PluginConfigError",
    "PluginManager",
    "SinkProtocol",
    "SourceConnectorProtocol",
    "hookimpl",
]
