"""Built-in sink plugins for jobstash.

Sinks receive serialized records. Multiple sinks per source.

Plugins are accessed via PluginManager, not direct imports:
    manager = PluginManager()
    manager.register_builtin_plugins()
    sink_cls = manager.get_sink_by_name("file")
"""
