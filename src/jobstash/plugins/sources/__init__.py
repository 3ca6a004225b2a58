"""Source connectors: one live connection per monitored server."""

from jobstash.plugins.sources.agent_history import AgentHistoryConnector

__all__ = ["AgentHistoryConnector"]
