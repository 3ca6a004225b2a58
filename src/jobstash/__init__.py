"""
jobstash: Checkpointed shipping of SQL Server Agent job history to log sinks.

Each run resumes from the last committed cursor of its logical source,
delivers new events to every configured sink, and only advances the
cursor once every sink has flushed.
"""

__version__ = "0.1.0"
