"""Identity types for logical sources and the server instances behind them."""

from dataclasses import dataclass

from jobstash.contracts.enums import EventClass


@dataclass(frozen=True, slots=True)
class InstanceInfo:
    """Server identity as reported by a live connection.

    Attributes:
        fqdn: Name the source was configured with
        domain: Windows domain of the host
        computer: Physical host name
        server: Display name of the instance (e.g. HOST\\INSTANCE)
        version: Product version string (e.g. "SQL Server 2019")
        product_version: Build number (e.g. "15.0.4153.1")
    """

    fqdn: str
    domain: str
    computer: str
    server: str
    version: str = ""
    product_version: str = ""

    @property
    def sink_id(self) -> str:
        """Server name made safe for file paths and sink identifiers."""
        return self.server.replace("\\", "_")


@dataclass(frozen=True, slots=True)
class SourceIdentity:
    """Key for checkpoints and the concurrency guard.

    Resolved once per run from the live connection and immutable afterwards.
    """

    domain: str
    server: str
    event_class: EventClass
    session: str

    @classmethod
    def for_instance(cls, info: InstanceInfo, event_class: EventClass, session: str) -> "SourceIdentity":
        return cls(domain=info.domain, server=info.server, event_class=event_class, session=session)

    @property
    def key(self) -> str:
        """Flat string form, used for guard registration and log context."""
        return f"{self.domain}/{self.server}/{self.event_class}/{self.session}"

    @property
    def metrics_key(self) -> str:
        server = self.server.replace("\\", "-")
        return f"{self.domain}-{server}-{self.event_class}"
