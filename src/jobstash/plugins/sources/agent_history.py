# src/jobstash/plugins/sources/agent_history.py
"""SQL Server Agent job history connector.

Reads msdb.dbo.sysjobhistory joined to sysjobs, one row per job outcome or
job step, ordered by instance_id. The server computes the UTC timestamp
from its own clock offset and returns it as ISO-8601 text; parsing is left
to the record transformer.

Connection string construction is the caller's concern: the connector
takes a ready SQLAlchemy URL (typically mssql+pyodbc://...).
"""

from collections.abc import Generator
from datetime import datetime
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import SQLAlchemyError

from jobstash.contracts import ConnectivityError, InstanceInfo, RawEvent, RecordKind, ScanDecodeError
from jobstash.core.logging import get_logger

logger = get_logger(__name__)

# Major version number -> marketing name
_PRODUCT_NAMES: dict[str, str] = {
    "10": "SQL Server 2008",
    "11": "SQL Server 2012",
    "12": "SQL Server 2014",
    "13": "SQL Server 2016",
    "14": "SQL Server 2017",
    "15": "SQL Server 2019",
    "16": "SQL Server 2022",
    "17": "SQL Server 2025",
}


def product_name(product_version: str) -> str:
    """Marketing name for a build number, e.g. "15.0.4153.1" -> "SQL Server 2019"."""
    major = product_version.split(".", 1)[0]
    return _PRODUCT_NAMES.get(major, f"SQL Server {product_version}" if product_version else "")


class AgentHistoryConnector:
    """Source connector over one SQL Server instance.

    One connector per worker. Not thread-safe.

    Example:
        connector = AgentHistoryConnector("SQL01", "mssql+pyodbc://@SQL01/msdb?driver=...")
        try:
            info = connector.resolve_instance()
            for event in connector.fetch_after(offset.cursor):
                ...
        finally:
            connector.close()
    """

    INSTANCE_QUERY = """
        SELECT
            COALESCE(DEFAULT_DOMAIN(), '') AS [domain],
            CAST(SERVERPROPERTY('MachineName') AS NVARCHAR(128)) AS [computer],
            @@SERVERNAME AS [server],
            CAST(SERVERPROPERTY('ProductVersion') AS NVARCHAR(128)) AS [product_version]
    """

    HISTORY_QUERY = """
        ; WITH CTE AS (
            SELECT
                CASE
                    WHEN H.step_id = 0 THEN 'agent_job'
                    ELSE 'agent_job_step'
                END AS [name]
                ,H.instance_id
                ,H.job_id
                ,H.step_id
                ,H.step_name
                ,J.[name] AS [job_name]
                ,H.[message] AS [msg]
                ,H.[run_status]
                ,H.[run_duration]
                ,CONVERT(DATETIME,
                    SUBSTRING(CAST(run_date AS VARCHAR(8)), 1, 4) + '-' +
                    SUBSTRING(CAST(run_date AS VARCHAR(8)), 5, 2) + '-' +
                    SUBSTRING(CAST(run_date AS VARCHAR(8)), 7, 2) + ' ' +
                    CONVERT(VARCHAR, run_time / 10000) + ':' +
                    CONVERT(VARCHAR, run_time % 10000 / 100) + ':' +
                    CONVERT(VARCHAR, run_time % 100) + '.000') AS [timestamp_local]
            FROM [msdb].[dbo].[sysjobhistory] H WITH(NOLOCK)
            JOIN [msdb].[dbo].[sysjobs] J WITH(NOLOCK) ON J.[job_id] = H.[job_id]
        )
        SELECT *
            , CONVERT(VARCHAR(30), CAST(DATEADD(mi, -1 * DATEDIFF(MINUTE, GETUTCDATE(), GETDATE()), timestamp_local)
                AS DATETIMEOFFSET), 127) AS timestamp_utc
        FROM CTE
        WHERE [instance_id] > :cursor
        ORDER BY [instance_id]
    """

    def __init__(self, fqdn: str, url: str | None = None, *, engine: Engine | None = None) -> None:
        """Initialize the connector.

        Args:
            fqdn: Server identity as configured
            url: SQLAlchemy URL; ignored when engine is given
            engine: Pre-built engine (tests, shared pools)
        """
        if engine is None and url is None:
            raise ValueError("AgentHistoryConnector requires a url or an engine")
        self.fqdn = fqdn
        self._owns_engine = engine is None
        self._engine = engine if engine is not None else create_engine(url, pool_pre_ping=True)  # type: ignore[arg-type]

    def resolve_instance(self) -> InstanceInfo:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(text(self.INSTANCE_QUERY)).one()
        except SQLAlchemyError as exc:
            raise ConnectivityError("db.instance", f"{self.fqdn}: {exc}") from exc

        product_version = row.product_version or ""
        info = InstanceInfo(
            fqdn=self.fqdn,
            domain=row.domain or "",
            computer=row.computer or "",
            server=row.server or self.fqdn,
            version=product_name(product_version),
            product_version=product_version,
        )
        logger.debug("Resolved instance", fqdn=self.fqdn, server=info.server, version=info.version)
        return info

    def fetch_after(self, cursor: int) -> Generator[RawEvent, None, None]:
        """Yield job history rows with instance_id > cursor, ascending.

        Rows are streamed; the connection stays checked out until the
        generator is exhausted or closed.
        """
        try:
            with self._engine.connect() as conn:
                result = conn.execution_options(stream_results=True).execute(text(self.HISTORY_QUERY), {"cursor": cursor})
                for row in result:
                    yield self._decode(row)
        except SQLAlchemyError as exc:
            raise ConnectivityError("db.query", f"{self.fqdn}: {exc}") from exc

    def _decode(self, row: Row[Any]) -> RawEvent:
        try:
            kind = RecordKind(row.name)
            timestamp_local = row.timestamp_local
            if not isinstance(timestamp_local, datetime):
                timestamp_local = datetime.fromisoformat(str(timestamp_local))
            return RawEvent(
                instance_id=int(row.instance_id),
                kind=kind,
                job_id=str(row.job_id),
                step_id=int(row.step_id),
                step_name=row.step_name or "",
                job_name=row.job_name or "",
                message=row.msg or "",
                run_status=int(row.run_status),
                run_duration=int(row.run_duration),
                timestamp_local=timestamp_local,
                timestamp_utc=row.timestamp_utc,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise ScanDecodeError("rows.scan", f"{self.fqdn}: {exc}") from exc

    def close(self) -> None:
        if self._owns_engine:
            self._engine.dispose()
