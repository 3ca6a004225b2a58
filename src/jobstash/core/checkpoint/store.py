"""CheckpointStore: durable per-source cursor persistence.

Two write paths with different guarantees:

- save(): called once per scanned row. Records progress in
  checkpoint_progress for diagnostics. Never read back to resume.
- commit(): called once at the end of a run, after every sink flushed and
  cleaned. Writes checkpoint_offsets, which read_offset() returns on the
  next run.
"""

from datetime import UTC, datetime

from sqlalchemy import ColumnElement, Table, and_, select
from sqlalchemy.exc import SQLAlchemyError

from jobstash.contracts import (
    CheckpointError,
    CheckpointOffset,
    CheckpointRegressionError,
    CheckpointRow,
    CheckpointState,
    SourceIdentity,
)
from jobstash.core.checkpoint.database import CheckpointDB
from jobstash.core.checkpoint.schema import checkpoint_offsets_table, checkpoint_progress_table


def _utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class CheckpointStore:
    """Checkpoint access for one logical source.

    Example:
        store = CheckpointStore(db, identity)
        offset = store.read_offset()
        for event in connector.fetch_after(offset.cursor):
            ...
            store.save(batch_key, event.cursor, CheckpointState.SUCCESS)
        store.commit(batch_key, last_cursor, CheckpointState.SUCCESS)
    """

    def __init__(self, db: CheckpointDB, identity: SourceIdentity) -> None:
        self._db = db
        self._identity = identity

    @property
    def identity(self) -> SourceIdentity:
        return self._identity

    def _key_clause(self, table: Table) -> ColumnElement[bool]:
        return and_(
            table.c.domain == self._identity.domain,
            table.c.server == self._identity.server,
            table.c.event_class == str(self._identity.event_class),
            table.c.session == self._identity.session,
        )

    def _key_values(self) -> dict[str, str]:
        return {
            "domain": self._identity.domain,
            "server": self._identity.server,
            "event_class": str(self._identity.event_class),
            "session": self._identity.session,
        }

    def read_offset(self) -> CheckpointOffset:
        """Return the last committed cursor, or cursor 0 if never committed.

        Raises:
            CheckpointError: If the store cannot be read
        """
        table = checkpoint_offsets_table
        try:
            with self._db.engine.connect() as conn:
                row = conn.execute(select(table).where(self._key_clause(table))).fetchone()
        except SQLAlchemyError as exc:
            raise CheckpointError("checkpoint.read", f"{self._identity.key}: {exc}") from exc

        if row is None:
            return CheckpointOffset(cursor=0)
        return CheckpointOffset(
            cursor=row.cursor,
            batch_key=row.batch_key,
            state=CheckpointState(row.state),
            committed_at=_utc(row.committed_at),
        )

    def save(self, batch_key: str, cursor: int, state: CheckpointState) -> None:
        """Record per-row progress. Does not move the committed cursor.

        Raises:
            CheckpointError: If the write fails
        """
        table = checkpoint_progress_table
        clause = and_(self._key_clause(table), table.c.batch_key == batch_key)
        values = {"cursor": cursor, "state": str(state), "saved_at": datetime.now(UTC)}
        try:
            with self._db.connection() as conn:
                updated = conn.execute(table.update().where(clause).values(**values)).rowcount
                if updated == 0:
                    conn.execute(table.insert().values(**self._key_values(), batch_key=batch_key, **values))
        except SQLAlchemyError as exc:
            raise CheckpointError("checkpoint.save", f"{self._identity.key}: {exc}") from exc

    def commit(self, batch_key: str, cursor: int, state: CheckpointState) -> CheckpointOffset:
        """Write the run-terminal cursor consumed by the next read_offset().

        The read of the current value and the write share one transaction.

        Raises:
            CheckpointRegressionError: If cursor is below the committed cursor
            CheckpointError: If the write fails
        """
        table = checkpoint_offsets_table
        committed_at = datetime.now(UTC)
        values = {"batch_key": batch_key, "cursor": cursor, "state": str(state), "committed_at": committed_at}
        try:
            with self._db.connection() as conn:
                current = conn.execute(select(table.c.cursor).where(self._key_clause(table))).scalar_one_or_none()
                if current is not None and cursor < current:
                    raise CheckpointRegressionError(self._identity.key, committed=current, attempted=cursor)
                if current is None:
                    conn.execute(table.insert().values(**self._key_values(), **values))
                else:
                    conn.execute(table.update().where(self._key_clause(table)).values(**values))
        except SQLAlchemyError as exc:
            raise CheckpointError("checkpoint.commit", f"{self._identity.key}: {exc}") from exc

        return CheckpointOffset(cursor=cursor, batch_key=batch_key, state=state, committed_at=committed_at)


def list_offsets(db: CheckpointDB) -> list[CheckpointRow]:
    """List every committed checkpoint, ordered by source key.

    Raises:
        CheckpointError: If the store cannot be read
    """
    table = checkpoint_offsets_table
    query = select(table).order_by(table.c.domain, table.c.server, table.c.event_class, table.c.session)
    try:
        with db.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
    except SQLAlchemyError as exc:
        raise CheckpointError("checkpoint.list", str(exc)) from exc

    return [
        CheckpointRow(
            domain=r.domain,
            server=r.server,
            event_class=r.event_class,
            session=r.session,
            cursor=r.cursor,
            state=CheckpointState(r.state),
            committed_at=_utc(r.committed_at),
        )
        for r in rows
    ]
