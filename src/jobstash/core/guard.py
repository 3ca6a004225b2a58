"""Concurrency guard: at most one active run per logical source.

Two checks, in order:

1. In-process registry. A dict of source keys under a lock; catches two
   workers in this process picking up the same source.
2. Run lease. A row in run_leases keyed by the same source key; catches a
   second process (or a scheduler overlap on another host sharing the
   checkpoint database). The holder renews the lease while it runs; a lease
   not renewed for lease_seconds belongs to a run that died without
   releasing it and may be taken over.

A conflict is not an error: the caller skips the invocation.
"""

from __future__ import annotations

import os
import socket
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import Connection, Row, delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from jobstash.contracts import CheckpointError, DuplicateRunError, GuardOutcome, SourceIdentity
from jobstash.core.checkpoint.database import CheckpointDB
from jobstash.core.checkpoint.schema import run_leases_table
from jobstash.core.logging import get_logger

logger = get_logger(__name__)


def _default_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class ConcurrencyGuard:
    """Registry of active runs shared by every worker in the process.

    Thread-safe. One instance per process; workers call acquire()/release()
    or use the lease() context manager, and call heartbeat() while the run
    makes progress.

    Example:
        guard = ConcurrencyGuard(db, lease_seconds=3600)
        with guard.lease(identity):
            for row in rows:
                guard.heartbeat(identity)
                ...
    """

    def __init__(
        self,
        db: CheckpointDB,
        *,
        lease_seconds: int = 3600,
        renew_seconds: float | None = None,
        holder: str | None = None,
    ) -> None:
        self._db = db
        self._lease_ttl = timedelta(seconds=lease_seconds)
        # Renew well inside the TTL so a live run never looks stale
        self._renew_every = timedelta(seconds=renew_seconds) if renew_seconds is not None else self._lease_ttl / 3
        self._holder = holder or _default_holder()
        self._lock = threading.Lock()
        self._active: set[str] = set()
        self._renewed: dict[str, datetime] = {}

    @property
    def holder(self) -> str:
        return self._holder

    def is_active(self, identity: SourceIdentity) -> bool:
        with self._lock:
            return identity.key in self._active

    def acquire(self, identity: SourceIdentity) -> GuardOutcome:
        """Register intent to run a logical source.

        Returns:
            ACQUIRED if the run may proceed, CONFLICT if another live run
            holds the source

        Raises:
            CheckpointError: If the lease table cannot be read or written
        """
        key = identity.key
        with self._lock:
            if key in self._active:
                logger.info("Run already active in this process", source=key)
                return GuardOutcome.CONFLICT
            self._active.add(key)

        try:
            acquired = self._take_lease(key)
        except BaseException:
            self._unregister(key)
            raise

        if not acquired:
            self._unregister(key)
            return GuardOutcome.CONFLICT
        return GuardOutcome.ACQUIRED

    def renew(self, identity: SourceIdentity) -> None:
        """Refresh this process's lease so it does not go stale.

        Raises:
            CheckpointError: If the lease now belongs to another holder, or
                the lease table cannot be written
        """
        key = identity.key
        table = run_leases_table
        now = datetime.now(UTC)
        try:
            with self._db.connection() as conn:
                updated = conn.execute(
                    table.update()
                    .where(table.c.source_key == key, table.c.holder == self._holder)
                    .values(acquired_at=now)
                ).rowcount
        except SQLAlchemyError as exc:
            raise CheckpointError("guard.renew", f"{key}: {exc}") from exc

        if updated == 0:
            raise CheckpointError("guard.renew", f"{key}: run lease lost to another holder")
        with self._lock:
            self._renewed[key] = now

    def heartbeat(self, identity: SourceIdentity) -> None:
        """Renew the lease if the last renewal is older than the renew interval.

        Cheap to call per row; most calls touch no database.

        Raises:
            CheckpointError: As renew()
        """
        with self._lock:
            last = self._renewed.get(identity.key)
        if last is None or datetime.now(UTC) - last >= self._renew_every:
            self.renew(identity)

    def release(self, identity: SourceIdentity) -> None:
        """Drop the registration and this process's lease row.

        Releasing a source that is not held is a no-op.
        """
        key = identity.key
        try:
            with self._db.connection() as conn:
                conn.execute(
                    delete(run_leases_table).where(
                        run_leases_table.c.source_key == key,
                        run_leases_table.c.holder == self._holder,
                    )
                )
        except SQLAlchemyError as exc:
            # The lease goes stale after lease_seconds either way
            logger.warning("Failed to release run lease", source=key, error=str(exc))
        finally:
            self._unregister(key)

    @contextmanager
    def lease(self, identity: SourceIdentity) -> Iterator[None]:
        """Hold the source for the duration of the block.

        Raises:
            DuplicateRunError: If another live run holds the source
        """
        if self.acquire(identity) is GuardOutcome.CONFLICT:
            raise DuplicateRunError(identity.key)
        try:
            yield
        finally:
            self.release(identity)

    def _unregister(self, key: str) -> None:
        with self._lock:
            self._active.discard(key)
            self._renewed.pop(key, None)

    def _read_lease(self, conn: Connection, key: str) -> Row[Any] | None:
        table = run_leases_table
        return conn.execute(select(table.c.holder, table.c.acquired_at).where(table.c.source_key == key)).first()

    def _take_lease(self, key: str) -> bool:
        table = run_leases_table
        now = datetime.now(UTC)
        try:
            with self._db.connection() as conn:
                row = self._read_lease(conn, key)
                if row is None:
                    conn.execute(table.insert().values(source_key=key, holder=self._holder, acquired_at=now))
                else:
                    acquired_at = row.acquired_at if row.acquired_at.tzinfo else row.acquired_at.replace(tzinfo=UTC)
                    if row.holder != self._holder and now - acquired_at < self._lease_ttl:
                        logger.info("Run lease held by another process", source=key, holder=row.holder)
                        return False

                    if row.holder != self._holder:
                        logger.warning("Taking over stale run lease", source=key, holder=row.holder, acquired_at=acquired_at.isoformat())
                    # Only replace the row exactly as read; a concurrent takeover wins
                    swapped = conn.execute(
                        table.update()
                        .where(
                            table.c.source_key == key,
                            table.c.holder == row.holder,
                            table.c.acquired_at == row.acquired_at,
                        )
                        .values(holder=self._holder, acquired_at=now)
                    ).rowcount
                    if swapped == 0:
                        logger.info("Run lease taken concurrently", source=key)
                        return False
        except IntegrityError:
            # Another process inserted the lease between our select and insert
            logger.info("Run lease taken concurrently", source=key)
            return False
        except SQLAlchemyError as exc:
            raise CheckpointError("guard.lease", f"{key}: {exc}") from exc

        with self._lock:
            self._renewed[key] = now
        return True
