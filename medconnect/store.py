"""
Persistence for connections and their shared-record grants.

Every status change is a compare-and-set on the current status, so two
writers racing on the same connection cannot both succeed.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import IntegrityError

from medconnect.config import APPROVED, PENDING
from medconnect.database import connections as connections_table
from medconnect.models import Connection

_CONNECTION_COLUMNS = "connection_id, patient_id, doctor_id, status, requested_at, responded_at"


def _connection_query(sql: str):
    """Text query over connections with its timestamp columns typed."""
    return text(sql).columns(requested_at=DateTime, responded_at=DateTime)


def _now() -> datetime:
    """Current UTC time, naive, as stored in DateTime columns."""
    return datetime.now(tz=timezone.utc).replace(tzinfo=None)


def _connection_from_row(row) -> Connection:
    return Connection(
        connection_id=int(row["connection_id"]),
        patient_id=int(row["patient_id"]),
        doctor_id=int(row["doctor_id"]),
        status=str(row["status"]),
        requested_at=row["requested_at"],
        responded_at=row["responded_at"],
    )


class DuplicateConnection(Exception):
    """A row for this (patient, doctor) pair was inserted concurrently."""


class ConnectionNotApproved(Exception):
    """The connection was not approved when grants were about to be written."""

    def __init__(self, connection_id: int, status: Optional[str]):
        super().__init__(f"connection {connection_id} is {status}, not approved")
        self.connection_id = connection_id
        self.status = status


class ConnectionStore:
    """One row per (patient, doctor) pair; rows are reused, never duplicated."""

    def __init__(self, engine):
        self.engine = engine

    def find_by_id(self, connection_id: int) -> Optional[Connection]:
        sql = _connection_query(f"SELECT {_CONNECTION_COLUMNS} FROM connections WHERE connection_id = :cid")
        with self.engine.connect() as conn:
            row = conn.execute(sql, {"cid": connection_id}).mappings().first()
        return _connection_from_row(row) if row else None

    def find_by_pair(self, patient_id: int, doctor_id: int) -> Optional[Connection]:
        sql = _connection_query(f"""
            SELECT {_CONNECTION_COLUMNS} FROM connections
            WHERE patient_id = :pid AND doctor_id = :did
        """)
        with self.engine.connect() as conn:
            row = conn.execute(sql, {"pid": patient_id, "did": doctor_id}).mappings().first()
        return _connection_from_row(row) if row else None

    def create_pending(self, patient_id: int, doctor_id: int) -> Connection:
        """Insert a new pending row; raises DuplicateConnection on a lost race."""
        now = _now()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    connections_table.insert().values(
                        patient_id=patient_id,
                        doctor_id=doctor_id,
                        status=PENDING,
                        requested_at=now,
                        responded_at=None,
                        created_at=now,
                    )
                )
                connection_id = result.inserted_primary_key[0]
        except IntegrityError as e:
            raise DuplicateConnection(f"connection ({patient_id}, {doctor_id}) already exists") from e
        return Connection(
            connection_id=int(connection_id),
            patient_id=patient_id,
            doctor_id=doctor_id,
            status=PENDING,
            requested_at=now,
            responded_at=None,
        )

    def compare_and_set(self, connection_id: int, expected: str, new_status: str) -> bool:
        """
        Move *connection_id* from *expected* to *new_status*.

        Returns False when the row is no longer in *expected*. Moving back to
        pending refreshes ``requested_at`` and clears ``responded_at``; any
        other move stamps ``responded_at``.
        """
        now = _now()
        if new_status == PENDING:
            sql = text("""
                UPDATE connections
                SET status = :new, requested_at = :now, responded_at = NULL
                WHERE connection_id = :cid AND status = :expected
            """).bindparams(bindparam("now", type_=DateTime))
        else:
            sql = text("""
                UPDATE connections
                SET status = :new, responded_at = :now
                WHERE connection_id = :cid AND status = :expected
            """).bindparams(bindparam("now", type_=DateTime))
        params = {"new": new_status, "now": now, "cid": connection_id, "expected": expected}
        with self.engine.begin() as conn:
            result = conn.execute(sql, params)
        return result.rowcount == 1

    def is_approved(self, patient_id: int, doctor_id: int) -> bool:
        sql = text("""
            SELECT connection_id FROM connections
            WHERE patient_id = :pid AND doctor_id = :did AND status = :status
        """)
        with self.engine.connect() as conn:
            row = conn.execute(sql, {"pid": patient_id, "did": doctor_id, "status": APPROVED}).first()
        return row is not None

    def list_for(self, column: str, actor_id: int, status: Optional[str] = None) -> List[Connection]:
        """Connections where *column* (patient_id or doctor_id) matches, newest first."""
        if column not in ("patient_id", "doctor_id"):
            raise ValueError(f"Cannot list connections by '{column}'.")
        query = f"SELECT {_CONNECTION_COLUMNS} FROM connections WHERE {column} = :aid"
        params = {"aid": actor_id}
        if status:
            query += " AND status = :status"
            params["status"] = status
        query += " ORDER BY created_at DESC, connection_id DESC"
        with self.engine.connect() as conn:
            rows = conn.execute(_connection_query(query), params).mappings().all()
        return [_connection_from_row(r) for r in rows]

    def count_for_pair(self, patient_id: int, doctor_id: int) -> int:
        sql = text("SELECT COUNT(*) FROM connections WHERE patient_id = :pid AND doctor_id = :did")
        with self.engine.connect() as conn:
            return int(conn.execute(sql, {"pid": patient_id, "did": doctor_id}).scalar_one())


class SharingStore:
    """Allow-list of record ids per connection. Zero rows means share-all."""

    def __init__(self, engine):
        self.engine = engine

    def grant_ids(self, connection_id: int) -> List[str]:
        sql = text("""
            SELECT record_id FROM shared_records
            WHERE connection_id = :cid ORDER BY shared_at, record_id
        """)
        with self.engine.connect() as conn:
            rows = conn.execute(sql, {"cid": connection_id}).all()
        return [str(r[0]) for r in rows]

    def add_grants(self, connection_id: int, record_ids: Iterable[str]) -> Tuple[int, int]:
        """
        Insert grants in one transaction while the connection is approved.

        The connection row is locked first, so a concurrent revoke either
        commits before (ConnectionNotApproved is raised) or waits until the
        grants are written. Grants that already exist are skipped, including
        ones inserted by another writer mid-transaction.

        Returns ``(inserted, grants_before)``.
        """
        record_ids = list(dict.fromkeys(str(r) for r in record_ids))
        try:
            return self._add_grants(connection_id, record_ids)
        except IntegrityError:
            # Lost a race on the same grant between NOT EXISTS and INSERT.
            return self._add_grants(connection_id, record_ids)

    def _add_grants(self, connection_id: int, record_ids: List[str]) -> Tuple[int, int]:
        lock_sql = text("""
            UPDATE connections SET status = status
            WHERE connection_id = :cid AND status = :approved
        """)
        status_sql = text("SELECT status FROM connections WHERE connection_id = :cid")
        count_sql = text("SELECT COUNT(*) FROM shared_records WHERE connection_id = :cid")
        insert_sql = text("""
            INSERT INTO shared_records (connection_id, record_id, shared_at)
            SELECT connection_id, :rid, :now FROM connections
            WHERE connection_id = :cid
              AND NOT EXISTS (
                  SELECT 1 FROM shared_records
                  WHERE connection_id = :cid AND record_id = :rid
              )
        """).bindparams(bindparam("now", type_=DateTime))
        now = _now()
        with self.engine.begin() as conn:
            if conn.execute(lock_sql, {"cid": connection_id, "approved": APPROVED}).rowcount != 1:
                status = conn.execute(status_sql, {"cid": connection_id}).scalar()
                raise ConnectionNotApproved(connection_id, status)
            before = int(conn.execute(count_sql, {"cid": connection_id}).scalar_one())
            inserted = 0
            for record_id in record_ids:
                params = {"cid": connection_id, "rid": record_id, "now": now}
                inserted += conn.execute(insert_sql, params).rowcount
        return inserted, before

    def remove_grants(self, connection_id: int, record_ids: Iterable[str]) -> Tuple[int, int, int]:
        """
        Delete the given grants in one transaction.

        Returns ``(removed, grants_before, grants_after)``.
        """
        count_sql = text("SELECT COUNT(*) FROM shared_records WHERE connection_id = :cid")
        delete_sql = text("""
            DELETE FROM shared_records
            WHERE connection_id = :cid AND record_id = :rid
        """)
        removed = 0
        with self.engine.begin() as conn:
            before = int(conn.execute(count_sql, {"cid": connection_id}).scalar_one())
            for record_id in dict.fromkeys(str(r) for r in record_ids):
                removed += conn.execute(delete_sql, {"cid": connection_id, "rid": record_id}).rowcount
            after = int(conn.execute(count_sql, {"cid": connection_id}).scalar_one())
        return removed, before, after

    def clear(self, connection_id: int) -> int:
        """Drop every grant for the connection, returning it to share-all."""
        sql = text("DELETE FROM shared_records WHERE connection_id = :cid")
        with self.engine.begin() as conn:
            return conn.execute(sql, {"cid": connection_id}).rowcount
