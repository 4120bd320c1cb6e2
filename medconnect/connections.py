"""
Connection lifecycle: request, approve, reject, revoke and re-request.

States move pending -> approved | rejected, approved -> revoked, and
rejected | revoked -> pending (same row). Nothing else is legal.
"""

from typing import List, Optional

from medconnect.catalog import ProfileDirectory
from medconnect.config import (
    APPROVED,
    CONNECTION_STATUSES,
    DOCTOR,
    PATIENT,
    PENDING,
    REJECTED,
    REVOKED,
    ROLES,
    TRANSITIONS,
)
from medconnect.errors import ConsentError, ErrorKind
from medconnect.models import Connection
from medconnect.rbac import require_party
from medconnect.store import ConnectionStore, DuplicateConnection


def _guard_request(connection: Connection) -> None:
    """Reject a request when the pair is already pending or approved."""
    if connection.status == PENDING:
        raise ConsentError(
            ErrorKind.ALREADY_PENDING, "Connection request already pending",
            {"connection_id": connection.connection_id},
        )
    if connection.status == APPROVED:
        raise ConsentError(
            ErrorKind.ALREADY_APPROVED, "Connection already approved",
            {"connection_id": connection.connection_id},
        )


class ConnectionService:
    def __init__(self, store: ConnectionStore, profiles: ProfileDirectory):
        self.store = store
        self.profiles = profiles

    @classmethod
    def from_engine(cls, engine) -> "ConnectionService":
        return cls(ConnectionStore(engine), ProfileDirectory(engine))

    # ── Lookups ──────────────────────────────────────────────────────

    def get_connection(self, connection_id: int) -> Connection:
        connection = self.store.find_by_id(connection_id)
        if connection is None:
            raise ConsentError(
                ErrorKind.NOT_FOUND, "Connection not found",
                {"connection_id": connection_id},
            )
        return connection

    def is_approved(self, patient_id: int, doctor_id: int) -> bool:
        """The single gate dependent features call. Never mutates state."""
        return self.store.is_approved(patient_id, doctor_id)

    def connection_status(self, patient_id: int, doctor_id: int) -> Optional[Connection]:
        return self.store.find_by_pair(patient_id, doctor_id)

    def list_connections(self, role: str, actor_id: int, status: Optional[str] = None) -> List[Connection]:
        if role not in ROLES:
            raise ValueError(f"Invalid user role '{role}'.")
        if status is not None and status not in CONNECTION_STATUSES:
            raise ValueError(f"Invalid connection status '{status}'.")
        column = "patient_id" if role == PATIENT else "doctor_id"
        return self.store.list_for(column, actor_id, status)

    def pending_requests(self, doctor_id: int) -> List[Connection]:
        return self.store.list_for("doctor_id", doctor_id, PENDING)

    # ── Transitions ──────────────────────────────────────────────────

    def request_connection(self, patient_id: int, doctor_id: int) -> Connection:
        """Patient asks a verified doctor for access; reuses any prior row."""
        if self.profiles.find_patient(patient_id) is None:
            raise ConsentError(
                ErrorKind.NOT_FOUND, "Patient profile not found", {"patient_id": patient_id},
            )
        doctor = self.profiles.find_doctor(doctor_id)
        if doctor is None:
            raise ConsentError(
                ErrorKind.NOT_FOUND, "Doctor profile not found", {"doctor_id": doctor_id},
            )
        if not doctor.verified:
            raise ConsentError(
                ErrorKind.DOCTOR_UNVERIFIED,
                "This doctor is not yet verified and cannot accept connection requests",
                {"doctor_id": doctor_id},
            )

        existing = self.store.find_by_pair(patient_id, doctor_id)
        if existing is None:
            try:
                connection = self.store.create_pending(patient_id, doctor_id)
            except DuplicateConnection:
                # Another request for the same pair landed first.
                existing = self.store.find_by_pair(patient_id, doctor_id)
                _guard_request(existing)
                raise ConsentError(
                    ErrorKind.INVALID_TRANSITION, "Connection changed concurrently, retry the request",
                    {"connection_id": existing.connection_id},
                )
            print(f"[connections] Request created: connection_id={connection.connection_id} "
                  f"patient_id={patient_id} doctor_id={doctor_id}")
            return connection

        _guard_request(existing)
        if not self.store.compare_and_set(existing.connection_id, existing.status, PENDING):
            _guard_request(self.get_connection(existing.connection_id))
            raise ConsentError(
                ErrorKind.INVALID_TRANSITION, "Connection changed concurrently, retry the request",
                {"connection_id": existing.connection_id},
            )
        print(f"[connections] Re-requested: connection_id={existing.connection_id} "
              f"from={existing.status}")
        return self.get_connection(existing.connection_id)

    def approve_connection(self, connection_id: int, doctor_id: int) -> Connection:
        return self._doctor_transition(
            connection_id, doctor_id, APPROVED,
            "Unauthorized: You can only approve your own connection requests",
        )

    def reject_connection(self, connection_id: int, doctor_id: int) -> Connection:
        return self._doctor_transition(connection_id, doctor_id, REJECTED)

    def revoke_connection(self, connection_id: int, doctor_id: int) -> None:
        """Doctor ends an approved connection. Grants stay dormant."""
        self._doctor_transition(connection_id, doctor_id, REVOKED)

    def _doctor_transition(self, connection_id: int, doctor_id: int, new_status: str,
                           unauthorized_message: str = "Unauthorized") -> Connection:
        connection = self.get_connection(connection_id)
        require_party(connection, DOCTOR, doctor_id, unauthorized_message)

        expected = PENDING if new_status in (APPROVED, REJECTED) else APPROVED
        if new_status not in TRANSITIONS[connection.status]:
            raise ConsentError(
                ErrorKind.INVALID_TRANSITION,
                f"Connection is not {expected}",
                {"connection_id": connection_id, "status": connection.status, "target": new_status},
            )
        if not self.store.compare_and_set(connection_id, connection.status, new_status):
            current = self.get_connection(connection_id)
            raise ConsentError(
                ErrorKind.INVALID_TRANSITION,
                f"Connection is not {expected}",
                {"connection_id": connection_id, "status": current.status, "target": new_status},
            )

        print(f"[connections] {new_status.capitalize()}: connection_id={connection_id}")
        return self.get_connection(connection_id)
