"""
Record visibility decisions for a connection.

A connection with no grants exposes every record of the patient
(share-all). One or more grants switch it to an explicit allow-list.
"Share all" therefore means deleting every grant, and unsharing the last
grant silently widens visibility back to everything; both transitions are
reported to the caller through ShareResult warnings.
"""

import sys
from typing import Iterable, List

from medconnect.catalog import ProfileDirectory, RecordCatalog
from medconnect.config import APPROVED, PATIENT
from medconnect.connections import ConnectionService
from medconnect.errors import ConsentError, ErrorKind
from medconnect.models import Connection, Record, SharedRecords, ShareMode, ShareResult, Visibility
from medconnect.rbac import require_party
from medconnect.store import ConnectionNotApproved, SharingStore

REVERTED_WARNING = (
    "The last explicitly shared record was removed; the doctor can now see ALL of your records."
)
NARROWED_WARNING = (
    "This connection previously shared all records; the doctor can now see ONLY the explicitly shared records."
)


def _require_approved(connection: Connection, message: str = "Connection must be approved first") -> None:
    if connection.status != APPROVED:
        raise ConsentError(
            ErrorKind.NOT_APPROVED, message,
            {"connection_id": connection.connection_id, "status": connection.status},
        )


def _normalise_ids(record_ids: Iterable) -> List[str]:
    if isinstance(record_ids, (str, bytes)) or record_ids is None:
        raise ValueError("Please provide an array of record IDs")
    ids = [str(r) for r in record_ids]
    if not ids:
        raise ValueError("Please provide an array of record IDs")
    return list(dict.fromkeys(ids))


def _warn(message: str, connection_id: int) -> None:
    print(f"[WARN] connection_id={connection_id}: {message}", file=sys.stderr)


class SharingService:
    def __init__(self, connections: ConnectionService, grants: SharingStore,
                 records: RecordCatalog, profiles: ProfileDirectory):
        self.connections = connections
        self.grants = grants
        self.records = records
        self.profiles = profiles

    @classmethod
    def from_engine(cls, engine, connections: ConnectionService = None) -> "SharingService":
        connections = connections or ConnectionService.from_engine(engine)
        return cls(connections, SharingStore(engine), RecordCatalog(engine), ProfileDirectory(engine))

    # ── Patient-side grant management ────────────────────────────────

    def share_records(self, connection_id: int, record_ids, patient_id: int) -> ShareResult:
        """
        Explicitly share *record_ids* with the doctor on the connection.

        Every id is checked for ownership before any grant is written, so a
        batch with a single bad id changes nothing.
        """
        ids = _normalise_ids(record_ids)
        connection = self.connections.get_connection(connection_id)
        require_party(connection, PATIENT, patient_id)
        _require_approved(connection)

        missing, foreign = [], []
        for record_id in ids:
            record = self.records.find_by_id(record_id)
            if record is None:
                missing.append(record_id)
            elif record.patient_id != patient_id:
                foreign.append(record_id)

        if missing or foreign:
            details = {"connection_id": connection_id, "missing": missing, "foreign": foreign}
            if foreign:
                raise ConsentError(
                    ErrorKind.UNAUTHORIZED,
                    f"Records not owned by patient: {', '.join(foreign + missing)}",
                    details,
                )
            raise ConsentError(
                ErrorKind.RECORD_NOT_FOUND,
                f"Records not found: {', '.join(missing)}",
                details,
            )

        try:
            inserted, before = self.grants.add_grants(connection_id, ids)
        except ConnectionNotApproved as e:
            raise ConsentError(
                ErrorKind.NOT_APPROVED, "Connection must be approved first",
                {"connection_id": connection_id, "status": e.status},
            ) from e
        result = ShareResult(connection_id=connection_id, mode=ShareMode.EXPLICIT, changed=inserted)
        if before == 0 and inserted > 0:
            result.narrowed_from_share_all = True
            result.warnings.append(NARROWED_WARNING)
            _warn(NARROWED_WARNING, connection_id)

        print(f"[sharing] Records shared: connection_id={connection_id} "
              f"requested={len(ids)} new={inserted}")
        return result

    def unshare_records(self, connection_id: int, record_ids, patient_id: int) -> ShareResult:
        ids = _normalise_ids(record_ids)
        connection = self.connections.get_connection(connection_id)
        require_party(connection, PATIENT, patient_id)

        removed, before, after = self.grants.remove_grants(connection_id, ids)
        mode = ShareMode.ALL if after == 0 else ShareMode.EXPLICIT
        result = ShareResult(connection_id=connection_id, mode=mode, changed=removed)
        if before > 0 and after == 0:
            result.reverted_to_share_all = True
            result.warnings.append(REVERTED_WARNING)
            _warn(REVERTED_WARNING, connection_id)

        print(f"[sharing] Records unshared: connection_id={connection_id} removed={removed}")
        return result

    def share_all_records(self, connection_id: int, patient_id: int) -> ShareResult:
        connection = self.connections.get_connection(connection_id)
        require_party(connection, PATIENT, patient_id)
        _require_approved(connection)

        removed = self.grants.clear(connection_id)
        print(f"[sharing] All records shared: connection_id={connection_id} cleared={removed}")
        return ShareResult(connection_id=connection_id, mode=ShareMode.ALL, changed=removed)

    # ── Visibility ───────────────────────────────────────────────────

    def shared_record_ids(self, connection_id: int) -> List[str]:
        return self.grants.grant_ids(connection_id)

    def visibility(self, connection_id: int) -> Visibility:
        return Visibility.from_grants(self.grants.grant_ids(connection_id))

    def visible_records(self, connection_id: int, requester_role: str, requester_id: int) -> SharedRecords:
        """Records the connection currently exposes, for either party."""
        connection = self.connections.get_connection(connection_id)
        require_party(connection, requester_role, requester_id)
        _require_approved(connection, "Connection is not approved")
        visibility = self.visibility(connection_id)
        return SharedRecords(mode=visibility.mode, records=self._resolve(connection, visibility))

    def view_patient_records(self, doctor_id: int, patient_id: int) -> SharedRecords:
        """Doctor-side view of one patient's records, looked up by the pair."""
        if self.profiles.find_doctor(doctor_id) is None:
            raise ConsentError(ErrorKind.NOT_FOUND, "Doctor profile not found", {"doctor_id": doctor_id})
        patient = self.profiles.find_patient(patient_id)
        if patient is None:
            raise ConsentError(ErrorKind.NOT_FOUND, "Patient not found", {"patient_id": patient_id})

        connection = self.connections.connection_status(patient_id, doctor_id)
        if connection is None or connection.status != APPROVED:
            raise ConsentError(
                ErrorKind.NOT_APPROVED, "No approved connection with this patient",
                {"patient_id": patient_id, "doctor_id": doctor_id},
            )
        visibility = self.visibility(connection.connection_id)
        return SharedRecords(mode=visibility.mode, records=self._resolve(connection, visibility),
                             patient=patient)

    def _resolve(self, connection: Connection, visibility: Visibility) -> List[Record]:
        if visibility.mode is ShareMode.ALL:
            return self.records.find_by_patient(connection.patient_id)

        records = []
        for record_id in sorted(visibility.record_ids):
            record = self.records.find_by_id(record_id)
            if record is not None and record.patient_id == connection.patient_id:
                records.append(record)
        return records
