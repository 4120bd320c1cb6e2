"""
Read-only lookups against collaborator data: medical records and profiles.

Both lookups already hide soft-deleted records, so callers never see them.
"""

from typing import List, Optional

from sqlalchemy import DateTime, text

from medconnect.models import Doctor, Patient, Record


def _record_from_row(row) -> Record:
    return Record(
        record_id=str(row["record_id"]),
        patient_id=int(row["patient_id"]),
        title=row["title"] or "",
        record_type=row["record_type"] or "other",
        record_date=row["record_date"],
    )


class RecordCatalog:
    """Lookup over the ``medical_records`` table."""

    def __init__(self, engine):
        self.engine = engine

    def find_by_id(self, record_id: str) -> Optional[Record]:
        sql = text("""
            SELECT record_id, patient_id, title, record_type, record_date
            FROM medical_records
            WHERE record_id = :rid AND is_deleted = :deleted
        """).columns(record_date=DateTime)
        with self.engine.connect() as conn:
            row = conn.execute(sql, {"rid": str(record_id), "deleted": False}).mappings().first()
        return _record_from_row(row) if row else None

    def find_by_patient(self, patient_id: int) -> List[Record]:
        sql = text("""
            SELECT record_id, patient_id, title, record_type, record_date
            FROM medical_records
            WHERE patient_id = :pid AND is_deleted = :deleted
            ORDER BY record_date DESC, record_id
        """).columns(record_date=DateTime)
        with self.engine.connect() as conn:
            rows = conn.execute(sql, {"pid": patient_id, "deleted": False}).mappings().all()
        return [_record_from_row(r) for r in rows]


class ProfileDirectory:
    """Lookup over the ``patients`` and ``doctors`` profile tables."""

    def __init__(self, engine):
        self.engine = engine

    def find_patient(self, patient_id: int) -> Optional[Patient]:
        sql = text("SELECT patient_id, display_name FROM patients WHERE patient_id = :pid")
        with self.engine.connect() as conn:
            row = conn.execute(sql, {"pid": patient_id}).mappings().first()
        if not row:
            return None
        return Patient(patient_id=int(row["patient_id"]), display_name=row["display_name"] or "")

    def find_doctor(self, doctor_id: int) -> Optional[Doctor]:
        sql = text("""
            SELECT doctor_id, display_name, specialty, verified
            FROM doctors WHERE doctor_id = :did
        """)
        with self.engine.connect() as conn:
            row = conn.execute(sql, {"did": doctor_id}).mappings().first()
        if not row:
            return None
        return Doctor(
            doctor_id=int(row["doctor_id"]),
            display_name=row["display_name"] or "",
            specialty=row["specialty"],
            verified=bool(row["verified"]),
        )
