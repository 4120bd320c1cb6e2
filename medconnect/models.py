"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class ShareMode(str, Enum):
    """How a connection exposes the patient's records."""
    ALL = "all"
    EXPLICIT = "explicit"


@dataclass
class AccessContext:
    """Represents the authenticated user's identity and scope."""
    user_id: int
    display_name: str
    role: str                  # "patient" or "doctor"
    patient_id: Optional[int]  # profile id for patient role
    doctor_id: Optional[int]   # profile id for doctor role

    def actor_id(self) -> Optional[int]:
        """Role-scoped profile id used by every connection operation."""
        return self.patient_id if self.role == "patient" else self.doctor_id


@dataclass
class Patient:
    patient_id: int
    display_name: str = ""


@dataclass
class Doctor:
    doctor_id: int
    display_name: str = ""
    specialty: Optional[str] = None
    verified: bool = False


@dataclass
class Record:
    """A medical record owned by exactly one patient (read-only here)."""
    record_id: str
    patient_id: int
    title: str = ""
    record_type: str = "other"
    record_date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "patient_id": self.patient_id,
            "title": self.title,
            "record_type": self.record_type,
            "record_date": self.record_date.isoformat() if self.record_date else None,
        }


@dataclass
class Connection:
    """The consent relationship between one patient and one doctor."""
    connection_id: int
    patient_id: int
    doctor_id: int
    status: str
    requested_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "patient_id": self.patient_id,
            "doctor_id": self.doctor_id,
            "status": self.status,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
        }


@dataclass(frozen=True)
class Visibility:
    """
    Tagged visibility of a connection: ``ALL`` or ``EXPLICIT(record_ids)``.

    Storage keeps the zero-grant convention; this is its explicit form.
    """
    mode: ShareMode
    record_ids: FrozenSet[str] = frozenset()

    @classmethod
    def from_grants(cls, record_ids) -> "Visibility":
        ids = frozenset(record_ids)
        if not ids:
            return cls(ShareMode.ALL)
        return cls(ShareMode.EXPLICIT, ids)


@dataclass
class SharedRecords:
    """Result of a visibility decision."""
    mode: ShareMode
    records: List[Record] = field(default_factory=list)
    patient: Optional[Patient] = None

    def record_ids(self) -> List[str]:
        return [r.record_id for r in self.records]

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "mode": self.mode.value,
            "share_all": self.mode is ShareMode.ALL,
            "records": [r.to_dict() for r in self.records],
        }
        if self.patient is not None:
            out["patient_info"] = {
                "patient_id": self.patient.patient_id,
                "display_name": self.patient.display_name,
            }
        return out


@dataclass
class ShareResult:
    """Outcome of a share/unshare call, including share-all warnings."""
    connection_id: int
    mode: ShareMode
    changed: int = 0
    reverted_to_share_all: bool = False
    narrowed_from_share_all: bool = False
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "mode": self.mode.value,
            "changed": self.changed,
            "reverted_to_share_all": self.reverted_to_share_all,
            "narrowed_from_share_all": self.narrowed_from_share_all,
            "warnings": list(self.warnings),
        }
