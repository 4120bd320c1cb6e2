"""
Categorized errors raised by the connection and sharing layers.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INVALID_TRANSITION = "invalid_transition"
    ALREADY_PENDING = "already_pending"
    ALREADY_APPROVED = "already_approved"
    DOCTOR_UNVERIFIED = "doctor_unverified"
    NOT_APPROVED = "not_approved"
    RECORD_NOT_FOUND = "record_not_found"


HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.ALREADY_PENDING: 409,
    ErrorKind.ALREADY_APPROVED: 409,
    ErrorKind.DOCTOR_UNVERIFIED: 403,
    ErrorKind.NOT_APPROVED: 403,
    ErrorKind.RECORD_NOT_FOUND: 404,
}


class ConsentError(Exception):
    """A precondition violation, surfaced to the caller verbatim."""

    def __init__(self, kind: ErrorKind, message: str,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        out = {"error": self.kind.value, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out

    def __repr__(self) -> str:
        return f"ConsentError({self.kind.value!r}, {self.message!r})"
