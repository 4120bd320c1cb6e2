"""
Role-Based Access Control – resolving callers and checking connection ownership.
"""

from sqlalchemy import text

from medconnect.config import ROLES, PATIENT, DOCTOR
from medconnect.errors import ConsentError, ErrorKind
from medconnect.models import AccessContext, Connection


def load_access_context(engine, api_key: str) -> AccessContext:
    """Look up a user by API key and return their AccessContext."""
    sql = text("""
        SELECT id, display_name, role, patient_id, doctor_id
        FROM portal_users
        WHERE api_key = :k AND is_active = :active
    """)
    with engine.connect() as conn:
        row = conn.execute(sql, {"k": api_key, "active": True}).mappings().first()

    if not row:
        raise ValueError("Invalid key or user inactive (no match in portal_users).")

    role = str(row["role"]).strip().lower()
    if role not in ROLES:
        raise ValueError(f"Unsupported role '{row['role']}' in portal_users.")

    ctx = AccessContext(
        user_id=int(row["id"]),
        display_name=str(row["display_name"]),
        role=role,
        patient_id=int(row["patient_id"]) if row["patient_id"] is not None else None,
        doctor_id=int(row["doctor_id"]) if row["doctor_id"] is not None else None,
    )
    if ctx.actor_id() is None:
        raise ValueError(f"{role.capitalize()} user must have {role}_id set in portal_users.")
    return ctx


def is_party(connection: Connection, role: str, actor_id) -> bool:
    """True when *actor_id* is the patient or doctor side of *connection*."""
    if role == PATIENT:
        return connection.patient_id == actor_id
    if role == DOCTOR:
        return connection.doctor_id == actor_id
    return False


def require_party(connection: Connection, role: str, actor_id, message: str = "Unauthorized") -> None:
    """Raise UNAUTHORIZED unless the caller owns its side of the connection."""
    if not is_party(connection, role, actor_id):
        raise ConsentError(
            ErrorKind.UNAUTHORIZED, message,
            {"connection_id": connection.connection_id, "role": role},
        )
