"""
Database engine initialisation and table definitions.
"""

import sys

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    text,
)

from medconnect.config import get_env, CONNECTION_STATUSES

metadata = MetaData()

# ── Identity / profiles ──────────────────────────────────────────────

patients = Table(
    "patients", metadata,
    Column("patient_id", Integer, primary_key=True),
    Column("display_name", String(200), nullable=False, default=""),
)

doctors = Table(
    "doctors", metadata,
    Column("doctor_id", Integer, primary_key=True),
    Column("display_name", String(200), nullable=False, default=""),
    Column("specialty", String(100)),
    Column("verified", Boolean, nullable=False, default=False),
)

portal_users = Table(
    "portal_users", metadata,
    Column("id", Integer, primary_key=True),
    Column("display_name", String(200), nullable=False),
    Column("role", String(20), nullable=False),
    Column("patient_id", Integer, ForeignKey("patients.patient_id")),
    Column("doctor_id", Integer, ForeignKey("doctors.doctor_id")),
    Column("api_key", String(100), nullable=False, unique=True),
    Column("is_active", Boolean, nullable=False, default=True),
)

# ── Records (owned by the record service, read here) ────────────────

medical_records = Table(
    "medical_records", metadata,
    Column("record_id", String(64), primary_key=True),
    Column("patient_id", Integer, ForeignKey("patients.patient_id"), nullable=False, index=True),
    Column("title", String(200), nullable=False, default=""),
    Column("record_type", String(40), nullable=False, default="other"),
    Column("record_date", DateTime),
    Column("is_deleted", Boolean, nullable=False, default=False),
)

# ── Consent ──────────────────────────────────────────────────────────

connections = Table(
    "connections", metadata,
    Column("connection_id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", Integer, ForeignKey("patients.patient_id"), nullable=False),
    Column("doctor_id", Integer, ForeignKey("doctors.doctor_id"), nullable=False, index=True),
    Column("status", String(20), nullable=False, default=CONNECTION_STATUSES[0]),
    Column("requested_at", DateTime, nullable=False),
    Column("responded_at", DateTime),
    Column("created_at", DateTime, nullable=False),
    UniqueConstraint("patient_id", "doctor_id", name="uq_connection_pair"),
)

shared_records = Table(
    "shared_records", metadata,
    Column("connection_id", Integer, ForeignKey("connections.connection_id"), primary_key=True),
    Column("record_id", String(64), primary_key=True),
    Column("shared_at", DateTime, nullable=False),
)


def init_engine(db_uri: str = None):
    """Create a SQLAlchemy engine and verify the connection."""
    db_uri = db_uri or get_env("DB_URI")
    engine = create_engine(db_uri, echo=False, future=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def create_schema(engine) -> None:
    """Create all tables that do not exist yet (idempotent)."""
    metadata.create_all(engine)
