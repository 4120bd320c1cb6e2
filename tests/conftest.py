"""
Shared fixtures: an in-memory SQLite database seeded with two patients,
three doctors (one unverified) and a handful of medical records.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from medconnect.connections import ConnectionService
from medconnect.database import (
    create_schema,
    doctors,
    medical_records,
    patients,
    portal_users,
)
from medconnect.gates import FeatureGate
from medconnect.sharing import SharingService

ALICE, BOB = 1, 2
DR_HOUSE, DR_GREY, DR_UNVERIFIED = 10, 11, 12

ALICE_RECORDS = ["a-lab", "a-xray", "a-note"]
BOB_RECORDS = ["b-lab"]

KEYS = {
    "alice": "mdc_alice",
    "bob": "mdc_bob",
    "house": "mdc_house",
    "grey": "mdc_grey",
    "inactive": "mdc_inactive",
}


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    create_schema(eng)
    with eng.begin() as conn:
        conn.execute(patients.insert(), [
            {"patient_id": ALICE, "display_name": "Alice"},
            {"patient_id": BOB, "display_name": "Bob"},
        ])
        conn.execute(doctors.insert(), [
            {"doctor_id": DR_HOUSE, "display_name": "Dr. House", "specialty": "diagnostics", "verified": True},
            {"doctor_id": DR_GREY, "display_name": "Dr. Grey", "specialty": "surgery", "verified": True},
            {"doctor_id": DR_UNVERIFIED, "display_name": "Dr. New", "specialty": None, "verified": False},
        ])
        conn.execute(medical_records.insert(), [
            {"record_id": "a-lab", "patient_id": ALICE, "title": "Blood panel",
             "record_type": "lab_result", "record_date": datetime(2024, 3, 1), "is_deleted": False},
            {"record_id": "a-xray", "patient_id": ALICE, "title": "Chest X-ray",
             "record_type": "x_ray", "record_date": datetime(2024, 2, 1), "is_deleted": False},
            {"record_id": "a-note", "patient_id": ALICE, "title": "Follow-up",
             "record_type": "doctor_note", "record_date": datetime(2024, 1, 1), "is_deleted": False},
            {"record_id": "a-gone", "patient_id": ALICE, "title": "Deleted scan",
             "record_type": "imaging_report", "record_date": datetime(2023, 12, 1), "is_deleted": True},
            {"record_id": "b-lab", "patient_id": BOB, "title": "Bob's labs",
             "record_type": "lab_result", "record_date": datetime(2024, 1, 5), "is_deleted": False},
        ])
        conn.execute(portal_users.insert(), [
            {"display_name": "Alice", "role": "patient", "patient_id": ALICE, "doctor_id": None,
             "api_key": KEYS["alice"], "is_active": True},
            {"display_name": "Bob", "role": "patient", "patient_id": BOB, "doctor_id": None,
             "api_key": KEYS["bob"], "is_active": True},
            {"display_name": "Dr. House", "role": "doctor", "patient_id": None, "doctor_id": DR_HOUSE,
             "api_key": KEYS["house"], "is_active": True},
            {"display_name": "Dr. Grey", "role": "doctor", "patient_id": None, "doctor_id": DR_GREY,
             "api_key": KEYS["grey"], "is_active": True},
            {"display_name": "Gone", "role": "patient", "patient_id": BOB, "doctor_id": None,
             "api_key": KEYS["inactive"], "is_active": False},
        ])
    yield eng
    eng.dispose()


@pytest.fixture
def connections(engine):
    return ConnectionService.from_engine(engine)


@pytest.fixture
def sharing(engine, connections):
    return SharingService.from_engine(engine, connections)


@pytest.fixture
def gate(connections):
    return FeatureGate(connections)


@pytest.fixture
def approved(connections):
    """An approved Alice <-> Dr. House connection."""
    c = connections.request_connection(ALICE, DR_HOUSE)
    return connections.approve_connection(c.connection_id, DR_HOUSE)
