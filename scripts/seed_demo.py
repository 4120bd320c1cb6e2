#!/usr/bin/env python3
"""
Seed a MedConnect database with synthetic patients, doctors, records and
portal users. Prints the generated access keys at the end.

Usage: DB_URI=sqlite:///medconnect.db python scripts/seed_demo.py
"""

import random
import uuid
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy import select

from generate_api_key import generate_api_key
from medconnect.database import (
    create_schema,
    doctors,
    init_engine,
    medical_records,
    patients,
    portal_users,
)

# --------------------------------------------------------------------
# CONFIG
# --------------------------------------------------------------------
NUM_DOCTORS = 8
NUM_PATIENTS = 20
RECORDS_PER_PATIENT = (1, 6)          # min, max
VERIFIED_RATIO = 0.75
DELETED_RATIO = 0.1

RECORD_TYPES = ["lab_result", "x_ray", "prescription", "doctor_note", "imaging_report", "other"]
SPECIALTIES = ["cardiology", "dermatology", "family medicine", "neurology", "pediatrics"]

fake = Faker()
random.seed(42)
Faker.seed(42)


# --------------------------------------------------------------------
# HELPERS
# --------------------------------------------------------------------
def random_bool(p_true=0.5):
    return random.random() < p_true


def random_datetime_within(days_back=365):
    now = datetime.utcnow()
    delta = timedelta(days=random.randint(0, days_back), seconds=random.randint(0, 86400))
    return now - delta


# --------------------------------------------------------------------
# SEED FUNCTIONS
# --------------------------------------------------------------------
def seed_doctors(conn, n=NUM_DOCTORS):
    rows = [
        {
            "display_name": f"Dr. {fake.first_name()} {fake.last_name()}",
            "specialty": random.choice(SPECIALTIES),
            "verified": random_bool(VERIFIED_RATIO),
        }
        for _ in range(n)
    ]
    conn.execute(doctors.insert(), rows)
    return conn.execute(select(doctors.c.doctor_id)).scalars().all()


def seed_patients(conn, n=NUM_PATIENTS):
    rows = [{"display_name": f"{fake.first_name()} {fake.last_name()}"} for _ in range(n)]
    conn.execute(patients.insert(), rows)
    return conn.execute(select(patients.c.patient_id)).scalars().all()


def seed_records(conn, patient_ids):
    rows = []
    for pid in patient_ids:
        for _ in range(random.randint(*RECORDS_PER_PATIENT)):
            record_type = random.choice(RECORD_TYPES)
            rows.append(
                {
                    "record_id": uuid.uuid4().hex[:24],
                    "patient_id": pid,
                    "title": f"{record_type.replace('_', ' ').title()} – {fake.word()}",
                    "record_type": record_type,
                    "record_date": random_datetime_within(),
                    "is_deleted": random_bool(DELETED_RATIO),
                }
            )
    if rows:
        conn.execute(medical_records.insert(), rows)
    return len(rows)


def seed_portal_users(conn, patient_ids, doctor_ids):
    keys = []
    rows = []
    for pid in patient_ids:
        key = generate_api_key()
        rows.append({"display_name": fake.name(), "role": "patient", "patient_id": pid,
                     "doctor_id": None, "api_key": key, "is_active": True})
        keys.append(("patient", pid, key))
    for did in doctor_ids:
        key = generate_api_key()
        rows.append({"display_name": f"Dr. {fake.last_name()}", "role": "doctor", "patient_id": None,
                     "doctor_id": did, "api_key": key, "is_active": True})
        keys.append(("doctor", did, key))
    conn.execute(portal_users.insert(), rows)
    return keys


# --------------------------------------------------------------------
# MAIN
# --------------------------------------------------------------------
def main():
    engine = init_engine()
    create_schema(engine)

    with engine.begin() as conn:
        print("Seeding doctors...")
        doctor_ids = seed_doctors(conn)

        print("Seeding patients...")
        patient_ids = seed_patients(conn)

        print("Seeding medical records...")
        count = seed_records(conn, patient_ids)
        print(f"  {count} records")

        print("Seeding portal users...")
        keys = seed_portal_users(conn, patient_ids, doctor_ids)

    print("\nAccess keys:")
    for role, profile_id, key in keys:
        print(f"  {role:<8} id={profile_id:<4} {key}")
    print("Done!")


if __name__ == "__main__":
    main()
