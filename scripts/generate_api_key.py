#!/usr/bin/env python3
"""
Generate API keys for portal users.
Creates secure random API keys that can be inserted into the portal_users table.
"""

import secrets
import string

def generate_api_key(prefix="mdc", length=32):
    """Generate a secure random API key."""
    chars = string.ascii_letters + string.digits
    random_part = ''.join(secrets.choice(chars) for _ in range(length))
    return f"{prefix}_{random_part}"


def generate_multiple_keys(count=5):
    """Generate multiple API keys."""
    return [generate_api_key() for _ in range(count)]


if __name__ == "__main__":
    print("=" * 70)
    print("MedConnect API Key Generator")
    print("=" * 70)
    print()

    print("Multiple API Keys (5):")
    print("-" * 70)
    for i, key in enumerate(generate_multiple_keys(5), 1):
        print(f"  {i}. {key}")
    print()

    print("=" * 70)
    print("SQL Insert Example:")
    print("=" * 70)
    print()
    print("-- For a Patient (patient_id must exist in patients):")
    print(f"""
INSERT INTO portal_users
    (display_name, role, patient_id, doctor_id, api_key, is_active)
VALUES
    ('Jane Doe', 'patient', 1, NULL, '{generate_api_key()}', 1);
""")

    print("-- For a Doctor (doctor_id must exist in doctors):")
    print(f"""
INSERT INTO portal_users
    (display_name, role, patient_id, doctor_id, api_key, is_active)
VALUES
    ('Dr. John Smith', 'doctor', NULL, 1, '{generate_api_key()}', 1);
""")

    print("=" * 70)
    print("Note: Run these SQL statements in your database to create users.")
    print("=" * 70)
