"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Roles ────────────────────────────────────────────────────────────
PATIENT = "patient"
DOCTOR = "doctor"
ROLES = {PATIENT, DOCTOR}

# ── Connection lifecycle ─────────────────────────────────────────────
PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
REVOKED = "revoked"
CONNECTION_STATUSES = (PENDING, APPROVED, REJECTED, REVOKED)

# Legal moves: current status -> statuses it may move to.
TRANSITIONS = {
    PENDING: {APPROVED, REJECTED},
    APPROVED: {REVOKED},
    REJECTED: {PENDING},
    REVOKED: {PENDING},
}

# ── Features gated on an approved connection ─────────────────────────
GATED_FEATURES = {
    "appointment": "You can only book appointments with connected doctors",
    "prescription": "You can only prescribe to connected patients",
    "rating": "You can only rate doctors you are connected with",
    "message": "You can only message users you are connected with",
}

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = 24


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
