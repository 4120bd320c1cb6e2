"""
Gates for features that need an approved patient/doctor relationship.

Appointments, prescriptions, ratings and messages own their own rules;
all they ask here is whether the pair is currently connected.
"""

from medconnect.config import GATED_FEATURES
from medconnect.errors import ConsentError, ErrorKind


class FeatureGate:
    """Read-only check in front of booking, prescribing, rating and messaging."""

    def __init__(self, connections):
        # Anything with is_approved(patient_id, doctor_id) -> bool.
        self.connections = connections

    def allowed(self, feature: str, patient_id: int, doctor_id: int) -> bool:
        if feature not in GATED_FEATURES:
            raise ValueError(f"Unknown gated feature '{feature}'.")
        return bool(self.connections.is_approved(patient_id, doctor_id))

    def require(self, feature: str, patient_id: int, doctor_id: int) -> None:
        if not self.allowed(feature, patient_id, doctor_id):
            raise ConsentError(
                ErrorKind.NOT_APPROVED,
                GATED_FEATURES[feature],
                {"feature": feature, "patient_id": patient_id, "doctor_id": doctor_id},
            )

    def can_book_appointment(self, patient_id: int, doctor_id: int) -> bool:
        return self.allowed("appointment", patient_id, doctor_id)

    def can_prescribe(self, patient_id: int, doctor_id: int) -> bool:
        return self.allowed("prescription", patient_id, doctor_id)

    def can_rate(self, patient_id: int, doctor_id: int) -> bool:
        return self.allowed("rating", patient_id, doctor_id)

    def can_message(self, patient_id: int, doctor_id: int) -> bool:
        return self.allowed("message", patient_id, doctor_id)
