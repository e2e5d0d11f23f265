"""
Loading helpers that combine a lookup with the authorization policy.
"""

from datetime import datetime, timezone
from typing import Optional

from preva.auth.middleware import Actor
from preva.auth.policy import authorize_patient, authorize_patient_id
from preva.db.repositories import PatientRepository
from preva.errors import NotFound, ValidationError
from preva.models import Patient


def load_patient(
    actor: Actor,
    patient_id: str,
    any_nurse: bool = False,
    repo: Optional[PatientRepository] = None,
) -> Patient:
    """Fetch a patient the actor is allowed to act on."""
    authorize_patient_id(actor, patient_id)
    patient = (repo or PatientRepository()).get_by_id(patient_id)
    if patient is None:
        raise NotFound("Patient not found.")
    authorize_patient(actor, patient, any_nurse=any_nurse)
    return patient


def require_text(value: Optional[str], message: str) -> str:
    """Trim a free-text field and reject it when blank."""
    text = (value or "").strip()
    if not text:
        raise ValidationError(message)
    return text


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
