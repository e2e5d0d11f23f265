"""
Patient record workflows: adding patients with their login, the nurse's
dashboard list, the detail view, and blood pressure readings.
"""

from datetime import date
from typing import Any, Optional

import structlog

from preva.auth.middleware import Actor
from preva.auth.passwords import hash_password
from preva.auth.policy import require_nurse
from preva.db.repositories import PatientRepository, UserRepository, VisitRepository
from preva.errors import Result, ValidationError, workflow
from preva.models import BloodPressureReading, ContactInfo, Medication, initials_for
from preva.workflows.access import load_patient, require_text

logger = structlog.get_logger(__name__)


@workflow
def add_patient(
    actor: Actor,
    name: str,
    age: int,
    username: str,
    password: str,
    conditions: Optional[list[str]] = None,
    medications: Optional[list[dict[str, Any]]] = None,
    prior_hospitalizations: int = 0,
    contact_info: Optional[ContactInfo] = None,
) -> Result:
    """
    Create a patient and the username/password they sign in with.

    The two are created together; if the credential cannot be written the
    new patient record is removed again.
    """
    require_nurse(actor, "You must be signed in as a nurse to add patients.")
    display_name = require_text(name, "Name is required.")
    login = require_text(username, "Username is required.").lower()
    if not password:
        raise ValidationError("Password is required.")

    users = UserRepository()
    if users.get_by_username(login):
        raise ValidationError("This username is already taken.")

    meds = [
        Medication.model_validate(m).model_dump()
        for m in (medications or [])
        if str(m.get("name") or "").strip()
    ]
    patients = PatientRepository()
    patient = patients.create(
        nurse_id=actor.id,
        name=display_name,
        age=max(0, int(age or 0)),
        conditions=[c.strip() for c in (conditions or []) if c and c.strip()],
        medications=meds,
        prior_hospitalizations=max(0, int(prior_hospitalizations or 0)),
        image_initials=initials_for(display_name),
    )

    try:
        user = users.create_patient_user(
            username=login,
            password_hash=hash_password(password),
            nurse_id=actor.id,
            patient_id=patient.id,
            contact_info=contact_info.cleaned() if contact_info else None,
        )
    except Exception:
        patients.delete(patient.id)
        raise

    patient = patients.update(patient.id, user_id=user.id) or patient
    logger.info("patient_added", patient_id=patient.id, nurse_id=actor.id)
    return Result.success(patient=patient.model_dump(mode="json"), user=user.model_dump(mode="json"))


@workflow
def list_patients(actor: Actor) -> Result:
    """The nurse's patients, highest risk first."""
    require_nurse(actor)
    patients = PatientRepository().list_by_nurse(actor.id)
    return Result.success(patients=[p.model_dump(mode="json") for p in patients])


@workflow
def get_patient_detail(actor: Actor, patient_id: str) -> Result:
    """
    Everything the patient page shows: the record, visit history, and for
    nurses the patient's login name and contact info.
    """
    patient = load_patient(actor, patient_id)
    visits = VisitRepository().list_by_patient(patient.id)

    detail: dict[str, Any] = {
        "patient": patient.model_dump(mode="json"),
        "visits": [v.model_dump(mode="json") for v in visits],
        "risk_history": [
            {"date": v.date.isoformat(), "score": v.risk_score_after}
            for v in reversed(visits)
        ],
    }
    if actor.is_nurse:
        login = UserRepository().get_by_patient_id(patient.id)
        detail["credentials"] = {
            "username": login.username if login else None,
            "contact_info": login.contact_info.model_dump() if login else None,
        }
    return Result.success(**detail)


@workflow
def record_blood_pressure(actor: Actor, patient_id: str, systolic: int, diastolic: int) -> Result:
    """Append a blood pressure reading taken today."""
    require_nurse(actor, "You must be signed in as a nurse to record vitals.")
    try:
        reading = BloodPressureReading(date=date.today(), systolic=systolic, diastolic=diastolic)
    except ValueError:
        raise ValidationError(
            "Systolic and diastolic must be valid numbers in a reasonable range."
        ) from None

    patients = PatientRepository()
    patient = load_patient(actor, patient_id, repo=patients)
    updated = patients.append_bp_reading(patient, reading) or patient
    return Result.success(bp_history=[r.model_dump(mode="json") for r in updated.bp_history])
