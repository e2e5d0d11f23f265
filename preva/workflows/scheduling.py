"""
Appointment scheduling.

Nurses create, move and delete appointments for their own patients; patients
read their own. Overlapping appointments are allowed and there is no
recurrence. Listing joins patient names from a single batched lookup.

`widen_range` is for API consumers that pick the window to request; the
server itself never pads a range.
"""

from datetime import datetime, timedelta
from typing import Optional

import structlog

from preva.auth.middleware import Actor
from preva.auth.policy import authorize_patient_id, can_manage_appointment, require_nurse
from preva.db.repositories import AppointmentRepository, PatientRepository
from preva.errors import NotFound, Result, Unauthorized, ValidationError, workflow
from preva.models import Appointment
from preva.workflows.access import as_utc, load_patient

logger = structlog.get_logger(__name__)

DEFAULT_TITLE = "Visit"


def widen_range(start: datetime, end: datetime, margin_days: int = 7) -> tuple[datetime, datetime]:
    """
    Pad a visible calendar window on both sides.

    Clients fetch the padded window so small navigation steps stay inside
    data they already have.
    """
    margin = timedelta(days=margin_days)
    return start - margin, end + margin


def _checked_range(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = as_utc(start), as_utc(end)
    if end <= start:
        raise ValidationError("End must be after start.")
    return start, end


def with_patient_names(
    appointments: list[Appointment],
    patients: Optional[PatientRepository] = None,
) -> list[Appointment]:
    """Attach patient display names using one lookup for all distinct patients."""
    if not appointments:
        return []
    names = (patients or PatientRepository()).get_names({a.patient_id for a in appointments})
    return [a.model_copy(update={"patient_name": names.get(a.patient_id)}) for a in appointments]


@workflow
def list_appointments(
    actor: Actor,
    start: datetime,
    end: datetime,
    patient_id: Optional[str] = None,
) -> Result:
    """Appointments overlapping [start, end) that the actor may see."""
    start, end = _checked_range(start, end)
    repo = AppointmentRepository()

    if actor.is_nurse:
        if patient_id is not None:
            load_patient(actor, patient_id)
        appointments = repo.list_overlapping(start, end, nurse_id=actor.id, patient_id=patient_id)
    elif actor.is_patient:
        if patient_id is not None:
            authorize_patient_id(actor, patient_id)
        if not actor.patient_id:
            raise Unauthorized("No patient record linked.")
        appointments = repo.list_overlapping(start, end, patient_id=actor.patient_id)
    else:
        raise Unauthorized("Unauthorized.")

    enriched = with_patient_names(appointments)
    return Result.success(appointments=[a.model_dump(mode="json") for a in enriched])


@workflow
def create_appointment(
    actor: Actor,
    patient_id: str,
    start: datetime,
    end: datetime,
    title: Optional[str] = None,
) -> Result:
    """Schedule a visit with one of the nurse's patients."""
    require_nurse(actor)
    start, end = _checked_range(start, end)
    patient = load_patient(actor, patient_id)

    appointment = AppointmentRepository().create(
        nurse_id=actor.id,
        patient_id=patient.id,
        start=start,
        end=end,
        title=(title or "").strip() or DEFAULT_TITLE,
    )
    logger.info("appointment_created", appointment_id=appointment.id, patient_id=patient.id)
    appointment = appointment.model_copy(update={"patient_name": patient.name})
    return Result.success(appointment=appointment.model_dump(mode="json"))


def _owned_appointment(actor: Actor, appointment_id: str, repo: AppointmentRepository) -> Appointment:
    require_nurse(actor)
    appointment = repo.get_by_id(appointment_id)
    if appointment is None:
        raise NotFound("Appointment not found.")
    if not can_manage_appointment(actor, appointment):
        raise Unauthorized("Unauthorized.")
    return appointment


@workflow
def update_appointment(actor: Actor, appointment_id: str, start: datetime, end: datetime) -> Result:
    """Move or resize an appointment."""
    start, end = _checked_range(start, end)
    repo = AppointmentRepository()
    _owned_appointment(actor, appointment_id, repo)

    updated = repo.update_times(appointment_id, start, end)
    if updated is None:
        raise NotFound("Appointment not found.")
    return Result.success(appointment=updated.model_dump(mode="json"))


@workflow
def delete_appointment(actor: Actor, appointment_id: str) -> Result:
    """Remove an appointment."""
    repo = AppointmentRepository()
    _owned_appointment(actor, appointment_id, repo)

    if not repo.delete(appointment_id):
        raise NotFound("Appointment not found.")
    logger.info("appointment_deleted", appointment_id=appointment_id)
    return Result.success(id=appointment_id)
