"""
Authorization policy.

Every workflow checks access through these functions instead of branching
on the role itself. Ownership runs through the patient: a nurse may act on
patients whose `added_by_nurse_id` is theirs, and a patient only on the
record their credential is linked to.
"""

from preva.auth.middleware import Actor
from preva.errors import Unauthorized
from preva.models import Appointment, Patient


def can_access_patient(actor: Actor, patient: Patient, any_nurse: bool = False) -> bool:
  """
  Whether the actor may act on a patient and its sub-resources.

  `any_nurse` widens read access to every nurse, for the read-only care
  summaries.
  """
  if actor.is_nurse:
    return any_nurse or patient.added_by_nurse_id == actor.id
  if actor.is_patient:
    return actor.patient_id is not None and actor.patient_id == patient.id
  return False


def authorize_patient(actor: Actor, patient: Patient, any_nurse: bool = False) -> None:
  """Raise Unauthorized unless `can_access_patient` allows it."""
  if not can_access_patient(actor, patient, any_nurse=any_nurse):
    raise Unauthorized("Unauthorized.")


def authorize_patient_id(actor: Actor, patient_id: str) -> None:
  """Cheap pre-check for patients asking about a record other than their own."""
  if actor.is_patient and actor.patient_id != patient_id:
    raise Unauthorized("Unauthorized.")


def require_nurse(actor: Actor, message: str = "Unauthorized.") -> None:
  if not actor.is_nurse:
    raise Unauthorized(message)


def require_patient(actor: Actor, message: str = "Unauthorized.") -> None:
  if not actor.is_patient:
    raise Unauthorized(message)


def can_manage_appointment(actor: Actor, appointment: Appointment) -> bool:
  """Only the nurse who owns an appointment may change it."""
  return actor.is_nurse and appointment.nurse_id == actor.id
