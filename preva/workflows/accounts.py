"""
Registration, sign-in and profile workflows.
"""

from typing import Optional

import structlog

from preva.auth.middleware import Actor, create_session_token
from preva.auth.passwords import hash_password, verify_password
from preva.db.repositories import PatientRepository, UserRepository
from preva.errors import NotFound, Result, Unauthorized, ValidationError, workflow
from preva.models import ContactInfo
from preva.workflows.access import require_text

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS = "Invalid credentials."


@workflow
def register_nurse(email: str, password: str, name: Optional[str] = None) -> Result:
    """Self-registration for nurses."""
    address = require_text(email, "Email is required.").lower()
    if "@" not in address:
        raise ValidationError("Email is invalid.")
    if not password:
        raise ValidationError("Password is required.")

    users = UserRepository()
    if users.get_by_email(address):
        raise ValidationError("An account with this email already exists.")

    user = users.create_nurse(address, hash_password(password), name=name)
    logger.info("nurse_registered", user_id=user.id)
    return Result.success(user=user.model_dump(mode="json"))


@workflow
def sign_in(password: str, email: Optional[str] = None, username: Optional[str] = None) -> Result:
    """
    Check credentials and issue a session token.

    Nurses sign in by email, patients by username.
    """
    if not password:
        raise Unauthorized(INVALID_CREDENTIALS)

    users = UserRepository()
    if email and email.strip():
        user = users.get_by_email(email)
    elif username and username.strip():
        user = users.get_by_username(username)
    else:
        raise ValidationError("Email or username is required.")

    if user is None or not verify_password(password, user.password_hash):
        raise Unauthorized(INVALID_CREDENTIALS)

    logger.info("signed_in", user_id=user.id, role=user.role.value)
    return Result.success(token=create_session_token(user), user=user.model_dump(mode="json"))


@workflow
def get_profile(actor: Actor) -> Result:
    """
    The signed-in user, plus the other side of the care relationship.

    Patients also get their nurse's contact info.
    """
    users = UserRepository()
    user = users.get_by_id(actor.id)
    if user is None:
        raise NotFound("User not found.")

    profile = {"user": user.model_dump(mode="json")}
    if user.is_patient and user.added_by_nurse_id:
        nurse = users.get_by_id(user.added_by_nurse_id)
        profile["nurse"] = {
            "name": nurse.name if nurse else None,
            "contact_info": nurse.contact_info.model_dump() if nurse else None,
        }
    if user.is_patient and user.patient_id:
        patient = PatientRepository().get_by_id(user.patient_id)
        profile["patient_name"] = patient.name if patient else None
    return Result.success(**profile)


@workflow
def update_my_contact_info(actor: Actor, contact_info: ContactInfo) -> Result:
    """Replace the signed-in user's contact info."""
    user = UserRepository().update_contact_info(actor.id, contact_info.cleaned())
    if user is None:
        raise NotFound("User not found.")
    return Result.success(user=user.model_dump(mode="json"))
