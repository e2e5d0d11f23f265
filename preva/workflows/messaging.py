"""
Nurse/patient chat and patient voice self-reports.

Both are append-only logs scoped to one patient. Clients poll for new chat
lines with `after`, so a refresh never re-downloads the thread.

An analyzed self-report is always stored, even when the model call fails:
the message then carries no symptoms and a placeholder summary.
"""

from datetime import datetime
from typing import Iterable, Optional

import structlog

from preva.auth.middleware import Actor
from preva.auth.policy import require_nurse, require_patient
from preva.db.repositories import (
    ChatMessageRepository,
    PatientMessageRepository,
    PatientRepository,
)
from preva.errors import NotFound, Result, Unauthorized, ValidationError, workflow
from preva.llm import PromptBuilder, get_client as get_llm
from preva.models import PatientMessageAnalysis, PatientMessageType, UserRole
from preva.workflows.access import as_utc, load_patient, require_text

logger = structlog.get_logger(__name__)

CHAT_PAGE_SIZE = 200
PATIENT_MESSAGE_PAGE_SIZE = 50
ANALYSIS_UNAVAILABLE = "(AI analysis unavailable)"

EXTRACTION_SYSTEM = (
    "Extract symptoms and summarize the patient's self-reported condition. "
    "Use only what the patient says. Do not infer or add anything."
)


def _counterpart(role: UserRole) -> UserRole:
    return UserRole.PATIENT if role == UserRole.NURSE else UserRole.NURSE


def _thread_patient_id(actor: Actor, patient_id: Optional[str]) -> str:
    """Resolve the chat thread an actor may use."""
    if actor.is_patient and patient_id is None:
        if not actor.patient_id:
            raise Unauthorized("No patient record linked.")
        return actor.patient_id
    if patient_id is None:
        raise ValidationError("Patient is required.")
    return load_patient(actor, patient_id).id


# =============================================================================
# CHAT
# =============================================================================


@workflow
def send_chat_message(actor: Actor, patient_id: Optional[str], text: str) -> Result:
    """Append a line to a patient's chat thread."""
    thread = _thread_patient_id(actor, patient_id)
    body = require_text(text, "Empty message.")
    message = ChatMessageRepository().create(thread, actor.id, actor.role, body)
    return Result.success(message=message.model_dump(mode="json"))


@workflow
def fetch_chat_messages(
    actor: Actor,
    patient_id: Optional[str],
    after: Optional[datetime] = None,
) -> Result:
    """Chat lines oldest first; only those newer than `after` when given."""
    thread = _thread_patient_id(actor, patient_id)
    messages = ChatMessageRepository().list_for_patient(
        thread,
        after=as_utc(after) if after else None,
        limit=CHAT_PAGE_SIZE,
    )
    return Result.success(messages=[m.model_dump(mode="json") for m in messages])


@workflow
def unread_counts(actor: Actor, patient_ids: Iterable[str]) -> Result:
    """
    Unread patient-authored messages per patient, for a nurse's patient list.

    Patients with nothing unread are left out, as are ids the nurse does not own.
    """
    require_nurse(actor)
    owned = PatientRepository().get_owned_ids(patient_ids, actor.id)
    counts = ChatMessageRepository().unread_counts(owned, UserRole.PATIENT)
    return Result.success(counts={pid: n for pid, n in counts.items() if n > 0})


@workflow
def mark_chat_read(actor: Actor, patient_id: Optional[str]) -> Result:
    """Mark the other party's messages in a thread as read."""
    thread = _thread_patient_id(actor, patient_id)
    updated = ChatMessageRepository().mark_read(thread, _counterpart(actor.role))
    return Result.success(updated=updated)


# =============================================================================
# PATIENT SELF-REPORTS
# =============================================================================


def _extract_symptoms(transcript: str) -> tuple[list[str], str]:
    """Run symptom extraction, degrading to a placeholder on any failure."""
    try:
        prompt = PromptBuilder().render("patient_message.md", transcript=transcript)
        analysis = get_llm().generate_json(prompt, PatientMessageAnalysis, system=EXTRACTION_SYSTEM)
    except Exception as e:
        logger.warning("patient_message_analysis_failed", error=str(e))
        return [], ANALYSIS_UNAVAILABLE
    symptoms = [s.strip() for s in analysis.symptoms if isinstance(s, str) and s.strip()]
    return symptoms, analysis.summary.strip()


@workflow
def submit_patient_message(actor: Actor, transcript: str, mode: str = "raw") -> Result:
    """Store a patient's self-report, raw or with extracted symptoms."""
    require_patient(actor, "Only patients can submit messages.")
    if not actor.patient_id:
        raise NotFound("No patient record linked.")
    text = require_text(transcript, "No text provided.")
    try:
        message_type = PatientMessageType(mode)
    except ValueError:
        raise ValidationError("Mode must be 'raw' or 'analyzed'.") from None

    symptoms, summary = None, None
    if message_type == PatientMessageType.ANALYZED:
        symptoms, summary = _extract_symptoms(text)

    message = PatientMessageRepository().create(
        patient_id=actor.patient_id,
        message_type=message_type.value,
        transcript=text,
        symptoms=symptoms,
        ai_summary=summary,
    )
    logger.info("patient_message_stored", patient_id=actor.patient_id, type=message_type.value)
    return Result.success(message=message.model_dump(mode="json"))


@workflow
def fetch_patient_messages(actor: Actor, patient_id: str) -> Result:
    """A patient's self-reports, newest first."""
    patient = load_patient(actor, patient_id)
    messages = PatientMessageRepository().list_for_patient(patient.id, limit=PATIENT_MESSAGE_PAGE_SIZE)
    return Result.success(messages=[m.model_dump(mode="json") for m in messages])


@workflow
def reply_to_patient_message(actor: Actor, message_id: str, reply: str) -> Result:
    """Attach the nurse's single reply to a self-report."""
    require_nurse(actor, "Only nurses can reply.")
    text = require_text(reply, "Reply cannot be empty.")

    repo = PatientMessageRepository()
    message = repo.get_by_id(message_id)
    if message is None:
        raise NotFound("Message not found.")
    load_patient(actor, message.patient_id)
    if message.has_reply:
        raise ValidationError("This message already has a reply.")

    updated = repo.set_reply(message.id, text)
    if updated is None:
        raise ValidationError("This message already has a reply.")
    return Result.success(message=updated.model_dump(mode="json"))


@workflow
def mark_patient_messages_read(actor: Actor, patient_id: str) -> Result:
    """Mark all of a patient's self-reports as read by their nurse."""
    require_nurse(actor)
    patient = load_patient(actor, patient_id)
    updated = PatientMessageRepository().mark_read(patient.id)
    return Result.success(updated=updated)
