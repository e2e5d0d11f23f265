"""
Repository classes for database operations.

Each repository handles reads and writes for one table and returns typed
records, so nothing above this layer touches raw rows.
"""

from datetime import date, datetime, timezone
from typing import Optional, Any, Iterable
from uuid import UUID, uuid4

from preva.db.client import get_client, TableSource
from preva.models import (
  Appointment,
  BloodPressureReading,
  ChatMessage,
  ContactInfo,
  Patient,
  PatientMessage,
  User,
  UserRole,
  Visit,
)


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def to_iso(value: datetime | date) -> str:
  """Serialize a timestamp with a fixed layout so stored values sort as text."""
  if isinstance(value, datetime):
    if value.tzinfo is None:
      value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
  return value.isoformat()


def is_valid_id(value: Any) -> bool:
  """Check that an id is a well-formed UUID string."""
  if not isinstance(value, str):
    return False
  try:
    UUID(value)
  except ValueError:
    return False
  return True


class BaseRepository:
  """Base class for all repositories."""

  table_name: str = ""

  def __init__(self, client: Optional[TableSource] = None):
    """
    Initialize repository with optional client.

    Args:
      client: Store connection to use. If None, uses the shared one.
    """
    self._client = client or get_client()

  @property
  def table(self):
    """Get the table reference."""
    return self._client.table(self.table_name)

  @staticmethod
  def _first(response) -> Optional[dict]:
    return response.data[0] if response.data else None

  def _insert(self, data: dict) -> dict:
    data = {"id": str(uuid4()), **data}
    response = self.table.insert(data).execute()
    return response.data[0] if response.data else data


class UserRepository(BaseRepository):
  """Repository for login credentials."""

  table_name = "users"

  def get_by_id(self, user_id: str) -> Optional[User]:
    """Get user by ID."""
    if not is_valid_id(user_id):
      return None
    row = self._first(self.table.select("*").eq("id", user_id).limit(1).execute())
    return User.from_db(row) if row else None

  def get_by_email(self, email: str) -> Optional[User]:
    """Get user by email (case-insensitive)."""
    row = self._first(self.table.select("*").eq("email", email.strip().lower()).limit(1).execute())
    return User.from_db(row) if row else None

  def get_by_username(self, username: str) -> Optional[User]:
    """Get user by username (case-insensitive)."""
    row = self._first(
      self.table.select("*").eq("username", username.strip().lower()).limit(1).execute()
    )
    return User.from_db(row) if row else None

  def get_by_patient_id(self, patient_id: str) -> Optional[User]:
    """Get the credential paired with a patient record."""
    if not is_valid_id(patient_id):
      return None
    row = self._first(self.table.select("*").eq("patient_id", patient_id).limit(1).execute())
    return User.from_db(row) if row else None

  def create_nurse(self, email: str, password_hash: str, name: Optional[str] = None) -> User:
    """Create a nurse credential."""
    row = self._insert({
      "role": UserRole.NURSE.value,
      "email": email.strip().lower(),
      "password_hash": password_hash,
      "name": name.strip() if name else None,
      "contact_info": {},
      "created_at": to_iso(utcnow()),
    })
    return User.from_db(row)

  def create_patient_user(
    self,
    username: str,
    password_hash: str,
    nurse_id: str,
    patient_id: str,
    contact_info: Optional[ContactInfo] = None,
  ) -> User:
    """Create the login credential for a patient record."""
    row = self._insert({
      "role": UserRole.PATIENT.value,
      "username": username.strip().lower(),
      "password_hash": password_hash,
      "added_by_nurse_id": nurse_id,
      "patient_id": patient_id,
      "contact_info": (contact_info or ContactInfo()).model_dump(exclude_none=True),
      "created_at": to_iso(utcnow()),
    })
    return User.from_db(row)

  def update_contact_info(self, user_id: str, contact_info: ContactInfo) -> Optional[User]:
    """Replace a user's contact info."""
    if not is_valid_id(user_id):
      return None
    response = (
      self.table.update({"contact_info": contact_info.model_dump(exclude_none=True)})
      .eq("id", user_id)
      .execute()
    )
    row = self._first(response)
    return User.from_db(row) if row else None


class PatientRepository(BaseRepository):
  """Repository for patient records."""

  table_name = "patients"

  def get_by_id(self, patient_id: str) -> Optional[Patient]:
    """Get patient by ID."""
    if not is_valid_id(patient_id):
      return None
    row = self._first(self.table.select("*").eq("id", patient_id).limit(1).execute())
    return Patient.model_validate(row) if row else None

  def list_by_nurse(self, nurse_id: str) -> list[Patient]:
    """Get a nurse's patients, highest risk first."""
    response = (
      self.table.select("*")
      .eq("added_by_nurse_id", nurse_id)
      .order("risk_score", desc=True)
      .execute()
    )
    return [Patient.model_validate(row) for row in response.data or []]

  def get_owned_ids(self, patient_ids: Iterable[str], nurse_id: str) -> set[str]:
    """Subset of `patient_ids` that belong to the nurse."""
    ids = sorted({pid for pid in patient_ids if is_valid_id(pid)})
    if not ids:
      return set()
    response = (
      self.table.select("id")
      .in_("id", ids)
      .eq("added_by_nurse_id", nurse_id)
      .execute()
    )
    return {row["id"] for row in response.data or []}

  def get_names(self, patient_ids: Iterable[str]) -> dict[str, str]:
    """Display names for many patients in one query."""
    ids = sorted({pid for pid in patient_ids if is_valid_id(pid)})
    if not ids:
      return {}
    response = self.table.select("id, name").in_("id", ids).execute()
    return {row["id"]: row["name"] for row in response.data or []}

  def create(
    self,
    nurse_id: str,
    name: str,
    age: int,
    conditions: list[str],
    medications: list[dict],
    prior_hospitalizations: int,
    image_initials: str,
    **kwargs,
  ) -> Patient:
    """Create a new patient with a neutral risk state."""
    row = self._insert({
      "name": name,
      "age": age,
      "conditions": conditions,
      "medications": medications,
      "prior_hospitalizations": prior_hospitalizations,
      "risk_score": 0,
      "risk_trend": "stable",
      "last_visit_date": None,
      "bp_history": [],
      "status": "active",
      "image_initials": image_initials,
      "added_by_nurse_id": nurse_id,
      "created_at": to_iso(utcnow()),
      **kwargs,
    })
    return Patient.model_validate(row)

  def update(self, patient_id: str, **kwargs) -> Optional[Patient]:
    """Update patient fields."""
    response = self.table.update(kwargs).eq("id", patient_id).execute()
    row = self._first(response)
    return Patient.model_validate(row) if row else None

  def append_bp_reading(self, patient: Patient, reading: BloodPressureReading) -> Optional[Patient]:
    """Append a reading to the patient's blood pressure history."""
    history = [r.model_dump(mode="json") for r in patient.bp_history]
    history.append(reading.model_dump(mode="json"))
    return self.update(patient.id, bp_history=history)

  def delete(self, patient_id: str) -> bool:
    """Delete a patient. Only used to roll back a failed add."""
    response = self.table.delete().eq("id", patient_id).execute()
    return len(response.data) > 0 if response.data else False


class VisitRepository(BaseRepository):
  """Repository for visit records. Visits are insert-only."""

  table_name = "visits"

  def create(
    self,
    patient_id: str,
    nurse_id: str,
    clinical_note: str,
    risk_score_before: int,
    risk_score_after: int,
    risk_factors: list[dict],
    soap_note: dict,
    voice_summary: str,
    visit_date: Optional[date] = None,
  ) -> Visit:
    """Insert a new visit record."""
    row = self._insert({
      "patient_id": patient_id,
      "nurse_id": nurse_id,
      "date": (visit_date or date.today()).isoformat(),
      "clinical_note": clinical_note,
      "risk_score_before": risk_score_before,
      "risk_score_after": risk_score_after,
      "risk_factors": risk_factors,
      "soap_note": soap_note,
      "voice_summary": voice_summary,
      "created_at": to_iso(utcnow()),
    })
    return Visit.model_validate(row)

  def list_by_patient(self, patient_id: str, limit: Optional[int] = None) -> list[Visit]:
    """Get visits for a patient, most recent first."""
    query = (
      self.table.select("*")
      .eq("patient_id", patient_id)
      .order("created_at", desc=True)
    )
    if limit:
      query = query.limit(limit)
    response = query.execute()
    return [Visit.model_validate(row) for row in response.data or []]


class AppointmentRepository(BaseRepository):
  """Repository for calendar appointments."""

  table_name = "appointments"

  def get_by_id(self, appointment_id: str) -> Optional[Appointment]:
    """Get appointment by ID."""
    if not is_valid_id(appointment_id):
      return None
    row = self._first(self.table.select("*").eq("id", appointment_id).limit(1).execute())
    return Appointment.model_validate(row) if row else None

  def list_overlapping(
    self,
    start: datetime,
    end: datetime,
    nurse_id: Optional[str] = None,
    patient_id: Optional[str] = None,
  ) -> list[Appointment]:
    """Appointments that overlap [start, end), earliest first."""
    query = (
      self.table.select("*")
      .lt("start", to_iso(end))
      .gt("end", to_iso(start))
    )
    if nurse_id:
      query = query.eq("nurse_id", nurse_id)
    if patient_id:
      query = query.eq("patient_id", patient_id)
    response = query.order("start").execute()
    return [Appointment.model_validate(row) for row in response.data or []]

  def create(self, nurse_id: str, patient_id: str, start: datetime, end: datetime, title: str) -> Appointment:
    """Create an appointment."""
    row = self._insert({
      "nurse_id": nurse_id,
      "patient_id": patient_id,
      "start": to_iso(start),
      "end": to_iso(end),
      "title": title,
    })
    return Appointment.model_validate(row)

  def update_times(self, appointment_id: str, start: datetime, end: datetime) -> Optional[Appointment]:
    """Move or resize an appointment."""
    response = (
      self.table.update({"start": to_iso(start), "end": to_iso(end)})
      .eq("id", appointment_id)
      .execute()
    )
    row = self._first(response)
    return Appointment.model_validate(row) if row else None

  def delete(self, appointment_id: str) -> bool:
    """Delete an appointment."""
    response = self.table.delete().eq("id", appointment_id).execute()
    return len(response.data) > 0 if response.data else False


class ChatMessageRepository(BaseRepository):
  """Repository for the nurse/patient chat log."""

  table_name = "chat_messages"

  def create(self, patient_id: str, sender_id: str, sender_role: UserRole, text: str) -> ChatMessage:
    """Append a chat message."""
    row = self._insert({
      "patient_id": patient_id,
      "sender_id": sender_id,
      "sender_role": sender_role.value,
      "text": text,
      "read": False,
      "created_at": to_iso(utcnow()),
    })
    return ChatMessage.model_validate(row)

  def list_for_patient(
    self,
    patient_id: str,
    after: Optional[datetime] = None,
    limit: int = 200,
  ) -> list[ChatMessage]:
    """Messages in a thread, oldest first, optionally only those after a timestamp."""
    query = self.table.select("*").eq("patient_id", patient_id)
    if after is not None:
      query = query.gt("created_at", to_iso(after))
    response = query.order("created_at").limit(limit).execute()
    return [ChatMessage.model_validate(row) for row in response.data or []]

  def unread_counts(self, patient_ids: Iterable[str], sender_role: UserRole) -> dict[str, int]:
    """
    Count unread messages from `sender_role`, grouped by patient.

    The grouping runs in the database (`unread_chat_counts`), so the result
    is not subject to the row cap on plain selects.
    """
    ids = sorted({pid for pid in patient_ids if is_valid_id(pid)})
    if not ids:
      return {}
    response = self._client.rpc(
      "unread_chat_counts",
      {"patient_ids": ids, "sender": sender_role.value},
    ).execute()
    return {row["patient_id"]: int(row["unread"]) for row in response.data or []}

  def mark_read(self, patient_id: str, sender_role: UserRole) -> int:
    """Mark every unread message from `sender_role` in a thread as read."""
    response = (
      self.table.update({"read": True})
      .eq("patient_id", patient_id)
      .eq("sender_role", sender_role.value)
      .eq("read", False)
      .execute()
    )
    return len(response.data or [])


class PatientMessageRepository(BaseRepository):
  """Repository for patient voice self-reports."""

  table_name = "patient_messages"

  def get_by_id(self, message_id: str) -> Optional[PatientMessage]:
    """Get a message by ID."""
    if not is_valid_id(message_id):
      return None
    row = self._first(self.table.select("*").eq("id", message_id).limit(1).execute())
    return PatientMessage.model_validate(row) if row else None

  def create(
    self,
    patient_id: str,
    message_type: str,
    transcript: str,
    symptoms: Optional[list[str]] = None,
    ai_summary: Optional[str] = None,
  ) -> PatientMessage:
    """Store a self-report."""
    data = {
      "patient_id": patient_id,
      "type": message_type,
      "transcript": transcript,
      "read": False,
      "created_at": to_iso(utcnow()),
    }
    if symptoms is not None:
      data["symptoms"] = symptoms
    if ai_summary is not None:
      data["ai_summary"] = ai_summary
    return PatientMessage.model_validate(self._insert(data))

  def list_for_patient(self, patient_id: str, limit: int = 50) -> list[PatientMessage]:
    """A patient's messages, newest first."""
    response = (
      self.table.select("*")
      .eq("patient_id", patient_id)
      .order("created_at", desc=True)
      .limit(limit)
      .execute()
    )
    return [PatientMessage.model_validate(row) for row in response.data or []]

  def set_reply(self, message_id: str, reply: str) -> Optional[PatientMessage]:
    """
    Attach the nurse reply if none exists yet.

    Returns None when the message already has a reply, so the write-once
    rule holds even if two replies race.
    """
    response = (
      self.table.update({"nurse_reply": reply, "nurse_reply_at": to_iso(utcnow())})
      .eq("id", message_id)
      .is_("nurse_reply", "null")
      .execute()
    )
    row = self._first(response)
    return PatientMessage.model_validate(row) if row else None

  def mark_read(self, patient_id: str) -> int:
    """Mark every unread message for a patient as read."""
    response = (
      self.table.update({"read": True})
      .eq("patient_id", patient_id)
      .eq("read", False)
      .execute()
    )
    return len(response.data or [])
