"""
User credential models for Preva.

A user is either a nurse (signs in with email) or a patient (signs in with
a username issued by their nurse and linked to exactly one patient record).
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Any

from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
  """User roles for access control."""

  NURSE = "nurse"
  PATIENT = "patient"


class ContactInfo(BaseModel):
  """Contact details shown to the other party of the care relationship."""

  phone: Optional[str] = None
  address: Optional[str] = None
  emergency_contact: Optional[str] = None

  def cleaned(self) -> "ContactInfo":
    """Trim every field and drop the empty ones."""
    values = {}
    for key, value in self.model_dump().items():
      if value is not None and value.strip():
        values[key] = value.strip()
    return ContactInfo(**values)


class User(BaseModel):
  """
  Login credential plus profile.

  `password_hash` is excluded from dumps so a User can be returned to
  clients as-is.
  """

  model_config = ConfigDict(from_attributes=True, use_enum_values=False)

  id: str
  role: UserRole
  email: Optional[str] = None
  username: Optional[str] = None
  password_hash: str = Field(default="", exclude=True, repr=False)
  name: Optional[str] = None
  contact_info: ContactInfo = Field(default_factory=ContactInfo)
  patient_id: Optional[str] = None
  added_by_nurse_id: Optional[str] = None
  created_at: Optional[datetime] = None

  @property
  def is_nurse(self) -> bool:
    """Check if user is a nurse."""
    return self.role == UserRole.NURSE

  @property
  def is_patient(self) -> bool:
    """Check if user is a patient."""
    return self.role == UserRole.PATIENT

  @property
  def login(self) -> str:
    """The identifier the user signs in with."""
    return (self.email if self.is_nurse else self.username) or ""

  @classmethod
  def from_db(cls, data: dict[str, Any]) -> "User":
    """Create User from database row."""
    row = dict(data)
    if not isinstance(row.get("contact_info"), dict):
      row["contact_info"] = {}
    return cls.model_validate(row)
