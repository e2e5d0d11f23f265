"""
Appointment model for the nurse's calendar.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Appointment(BaseModel):
  """A scheduled home visit. Overlaps are allowed; there is no recurrence."""

  model_config = ConfigDict(from_attributes=True)

  id: str
  patient_id: str
  nurse_id: str
  start: datetime
  end: datetime
  title: str = "Visit"

  # Read-side enrichment, not stored
  patient_name: Optional[str] = None
