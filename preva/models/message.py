"""
Messaging models: the nurse/patient chat thread and patient voice self-reports.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from preva.models.user import UserRole


class PatientMessageType(str, Enum):
  RAW = "raw"
  ANALYZED = "analyzed"


class ChatMessage(BaseModel):
  """One chat line. Only `read` changes after insert."""

  model_config = ConfigDict(from_attributes=True)

  id: str
  patient_id: str
  sender_id: str
  sender_role: UserRole
  text: str
  read: bool = False
  created_at: datetime


class PatientMessage(BaseModel):
  """
  A patient's self-report, transcribed from voice.

  `symptoms` and `ai_summary` are set only for analyzed messages. The nurse
  reply is write-once.
  """

  model_config = ConfigDict(from_attributes=True)

  id: str
  patient_id: str
  type: PatientMessageType
  transcript: str
  symptoms: Optional[list[str]] = None
  ai_summary: Optional[str] = None
  nurse_reply: Optional[str] = None
  nurse_reply_at: Optional[datetime] = None
  read: bool = False
  created_at: datetime

  @property
  def has_reply(self) -> bool:
    return bool(self.nurse_reply)


class PatientMessageAnalysis(BaseModel):
  """Schema for symptom extraction from a patient message."""

  symptoms: list[str] = Field(default_factory=list, description="Symptoms the patient mentions")
  summary: str = Field("", description="Brief clinical summary of what the patient reported")
