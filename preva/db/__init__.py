"""
Database module for Preva.

Provides the Supabase client and one repository class per table.
"""

from preva.db.client import get_client, set_client, TableSource
from preva.db.repositories import (
  UserRepository,
  PatientRepository,
  VisitRepository,
  AppointmentRepository,
  ChatMessageRepository,
  PatientMessageRepository,
)

__all__ = [
  "get_client",
  "set_client",
  "TableSource",
  "UserRepository",
  "PatientRepository",
  "VisitRepository",
  "AppointmentRepository",
  "ChatMessageRepository",
  "PatientMessageRepository",
]
