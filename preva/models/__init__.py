"""
Record types for every table in the document store.
"""

from preva.models.user import User, UserRole, ContactInfo
from preva.models.patient import (
    Patient,
    PatientStatus,
    Medication,
    BloodPressureReading,
    RiskTrend,
    RiskFactor,
    SoapNote,
    VisitAnalysis,
    Visit,
    initials_for,
)
from preva.models.appointment import Appointment
from preva.models.message import ChatMessage, PatientMessage, PatientMessageType, PatientMessageAnalysis

__all__ = [
    "User",
    "UserRole",
    "ContactInfo",
    "Patient",
    "PatientStatus",
    "Medication",
    "BloodPressureReading",
    "RiskTrend",
    "RiskFactor",
    "SoapNote",
    "VisitAnalysis",
    "Visit",
    "initials_for",
    "Appointment",
    "ChatMessage",
    "PatientMessage",
    "PatientMessageType",
    "PatientMessageAnalysis",
]
