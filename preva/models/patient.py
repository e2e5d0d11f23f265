"""
Patient and visit models.

`VisitAnalysis` is the contract for model output. Its validator is the gate
that keeps malformed or out-of-range model responses out of the risk
timeline: scores are clamped, lists and the SOAP note are coerced, and
anything unusable is replaced by an empty value instead of raising.
"""

import math
from datetime import date, datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# ENUMS
# =============================================================================


class RiskTrend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"

    @classmethod
    def between(cls, before: int, after: int) -> "RiskTrend":
        """Direction of change from one risk score to the next."""
        if after > before:
            return cls.UP
        if after < before:
            return cls.DOWN
        return cls.STABLE


class PatientStatus(str, Enum):
    ACTIVE = "active"
    DISCHARGED = "discharged"


# =============================================================================
# PATIENT
# =============================================================================


def initials_for(name: str) -> str:
    """Up to two upper-case initials from a display name."""
    return "".join(part[0] for part in name.split() if part).upper()[:2]


class Medication(BaseModel):
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None

    def describe(self) -> str:
        text = self.name
        if self.dosage:
            text += f" {self.dosage}"
        if self.frequency:
            text += f" ({self.frequency})"
        return text


class BloodPressureReading(BaseModel):
    date: date
    systolic: int = Field(..., ge=1, le=300)
    diastolic: int = Field(..., ge=1, le=200)


class Patient(BaseModel):
    """A patient under home care, owned by the nurse who added them."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    age: int = 0
    conditions: list[str] = Field(default_factory=list)
    medications: list[Medication] = Field(default_factory=list)
    prior_hospitalizations: int = 0

    # Derived state, rewritten by visit ingestion
    risk_score: int = Field(0, ge=0, le=100)
    risk_trend: RiskTrend = RiskTrend.STABLE
    last_visit_date: Optional[date] = None
    bp_history: list[BloodPressureReading] = Field(default_factory=list)
    last_voice_summary: Optional[str] = None
    last_voice_summary_at: Optional[date] = None

    status: PatientStatus = PatientStatus.ACTIVE
    image_initials: str = ""
    added_by_nurse_id: str
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _fill_nulls(cls, data: Any) -> Any:
        # Rows written by older clients may carry nulls for list columns.
        if isinstance(data, dict):
            data = dict(data)
            for key in ("conditions", "medications", "bp_history"):
                if data.get(key) is None:
                    data[key] = []
            if not data.get("image_initials") and data.get("name"):
                data["image_initials"] = initials_for(data["name"])
        return data


# =============================================================================
# VISIT ANALYSIS
# =============================================================================


class RiskFactor(BaseModel):
    factor: str
    severity: Literal["critical", "high"] = "high"
    detail: str = ""


class SoapNote(BaseModel):
    subjective: str = ""
    objective: str = ""
    assessment: str = ""
    plan: str = ""


def _coerce_score(value: Any) -> int:
    if isinstance(value, bool):
        value = 0
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            value = 0
    if not isinstance(value, (int, float)) or math.isnan(value) or math.isinf(value):
        value = 0
    return max(0, min(100, int(round(value))))


def _coerce_factor(item: Any) -> Optional[dict[str, str]]:
    if not isinstance(item, dict):
        return None
    factor = item.get("factor")
    if not isinstance(factor, str) or not factor.strip():
        return None
    severity = str(item.get("severity", "")).strip().lower()
    if severity not in ("critical", "high"):
        severity = "high"
    detail = item.get("detail")
    return {
        "factor": factor.strip(),
        "severity": severity,
        "detail": detail.strip() if isinstance(detail, str) else "",
    }


def _coerce_soap(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return SoapNote().model_dump()
    note = {}
    for key in ("subjective", "objective", "assessment", "plan"):
        part = value.get(key)
        note[key] = part.strip() if isinstance(part, str) else ("" if part is None else str(part))
    return note


class VisitAnalysis(BaseModel):
    """Structured result of analyzing one clinical note."""

    model_config = ConfigDict(populate_by_name=True)

    new_risk_score: int = Field(
        0,
        alias="newRiskScore",
        description="Estimated readmission/decompensation risk, 0-100",
    )
    risk_factors: list[RiskFactor] = Field(
        default_factory=list,
        alias="riskFactors",
        description="3-6 risk factors stated in the note, most important first",
    )
    soap_note: SoapNote = Field(
        default_factory=SoapNote,
        alias="soapNote",
        description="Concise SOAP note using only facts from the note",
    )
    voice_summary: str = Field(
        "",
        alias="voiceSummary",
        description="2-4 warm, jargon-free sentences for the patient",
    )

    @model_validator(mode="before")
    @classmethod
    def repair(cls, data: Any) -> Any:
        """Clamp and coerce raw model output into a usable analysis."""
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True)
        if not isinstance(data, dict):
            data = {}

        def pick(alias: str, name: str) -> Any:
            return data[alias] if alias in data else data.get(name)

        factors = pick("riskFactors", "risk_factors")
        if not isinstance(factors, list):
            factors = []
        summary = pick("voiceSummary", "voice_summary")

        return {
            "newRiskScore": _coerce_score(pick("newRiskScore", "new_risk_score")),
            "riskFactors": [f for f in (_coerce_factor(item) for item in factors) if f],
            "soapNote": _coerce_soap(pick("soapNote", "soap_note")),
            "voiceSummary": "" if summary is None else str(summary).strip(),
        }


class Visit(BaseModel):
    """One documented encounter. Inserted once, never updated."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    nurse_id: str
    date: date
    clinical_note: str
    risk_score_before: int
    risk_score_after: int
    risk_factors: list[RiskFactor] = Field(default_factory=list)
    soap_note: SoapNote = Field(default_factory=SoapNote)
    voice_summary: str = ""
    created_at: Optional[datetime] = None
