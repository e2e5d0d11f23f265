"""
Visit ingestion and the read-only care summaries.

A visit goes through two steps that can also be called separately:
`analyze_visit_note` asks the model for a structured analysis without
writing anything, and `apply_visit_analysis` commits an analysis to the
patient's risk state and the visit history. `submit_visit` does both.

The commit is two writes, patient update then visit insert, with no
transaction around them. If the insert fails the patient keeps the new risk
fields without a matching visit; this is logged and not compensated.
"""

from datetime import date
from typing import Any, Union

import structlog

from preva.auth.middleware import Actor
from preva.auth.policy import require_nurse
from preva.db.repositories import PatientRepository, VisitRepository
from preva.errors import Result, workflow
from preva.llm import FALLBACK_MODELS, PromptBuilder, get_client as get_llm
from preva.models import Patient, RiskTrend, Visit, VisitAnalysis
from preva.workflows.access import load_patient, require_text

logger = structlog.get_logger(__name__)

ANALYSIS_SYSTEM = (
    "You are a home health nurse assistant. Base every statement strictly on "
    "the clinical note you are given. Never add findings, conditions, or "
    "medications that the note does not mention."
)

REASONING_SYSTEM = (
    "You are a clinical risk reasoning assistant. Provide concise, "
    "evidence-based explanations of patient risk scores. Use only the "
    "information provided. Be warm but precise."
)

REASONING_VISIT_LIMIT = 10
REASONING_NOTE_CHARS = 300


def run_visit_analysis(patient: Patient, clinical_note: str) -> VisitAnalysis:
    """Ask the model to analyze a note. The result is already clamped and coerced."""
    prompt = PromptBuilder().render(
        "visit_analysis.md",
        patient_name=patient.name,
        current_risk_score=patient.risk_score,
        clinical_note=clinical_note,
    )
    return get_llm().generate_json(prompt, VisitAnalysis, system=ANALYSIS_SYSTEM)


def commit_visit(
    actor: Actor,
    patient: Patient,
    clinical_note: str,
    analysis: VisitAnalysis,
    patients: PatientRepository | None = None,
    visits: VisitRepository | None = None,
) -> Visit:
    """Write the new risk state to the patient and append the visit."""
    patients = patients or PatientRepository()
    visits = visits or VisitRepository()

    before = patient.risk_score
    after = analysis.new_risk_score
    trend = RiskTrend.between(before, after)
    today = date.today()

    patients.update(
        patient.id,
        risk_score=after,
        risk_trend=trend.value,
        last_visit_date=today.isoformat(),
        last_voice_summary=analysis.voice_summary,
        last_voice_summary_at=today.isoformat(),
    )

    try:
        visit = visits.create(
            patient_id=patient.id,
            nurse_id=actor.id,
            clinical_note=clinical_note,
            risk_score_before=before,
            risk_score_after=after,
            risk_factors=[f.model_dump() for f in analysis.risk_factors],
            soap_note=analysis.soap_note.model_dump(),
            voice_summary=analysis.voice_summary,
            visit_date=today,
        )
    except Exception:
        logger.error(
            "visit_insert_failed_after_patient_update",
            patient_id=patient.id,
            risk_score_before=before,
            risk_score_after=after,
        )
        raise

    logger.info(
        "visit_committed",
        patient_id=patient.id,
        visit_id=visit.id,
        risk_score_before=before,
        risk_score_after=after,
        risk_trend=trend.value,
    )
    return visit


def _visit_payload(visit: Visit, analysis: VisitAnalysis) -> Result:
    return Result.success(
        visit=visit.model_dump(mode="json"),
        analysis=analysis.model_dump(mode="json", by_alias=True),
    )


@workflow
def analyze_visit_note(actor: Actor, patient_id: str, clinical_note: str) -> Result:
    """Analyze a note for preview. Nothing is written."""
    require_nurse(actor)
    note = require_text(clinical_note, "Clinical note is required.")
    patient = load_patient(actor, patient_id)
    analysis = run_visit_analysis(patient, note)
    return Result.success(analysis=analysis.model_dump(mode="json", by_alias=True))


@workflow
def apply_visit_analysis(
    actor: Actor,
    patient_id: str,
    clinical_note: str,
    analysis: Union[VisitAnalysis, dict[str, Any]],
) -> Result:
    """Commit a previously returned analysis. The analysis is re-validated first."""
    require_nurse(actor)
    note = require_text(clinical_note, "Clinical note is required.")
    patient = load_patient(actor, patient_id)
    checked = VisitAnalysis.model_validate(analysis)
    visit = commit_visit(actor, patient, note, checked)
    return _visit_payload(visit, checked)


@workflow
def submit_visit(actor: Actor, patient_id: str, clinical_note: str) -> Result:
    """
    Analyze a clinical note and commit the result.

    Any analysis failure aborts before the first write. Resubmitting the same
    note runs the whole pipeline again and appends another visit.
    """
    require_nurse(actor)
    note = require_text(clinical_note, "Clinical note is required.")
    patient = load_patient(actor, patient_id)
    analysis = run_visit_analysis(patient, note)
    visit = commit_visit(actor, patient, note, analysis)
    return _visit_payload(visit, analysis)


def _describe_visit(index: int, visit: Visit) -> str:
    parts = [f"Visit {index} ({visit.date.isoformat()}):"]
    parts.append(f"Risk: {visit.risk_score_before}% -> {visit.risk_score_after}%")
    if visit.soap_note.assessment:
        parts.append(f"Assessment: {visit.soap_note.assessment}")
    if visit.risk_factors:
        factors = ", ".join(f"{f.factor} ({f.severity})" for f in visit.risk_factors)
        parts.append(f"Risk factors: {factors}")
    if visit.clinical_note:
        parts.append(f"Note: {visit.clinical_note[:REASONING_NOTE_CHARS]}")
    return " | ".join(parts)


@workflow
def explain_risk(actor: Actor, patient_id: str) -> Result:
    """Explain the current risk score from the profile and recent visits."""
    patient = load_patient(actor, patient_id, any_nurse=True)
    visits = VisitRepository().list_by_patient(patient.id, limit=REASONING_VISIT_LIMIT)

    if visits:
        history = "Recent visit history (most recent first):\n" + "\n".join(
            _describe_visit(i, v) for i, v in enumerate(visits, start=1)
        )
    else:
        history = "No visit history recorded yet."

    prompt = PromptBuilder().render(
        "risk_reasoning.md",
        patient_name=patient.name,
        age=patient.age,
        conditions=", ".join(patient.conditions) or "None listed",
        risk_score=patient.risk_score,
        risk_trend=patient.risk_trend.value,
        prior_hospitalizations=patient.prior_hospitalizations,
        medications=", ".join(m.name for m in patient.medications) or "None listed",
        visit_history=history,
    )
    reasoning = get_llm().generate(prompt, system=REASONING_SYSTEM)
    return Result.success(reasoning=reasoning)


@workflow
def daily_summary(actor: Actor, patient_id: str) -> Result:
    """A short "what you need to do today" list for the patient."""
    patient = load_patient(actor, patient_id, any_nurse=True)
    medications = "\n".join(m.describe() for m in patient.medications) or "None listed"

    prompt = PromptBuilder().render(
        "daily_summary.md",
        patient_name=patient.name,
        age=patient.age,
        risk_score=patient.risk_score,
        conditions=", ".join(patient.conditions) or "None listed",
        medications=medications,
    )
    summary = get_llm().generate_with_fallback(FALLBACK_MODELS, prompt)
    return Result.success(summary=summary)
