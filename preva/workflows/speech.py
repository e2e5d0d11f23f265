"""
Speech workflows: read-aloud of visit summaries and transcription of
patient recordings.
"""

import base64

from preva.auth.middleware import Actor
from preva.auth.policy import require_nurse
from preva.errors import NotFound, Result, ValidationError, workflow
from preva.speech import get_speech_client
from preva.workflows.access import load_patient, require_text


def _encoded(audio: bytes) -> str:
    return base64.b64encode(audio).decode("ascii")


@workflow
def synthesize_speech(actor: Actor, text: str) -> Result:
    """Speak arbitrary text for a nurse."""
    require_nurse(actor)
    body = require_text(text, "No text to speak.")
    audio = get_speech_client().synthesize(body)
    return Result.success(audio_base64=_encoded(audio))


@workflow
def synthesize_visit_summary(actor: Actor, patient_id: str) -> Result:
    """Speak a patient's latest visit summary, for their nurse or themself."""
    patient = load_patient(actor, patient_id)
    summary = (patient.last_voice_summary or "").strip()
    if not summary:
        raise NotFound("No visit summary yet.")
    audio = get_speech_client().synthesize(summary)
    return Result.success(
        audio_base64=_encoded(audio),
        summary=summary,
        summary_date=patient.last_voice_summary_at.isoformat() if patient.last_voice_summary_at else None,
    )


@workflow
def transcribe_audio(
    actor: Actor,
    audio: bytes,
    filename: str = "recording.webm",
    content_type: str = "audio/webm",
) -> Result:
    """Transcribe a recording made by a signed-in nurse or patient."""
    if not audio:
        raise ValidationError("No audio file provided.")
    text = get_speech_client().transcribe(audio, filename=filename, content_type=content_type)
    return Result.success(text=text)
