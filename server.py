"""
Preva Web Server

FastAPI-based JSON API for nurses and patients. Every route delegates to a
workflow and returns its tagged result: `{"ok": true, ...}` on success,
`{"ok": false, "error": ..., "code": ...}` with a matching status otherwise.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional
from uuid import uuid4

import structlog
from fastapi import Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, EmailStr
from starlette.exceptions import HTTPException as StarletteHTTPException

# Setup paths
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from preva import __version__
from preva.auth import Actor, get_current_user, get_nurse_user
from preva.errors import Result
from preva.logging_setup import configure_logging
from preva.models import ContactInfo, VisitAnalysis
from preva.workflows import accounts, messaging, patients, scheduling, speech, visits

logger = structlog.get_logger(__name__)


# Create FastAPI app
app = FastAPI(
    title="Preva",
    description="Preva - Home health care coordination API",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    """Tag every log line of a request with its id and path."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request.headers.get("x-request-id") or uuid4().hex,
        path=request.url.path,
    )
    return await call_next(request)


def respond(result: Result) -> JSONResponse:
    """Turn a workflow result into an HTTP response."""
    return JSONResponse(status_code=200 if result.ok else result.status_code, content=result.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = {401: "unauthenticated", 403: "unauthorized", 404: "not_found", 503: "configuration"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": str(exc.detail), "code": code.get(exc.status_code, "error")},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request.") if errors else "Invalid request."
    return JSONResponse(status_code=422, content={"ok": False, "error": message, "code": "validation"})


# =============================================================================
# REQUEST MODELS
# =============================================================================

class SignUpRequest(BaseModel):
    """Request model for nurse signup."""
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: Optional[str] = None


class LoginRequest(BaseModel):
    """Nurses send email, patients send username."""
    email: Optional[str] = None
    username: Optional[str] = None
    password: str


class MedicationInput(BaseModel):
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None


class AddPatientRequest(BaseModel):
    """Request model for adding a patient with their login."""
    name: str
    age: int = Field(0, ge=0, le=130)
    conditions: list[str] = Field(default_factory=list)
    medications: list[MedicationInput] = Field(default_factory=list)
    prior_hospitalizations: int = Field(0, ge=0)
    username: str
    password: str = Field(..., min_length=6)
    contact_info: Optional[ContactInfo] = None


class ClinicalNoteRequest(BaseModel):
    clinical_note: str


class ApplyAnalysisRequest(BaseModel):
    clinical_note: str
    analysis: VisitAnalysis


class BloodPressureRequest(BaseModel):
    systolic: int
    diastolic: int


class AppointmentRequest(BaseModel):
    patient_id: str
    start: datetime
    end: datetime
    title: Optional[str] = None


class AppointmentTimesRequest(BaseModel):
    start: datetime
    end: datetime


class ChatMessageRequest(BaseModel):
    text: str


class PatientMessageRequest(BaseModel):
    transcript: str
    mode: Literal["raw", "analyzed"] = "raw"


class ReplyRequest(BaseModel):
    reply: str


class SpeakRequest(BaseModel):
    text: str


# =============================================================================
# HEALTH
# =============================================================================

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post("/api/auth/signup")
def signup(request: SignUpRequest):
    """Create a nurse account."""
    return respond(accounts.register_nurse(request.email, request.password, name=request.name))


@app.post("/api/auth/login")
def login(request: LoginRequest):
    """Sign in and receive a bearer token valid for 30 days."""
    return respond(accounts.sign_in(request.password, email=request.email, username=request.username))


@app.get("/api/auth/me")
def get_me(actor: Actor = Depends(get_current_user)):
    """Get the current user's profile."""
    return respond(accounts.get_profile(actor))


@app.patch("/api/auth/me/contact")
def update_my_contact(contact_info: ContactInfo, actor: Actor = Depends(get_current_user)):
    """Update the current user's contact info."""
    return respond(accounts.update_my_contact_info(actor, contact_info))


# =============================================================================
# PATIENT ENDPOINTS
# =============================================================================

@app.get("/api/patients")
def list_patients(actor: Actor = Depends(get_nurse_user)):
    """List the nurse's patients, highest risk first."""
    return respond(patients.list_patients(actor))


@app.post("/api/patients")
def add_patient(request: AddPatientRequest, actor: Actor = Depends(get_nurse_user)):
    """Add a patient together with their login."""
    return respond(patients.add_patient(
        actor,
        name=request.name,
        age=request.age,
        username=request.username,
        password=request.password,
        conditions=request.conditions,
        medications=[m.model_dump() for m in request.medications],
        prior_hospitalizations=request.prior_hospitalizations,
        contact_info=request.contact_info,
    ))


@app.get("/api/patients/{patient_id}")
def get_patient(patient_id: str, actor: Actor = Depends(get_current_user)):
    """Patient record with visit history."""
    return respond(patients.get_patient_detail(actor, patient_id))


@app.post("/api/patients/{patient_id}/bp")
def record_bp(patient_id: str, request: BloodPressureRequest, actor: Actor = Depends(get_current_user)):
    """Record a blood pressure reading."""
    return respond(patients.record_blood_pressure(actor, patient_id, request.systolic, request.diastolic))


# =============================================================================
# VISIT ENDPOINTS
# =============================================================================

@app.post("/api/patients/{patient_id}/visits/analyze")
def analyze_visit(patient_id: str, request: ClinicalNoteRequest, actor: Actor = Depends(get_current_user)):
    """Analyze a clinical note without saving it."""
    return respond(visits.analyze_visit_note(actor, patient_id, request.clinical_note))


@app.post("/api/patients/{patient_id}/visits/apply")
def apply_visit(patient_id: str, request: ApplyAnalysisRequest, actor: Actor = Depends(get_current_user)):
    """Save a previously previewed analysis."""
    return respond(visits.apply_visit_analysis(actor, patient_id, request.clinical_note, request.analysis))


@app.post("/api/patients/{patient_id}/visits")
def submit_visit(patient_id: str, request: ClinicalNoteRequest, actor: Actor = Depends(get_current_user)):
    """Analyze a clinical note and record the visit."""
    return respond(visits.submit_visit(actor, patient_id, request.clinical_note))


@app.get("/api/patients/{patient_id}/risk-reasoning")
def risk_reasoning(patient_id: str, actor: Actor = Depends(get_current_user)):
    """Plain-language explanation of the current risk score."""
    return respond(visits.explain_risk(actor, patient_id))


@app.get("/api/patients/{patient_id}/daily-summary")
def get_daily_summary(patient_id: str, actor: Actor = Depends(get_current_user)):
    """'What you need to do today' list."""
    return respond(visits.daily_summary(actor, patient_id))


# =============================================================================
# APPOINTMENT ENDPOINTS
# =============================================================================

@app.get("/api/appointments")
def list_appointments(
    start: datetime = Query(..., description="Window start"),
    end: datetime = Query(..., description="Window end"),
    patient_id: Optional[str] = Query(None, description="Only this patient's appointments"),
    actor: Actor = Depends(get_current_user),
):
    """Appointments overlapping a time window, with patient names."""
    return respond(scheduling.list_appointments(actor, start, end, patient_id=patient_id))


@app.post("/api/appointments")
def create_appointment(request: AppointmentRequest, actor: Actor = Depends(get_current_user)):
    """Schedule an appointment."""
    return respond(scheduling.create_appointment(
        actor, request.patient_id, request.start, request.end, title=request.title
    ))


@app.patch("/api/appointments/{appointment_id}")
def update_appointment(
    appointment_id: str,
    request: AppointmentTimesRequest,
    actor: Actor = Depends(get_current_user),
):
    """Move or resize an appointment."""
    return respond(scheduling.update_appointment(actor, appointment_id, request.start, request.end))


@app.delete("/api/appointments/{appointment_id}")
def delete_appointment(appointment_id: str, actor: Actor = Depends(get_current_user)):
    """Delete an appointment."""
    return respond(scheduling.delete_appointment(actor, appointment_id))


# =============================================================================
# CHAT ENDPOINTS
# =============================================================================

@app.get("/api/patients/{patient_id}/chat")
def get_chat(
    patient_id: str,
    after: Optional[datetime] = Query(None, description="Only messages newer than this"),
    actor: Actor = Depends(get_current_user),
):
    """Chat thread, oldest first."""
    return respond(messaging.fetch_chat_messages(actor, patient_id, after=after))


@app.post("/api/patients/{patient_id}/chat")
def post_chat(patient_id: str, request: ChatMessageRequest, actor: Actor = Depends(get_current_user)):
    """Send a chat message."""
    return respond(messaging.send_chat_message(actor, patient_id, request.text))


@app.post("/api/patients/{patient_id}/chat/read")
def read_chat(patient_id: str, actor: Actor = Depends(get_current_user)):
    """Mark the other party's messages as read."""
    return respond(messaging.mark_chat_read(actor, patient_id))


@app.get("/api/chat/unread")
def get_unread_counts(
    patient_ids: list[str] = Query([], description="Patients to count for"),
    actor: Actor = Depends(get_current_user),
):
    """Unread patient messages per patient."""
    return respond(messaging.unread_counts(actor, patient_ids))


# =============================================================================
# PATIENT MESSAGE ENDPOINTS
# =============================================================================

@app.post("/api/messages")
def submit_message(request: PatientMessageRequest, actor: Actor = Depends(get_current_user)):
    """Submit a self-report as the signed-in patient."""
    return respond(messaging.submit_patient_message(actor, request.transcript, request.mode))


@app.get("/api/patients/{patient_id}/messages")
def get_messages(patient_id: str, actor: Actor = Depends(get_current_user)):
    """A patient's self-reports, newest first."""
    return respond(messaging.fetch_patient_messages(actor, patient_id))


@app.post("/api/messages/{message_id}/reply")
def reply_message(message_id: str, request: ReplyRequest, actor: Actor = Depends(get_current_user)):
    """Reply to a self-report (once)."""
    return respond(messaging.reply_to_patient_message(actor, message_id, request.reply))


@app.post("/api/patients/{patient_id}/messages/read")
def read_messages(patient_id: str, actor: Actor = Depends(get_current_user)):
    """Mark a patient's self-reports as read."""
    return respond(messaging.mark_patient_messages_read(actor, patient_id))


# =============================================================================
# SPEECH ENDPOINTS
# =============================================================================

@app.post("/api/speech/synthesize")
def synthesize(request: SpeakRequest, actor: Actor = Depends(get_current_user)):
    """Speak text; returns base64-encoded MP3."""
    return respond(speech.synthesize_speech(actor, request.text))


@app.get("/api/patients/{patient_id}/voice-summary/audio")
def voice_summary_audio(patient_id: str, actor: Actor = Depends(get_current_user)):
    """The latest visit summary as base64-encoded MP3."""
    return respond(speech.synthesize_visit_summary(actor, patient_id))


@app.post("/api/speech/transcribe")
def transcribe(file: UploadFile = File(...), actor: Actor = Depends(get_current_user)):
    """Transcribe an uploaded recording."""
    audio = file.file.read()
    return respond(speech.transcribe_audio(
        actor,
        audio,
        filename=file.filename or "recording.webm",
        content_type=file.content_type or "audio/webm",
    ))


def run_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the server."""
    import uvicorn
    configure_logging()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
