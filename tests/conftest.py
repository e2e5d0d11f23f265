"""
Shared fixtures: an in-memory store, a scripted model, and a small cast of
nurses and patients.
"""

import sys
from pathlib import Path
from types import SimpleNamespace

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from preva.auth import Actor, hash_password
from preva.db import PatientRepository, UserRepository
from preva.db.client import reset_clients, set_client
from preva.llm import LLMClient, set_client as set_llm_client
from preva.models import ContactInfo, initials_for
from preva.speech import set_speech_client
from tests.fakes import FakeMessages, FakeSupabase

PASSWORD = "patient123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(autouse=True)
def session_secret(monkeypatch):
    monkeypatch.setenv("SESSION_SECRET", "test-session-secret")


@pytest.fixture
def db():
    fake = FakeSupabase()
    set_client(fake)
    yield fake
    reset_clients()


@pytest.fixture
def llm():
    messages = FakeMessages()
    set_llm_client(LLMClient(client=SimpleNamespace(messages=messages)))
    yield messages
    set_llm_client(None)


@pytest.fixture(autouse=True)
def no_speech_client():
    yield
    set_speech_client(None)


def make_nurse(email: str, name: str):
    return UserRepository().create_nurse(email, PASSWORD_HASH, name=name)


def make_patient(nurse, name: str, username: str, **fields):
    patients = PatientRepository()
    patient = patients.create(
        nurse_id=nurse.id,
        name=name,
        age=fields.pop("age", 70),
        conditions=fields.pop("conditions", []),
        medications=fields.pop("medications", []),
        prior_hospitalizations=fields.pop("prior_hospitalizations", 0),
        image_initials=initials_for(name),
        **fields,
    )
    user = UserRepository().create_patient_user(
        username=username,
        password_hash=PASSWORD_HASH,
        nurse_id=nurse.id,
        patient_id=patient.id,
        contact_info=ContactInfo(phone="(555) 111-2222"),
    )
    patient = patients.update(patient.id, user_id=user.id)
    return patient, user


@pytest.fixture
def nurse(db):
    return make_nurse("nurse@example.com", "Nandhu Alahari")


@pytest.fixture
def other_nurse(db):
    return make_nurse("other@example.com", "Other Nurse")


@pytest.fixture
def mary(db, nurse):
    """Mary Thompson: CHF, on file at risk 42."""
    patient, _ = make_patient(
        nurse,
        "Mary Thompson",
        "mary.t",
        age=74,
        conditions=["CHF", "Hypertension", "Type 2 Diabetes"],
        medications=[
            {"name": "Lisinopril", "dosage": "20mg", "frequency": "Once daily"},
            {"name": "Furosemide", "dosage": "40mg", "frequency": "Once daily"},
        ],
        prior_hospitalizations=2,
        risk_score=42,
        risk_trend="up",
    )
    return patient


@pytest.fixture
def robert(db, nurse):
    patient, _ = make_patient(nurse, "Robert Chen", "robert.c", age=68, conditions=["COPD"], risk_score=35)
    return patient


@pytest.fixture
def stranger(db, other_nurse):
    """A patient who belongs to another nurse."""
    patient, _ = make_patient(other_nurse, "Linda Garcia", "linda.g", age=71, risk_score=18)
    return patient


@pytest.fixture
def nurse_actor(nurse):
    return Actor.from_user(nurse)


@pytest.fixture
def other_nurse_actor(other_nurse):
    return Actor.from_user(other_nurse)


@pytest.fixture
def mary_actor(mary):
    return Actor.from_user(UserRepository().get_by_patient_id(mary.id))


@pytest.fixture
def robert_actor(robert):
    return Actor.from_user(UserRepository().get_by_patient_id(robert.id))
