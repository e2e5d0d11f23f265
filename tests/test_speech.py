"""
Tests for the ElevenLabs client and the speech workflows.
"""

import base64
from types import SimpleNamespace

import pytest
import requests

from preva.db import PatientRepository
from preva.errors import ConfigurationError, ProviderError
from preva.speech import NO_SPEECH, SpeechClient
from preva.workflows import speech


class FakeResponse:
    def __init__(self, status_code=200, content=b"", payload=None, text=""):
        self.status_code = status_code
        self.content = content
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@pytest.fixture
def posts(monkeypatch):
    """Record requests.post calls and answer from a queue."""
    state = SimpleNamespace(calls=[], responses=[])

    def fake_post(url, **kwargs):
        state.calls.append(SimpleNamespace(url=url, **kwargs))
        return state.responses.pop(0)

    monkeypatch.setattr(requests, "post", fake_post)
    monkeypatch.setenv("ELEVENLABS_API_KEY", "xi-test")
    monkeypatch.delenv("ELEVENLABS_VOICE_ID", raising=False)
    return state


class TestSpeechClient:
    def test_requires_key(self, monkeypatch):
        monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            SpeechClient()

    def test_synthesize(self, posts):
        posts.responses.append(FakeResponse(content=b"ID3audio"))

        audio = SpeechClient().synthesize("  Take your medicine.  ")

        assert audio == b"ID3audio"
        call = posts.calls[0]
        assert call.url.endswith("/text-to-speech/JBFqnCBsd6RMkjVDRZzb")
        assert call.headers["xi-api-key"] == "xi-test"
        assert call.params == {"output_format": "mp3_44100_128"}
        assert call.json == {"text": "Take your medicine.", "model_id": "eleven_multilingual_v2"}

    def test_error_body_is_truncated(self, posts):
        posts.responses.append(FakeResponse(status_code=401, text="x" * 500))

        with pytest.raises(ProviderError) as excinfo:
            SpeechClient().synthesize("hello")

        assert excinfo.value.status == 401
        assert excinfo.value.message == "ElevenLabs TTS: 401 " + "x" * 200

    def test_transcribe(self, posts):
        posts.responses.append(FakeResponse(payload={"text": " My ankles hurt. "}))

        text = SpeechClient().transcribe(b"webm-bytes")

        assert text == "My ankles hurt."
        call = posts.calls[0]
        assert call.url.endswith("/speech-to-text")
        assert call.files == {"file": ("recording.webm", b"webm-bytes", "audio/webm")}
        assert call.data == {"model_id": "scribe_v2"}

    def test_transcribe_silence(self, posts):
        posts.responses.append(FakeResponse(payload={"text": ""}))
        assert SpeechClient().transcribe(b"...") == NO_SPEECH

    def test_network_error(self, monkeypatch):
        monkeypatch.setenv("ELEVENLABS_API_KEY", "xi-test")

        def broken(url, **kwargs):
            raise requests.ConnectionError("unreachable")

        monkeypatch.setattr(requests, "post", broken)
        with pytest.raises(ProviderError):
            SpeechClient().transcribe(b"...")


class TestSpeechWorkflows:
    def test_visit_summary_for_patient(self, posts, mary_actor, mary):
        PatientRepository().update(
            mary.id, last_voice_summary="Your swelling is up.", last_voice_summary_at="2026-03-02"
        )
        posts.responses.append(FakeResponse(content=b"mp3"))

        result = speech.synthesize_visit_summary(mary_actor, mary.id)

        assert result.ok
        assert base64.b64decode(result.value["audio_base64"]) == b"mp3"
        assert result.value["summary"] == "Your swelling is up."
        assert result.value["summary_date"] == "2026-03-02"

    def test_no_summary_yet(self, posts, nurse_actor, mary):
        result = speech.synthesize_visit_summary(nurse_actor, mary.id)
        assert not result.ok
        assert result.error == "No visit summary yet."
        assert posts.calls == []

    def test_synthesize_is_for_nurses(self, posts, mary_actor):
        result = speech.synthesize_speech(mary_actor, "hello")
        assert not result.ok
        assert result.code == "unauthorized"

    def test_provider_error_becomes_result(self, posts, nurse_actor):
        posts.responses.append(FakeResponse(status_code=429, text="quota exceeded"))

        result = speech.synthesize_speech(nurse_actor, "hello")

        assert not result.ok
        assert result.code == "provider"
        assert "429" in result.error

    def test_missing_key_is_configuration_error(self, monkeypatch, nurse_actor):
        monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
        result = speech.synthesize_speech(nurse_actor, "hello")
        assert not result.ok
        assert result.code == "configuration"

    def test_transcribe_requires_audio(self, posts, mary_actor):
        result = speech.transcribe_audio(mary_actor, b"")
        assert not result.ok
        assert result.error == "No audio file provided."
