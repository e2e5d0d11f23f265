"""
ElevenLabs text-to-speech and speech-to-text client.

No retries and no streaming: a non-2xx answer is raised as ProviderError
with the status code and the start of the provider's error body.
"""

from __future__ import annotations

import os

import requests
import structlog

from preva.errors import ConfigurationError, ProviderError

logger = structlog.get_logger(__name__)

ELEVENLABS_BASE = "https://api.elevenlabs.io/v1"
DEFAULT_VOICE_ID = "JBFqnCBsd6RMkjVDRZzb"
DEFAULT_OUTPUT_FORMAT = "mp3_44100_128"
TTS_MODEL = "eleven_multilingual_v2"
STT_MODEL = "scribe_v2"
NO_SPEECH = "(no speech detected)"
ERROR_BODY_LIMIT = 200


class SpeechClient:
    """Wraps the two ElevenLabs endpoints Preva uses."""

    def __init__(
        self,
        api_key: str | None = None,
        voice_id: str | None = None,
        base_url: str = ELEVENLABS_BASE,
        timeout: float = 60.0,
    ):
        self.api_key = api_key or os.environ.get("ELEVENLABS_API_KEY")
        if not self.api_key:
            raise ConfigurationError("ELEVENLABS_API_KEY is not set.")
        self.voice_id = voice_id or os.environ.get("ELEVENLABS_VOICE_ID", DEFAULT_VOICE_ID)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, kind: str, url: str, **kwargs) -> requests.Response:
        headers = {"xi-api-key": self.api_key, **kwargs.pop("headers", {})}
        try:
            response = requests.post(url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ProviderError(f"ElevenLabs {kind}: {e}") from e
        if not response.ok:
            logger.warning("speech_provider_error", kind=kind, status=response.status_code)
            raise ProviderError(
                f"ElevenLabs {kind}: {response.status_code} {response.text[:ERROR_BODY_LIMIT]}",
                status=response.status_code,
            )
        return response

    def synthesize(
        self,
        text: str,
        voice_id: str | None = None,
        output_format: str = DEFAULT_OUTPUT_FORMAT,
    ) -> bytes:
        """Render text as audio bytes (MP3 by default)."""
        url = f"{self.base_url}/text-to-speech/{voice_id or self.voice_id}"
        response = self._post(
            "TTS",
            url,
            params={"output_format": output_format},
            headers={"Content-Type": "application/json"},
            json={"text": text.strip(), "model_id": TTS_MODEL},
        )
        return response.content

    def transcribe(
        self,
        audio: bytes,
        filename: str = "recording.webm",
        content_type: str = "audio/webm",
    ) -> str:
        """Transcribe an audio recording to text."""
        response = self._post(
            "STT",
            f"{self.base_url}/speech-to-text",
            files={"file": (filename, audio, content_type)},
            data={"model_id": STT_MODEL},
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(f"ElevenLabs STT: invalid JSON response ({e})") from e
        text = payload.get("text") if isinstance(payload, dict) else None
        text = text.strip() if isinstance(text, str) else ""
        return text or NO_SPEECH


# Singleton client instance
_client: SpeechClient | None = None


def get_speech_client() -> SpeechClient:
    """Get the singleton speech client."""
    global _client
    if _client is None:
        _client = SpeechClient()
    return _client


def set_speech_client(client: SpeechClient | None) -> None:
    """Set the singleton speech client."""
    global _client
    _client = client
