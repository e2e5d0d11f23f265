"""
Speech synthesis and transcription for Preva.
"""

from .client import SpeechClient, get_speech_client, set_speech_client, NO_SPEECH

__all__ = ["SpeechClient", "get_speech_client", "set_speech_client", "NO_SPEECH"]
