"""
LLM integration for Preva.
"""

from .client import LLMClient, PromptBuilder, get_client, set_client, FALLBACK_MODELS
from .parsing import parse_json_from_response

__all__ = [
    "LLMClient",
    "PromptBuilder",
    "get_client",
    "set_client",
    "FALLBACK_MODELS",
    "parse_json_from_response",
]
