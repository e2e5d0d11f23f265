"""
Claude API client for Preva.

Provides free-text generation, schema-constrained generation through forced
tool use, and an ordered model fallback for rate-limited or unavailable
models. Prompts live as templates in `preva/prompts`.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, TypeVar

import anthropic
import structlog
from anthropic import Anthropic
from pydantic import BaseModel

from preva.errors import AnalysisError, ConfigurationError
from preva.llm.parsing import parse_json_from_response

T = TypeVar("T", bound=BaseModel)

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

# Tried in order by generate_with_fallback; later entries only on 429/503
FALLBACK_MODELS = [
    "claude-sonnet-4-20250514",
    "claude-3-7-sonnet-20250219",
    "claude-3-5-haiku-20241022",
]

RETRYABLE_STATUS = {429, 503}

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


class LLMClient:
    """
    Client for Claude API with structured output support.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: Any | None = None,
        structured_output: bool = True,
    ):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if client is None and not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set.")

        self.client = client or Anthropic(api_key=self.api_key)
        self.model = model or os.environ.get("PREVA_MODEL", DEFAULT_MODEL)
        self.structured_output = structured_output

    def _create(self, model: str | None = None, **params: Any):
        return self.client.messages.create(model=model or self.model, **params)

    @staticmethod
    def _text_of(response: Any) -> str:
        parts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        return "".join(parts).strip()

    def generate(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> str:
        """
        Generate a free-form text response.
        """
        try:
            response = self._create(
                max_tokens=max_tokens,
                system=system or "You are a helpful assistant.",
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
            )
        except anthropic.APIError as e:
            raise AnalysisError(f"Model request failed: {e}", stage="text") from e

        text = self._text_of(response)
        if not text:
            raise AnalysisError("Empty response from model.", stage="text")
        return text

    def generate_with_fallback(
        self,
        models: list[str],
        prompt: str,
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> str:
        """
        Generate text, moving down `models` only when a model answers 429 or 503.

        Any other error is raised immediately.
        """
        last_error: Exception | None = None
        for model in models:
            try:
                response = self._create(
                    model=model,
                    max_tokens=max_tokens,
                    system=system or "You are a helpful assistant.",
                    messages=[{"role": "user", "content": prompt}],
                    temperature=temperature,
                )
            except anthropic.APIStatusError as e:
                if e.status_code in RETRYABLE_STATUS:
                    logger.warning("model_unavailable", model=model, status=e.status_code)
                    last_error = e
                    continue
                raise AnalysisError(f"Model request failed: {e}", stage="text") from e
            except anthropic.APIError as e:
                raise AnalysisError(f"Model request failed: {e}", stage="text") from e

            text = self._text_of(response)
            if not text:
                raise AnalysisError("Empty response from model.", stage="text")
            return text

        raise AnalysisError(f"All models unavailable: {last_error}", stage="text")

    def generate_structured(
        self,
        prompt: str,
        schema: type[T],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> dict | None:
        """
        Generate output constrained to a Pydantic model's JSON schema.

        Uses Claude's tool use for reliable structured output. Returns the raw
        tool input, or None when the response carries no tool call.
        """
        schema_dict = schema.model_json_schema(by_alias=True)

        # Build the tool
        tool = {
            "name": "output",
            "description": "Output the structured response",
            "input_schema": schema_dict,
        }

        try:
            response = self._create(
                max_tokens=max_tokens,
                system=system or "You are a helpful assistant. Use the provided tool to output your response.",
                messages=[{"role": "user", "content": prompt}],
                tools=[tool],
                tool_choice={"type": "tool", "name": "output"},
                temperature=temperature,
            )
        except anthropic.APIError as e:
            raise AnalysisError(f"Model request failed: {e}", stage="structured") from e

        # Extract the tool call result
        for block in response.content:
            if block.type == "tool_use" and block.name == "output":
                if isinstance(block.input, dict):
                    return block.input
                if isinstance(block.input, str):
                    return parse_json_from_response(block.input)
        return None

    def generate_json(
        self,
        prompt: str,
        schema: type[T],
        system: str | None = None,
    ) -> T:
        """
        Get a response validated into `schema`.

        Prefers schema-constrained decoding. Falls back to asking for plain
        JSON and repairing the text when structured output is disabled or the
        model answers without a tool call.
        """
        data = None
        if self.structured_output:
            data = self.generate_structured(prompt, schema, system=system)
            if data is None:
                logger.warning("structured_output_missing", schema=schema.__name__)

        if data is None:
            text = self.generate(
                prompt + "\n\nRespond with a single JSON object only.",
                system=system,
            )
            data = parse_json_from_response(text)

        if not isinstance(data, dict):
            raise AnalysisError(
                f"Model returned {type(data).__name__} where a JSON object was expected.",
                stage="text",
            )
        return schema.model_validate(data)


class PromptBuilder:
    """
    Utility for building prompts from templates.
    """

    def __init__(self, prompts_dir: Path | None = None):
        self.prompts_dir = prompts_dir or Path(__file__).parent.parent / "prompts"

    def load_template(self, path: str) -> str:
        """Load a prompt template file."""
        full_path = self.prompts_dir / path
        if not full_path.exists():
            raise FileNotFoundError(f"Prompt template not found: {full_path}")
        return full_path.read_text()

    def render(self, template_path: str, **kwargs: Any) -> str:
        """Load and render a template with variables."""
        template = self.load_template(template_path)

        def fill(match: re.Match) -> str:
            key = match.group(1)
            if key not in kwargs:
                return match.group(0)
            value = kwargs[key]
            if isinstance(value, (dict, list)):
                return json.dumps(value, indent=2, default=str)
            return str(value)

        # One pass, so substituted values are never rescanned
        return _PLACEHOLDER.sub(fill, template)


# Singleton client instance
_client: LLMClient | None = None


def get_client() -> LLMClient:
    """Get the singleton LLM client."""
    global _client
    if _client is None:
        _client = LLMClient()
    return _client


def set_client(client: LLMClient | None) -> None:
    """Set the singleton LLM client."""
    global _client
    _client = client
