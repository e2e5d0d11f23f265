"""
Error taxonomy and the tagged result returned by every workflow.

Workflows raise the exceptions below internally. The `workflow` decorator
catches them at the boundary and hands callers a `Result` instead, so the
HTTP layer never has to know about individual exception types.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class PrevaError(Exception):
    """Base class for expected, user-facing failures."""

    code: str = "error"
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(PrevaError):
    """Role or ownership check failed."""

    code = "unauthorized"
    status_code = 403


class ConfigurationError(PrevaError):
    """An external credential or connection setting is missing."""

    code = "configuration"
    status_code = 503


class NotFound(PrevaError):
    """Referenced id is malformed or absent."""

    code = "not_found"
    status_code = 404


class ValidationError(PrevaError):
    """A required field is missing or invalid."""

    code = "validation"
    status_code = 400


class AnalysisError(PrevaError):
    """The model call failed or returned content that could not be parsed."""

    code = "analysis"
    status_code = 502

    def __init__(self, message: str, stage: str = "text"):
        super().__init__(message)
        self.stage = stage


class ProviderError(PrevaError):
    """A speech provider call returned a non-2xx status."""

    code = "provider"
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


@dataclass
class Result:
    """Tagged outcome of a workflow call."""

    ok: bool
    value: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    code: Optional[str] = None
    status_code: int = 200

    @classmethod
    def success(cls, **value: Any) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, code: str = "internal", status_code: int = 500) -> "Result":
        return cls(ok=False, error=error, code=code, status_code=status_code)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, **self.value}
        return {"ok": False, "error": self.error, "code": self.code}


def workflow(fn: Callable[..., Result]) -> Callable[..., Result]:
    """
    Convert exceptions raised inside a workflow into a failed Result.

    Expected errors keep their message and code; anything else is logged
    with its traceback and reported with the exception's message.
    """

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Result:
        try:
            return fn(*args, **kwargs)
        except PrevaError as e:
            logger.info("workflow_rejected", workflow=fn.__name__, code=e.code, error=e.message)
            return Result.failure(e.message, code=e.code, status_code=e.status_code)
        except Exception as e:
            logger.exception("workflow_failed", workflow=fn.__name__)
            return Result.failure(str(e) or type(e).__name__)

    return wrapper
