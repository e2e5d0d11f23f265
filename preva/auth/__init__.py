"""
Authentication module for Preva.

Provides password hashing, session tokens, the request-scoped Actor, and
the authorization policy shared by all workflows.
"""

from preva.auth.middleware import (
  get_current_user,
  get_nurse_user,
  create_session_token,
  decode_token,
  Actor,
)
from preva.auth.passwords import hash_password, verify_password

__all__ = [
  "get_current_user",
  "get_nurse_user",
  "create_session_token",
  "decode_token",
  "Actor",
  "hash_password",
  "verify_password",
]
