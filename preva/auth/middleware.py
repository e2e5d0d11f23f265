"""
Session tokens and the FastAPI auth dependencies.

A session token is an HS256 JWT carrying the user id (`sub`) and role. The
dependencies resolve it into an `Actor`, the request-scoped identity every
workflow receives explicitly.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from preva.db.client import is_configured
from preva.db.repositories import UserRepository
from preva.errors import ConfigurationError
from preva.models import User, UserRole

logger = structlog.get_logger(__name__)

ALGORITHM = "HS256"
SESSION_MAX_AGE = timedelta(days=30)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
  """The signed-in user a request acts on behalf of."""
  id: str
  role: UserRole
  patient_id: Optional[str] = None

  @property
  def is_nurse(self) -> bool:
    return self.role == UserRole.NURSE

  @property
  def is_patient(self) -> bool:
    return self.role == UserRole.PATIENT

  @classmethod
  def from_user(cls, user: User) -> "Actor":
    return cls(id=user.id, role=user.role, patient_id=user.patient_id)


def _session_secret() -> str:
  secret = os.environ.get("SESSION_SECRET")
  if not secret:
    raise ConfigurationError("SESSION_SECRET environment variable not set")
  return secret


def create_session_token(user: User, now: Optional[datetime] = None) -> str:
  """Issue a signed session token for a user."""
  issued = now or datetime.now(timezone.utc)
  claims = {
    "sub": user.id,
    "role": user.role.value,
    "iat": int(issued.timestamp()),
    "exp": int((issued + SESSION_MAX_AGE).timestamp()),
  }
  return jwt.encode(claims, _session_secret(), algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
  """
  Verify a session token and return its claims.

  Raises 401 for a bad signature, an expired token, or a missing claim.
  """
  try:
    claims = jwt.decode(token, _session_secret(), algorithms=[ALGORITHM])
  except ConfigurationError as e:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
  except JWTError as e:
    raise HTTPException(
      status_code=status.HTTP_401_UNAUTHORIZED,
      detail=f"Token validation failed: {str(e)}"
    )

  if not claims.get("sub") or claims.get("role") not in {r.value for r in UserRole}:
    raise HTTPException(
      status_code=status.HTTP_401_UNAUTHORIZED,
      detail="Invalid or expired token"
    )
  return claims


def _resolve_actor(token: str) -> Actor:
  if not is_configured():
    raise HTTPException(
      status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
      detail="Database not configured"
    )

  claims = decode_token(token)

  # The role in the token must still match the stored credential
  user = UserRepository().get_by_id(claims["sub"])
  if not user or user.role.value != claims["role"]:
    raise HTTPException(
      status_code=status.HTTP_401_UNAUTHORIZED,
      detail="Invalid or expired token"
    )
  actor = Actor.from_user(user)
  structlog.contextvars.bind_contextvars(actor_id=actor.id, role=actor.role.value)
  return actor


async def get_current_user(
  credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Actor:
  """
  Dependency to get the current authenticated user.

  Use this for routes that REQUIRE authentication.
  Raises 401 if not authenticated.
  """
  if not credentials:
    raise HTTPException(
      status_code=status.HTTP_401_UNAUTHORIZED,
      detail="Authentication required",
      headers={"WWW-Authenticate": "Bearer"},
    )
  return _resolve_actor(credentials.credentials)


async def get_nurse_user(
  actor: Actor = Depends(get_current_user)
) -> Actor:
  """
  Dependency to require the nurse role.

  Raises 403 if user is not a nurse.
  """
  if not actor.is_nurse:
    raise HTTPException(
      status_code=status.HTTP_403_FORBIDDEN,
      detail="Nurse access required"
    )
  return actor
