"""
Document store connection.

Preva checks credentials and ownership itself, so the server reaches
Supabase with the service-role key. Repositories only need `table(name)` and
`rpc(fn, params)`, which lets tests swap in an in-memory store through `set_client`.
"""

import os
from typing import Optional, Protocol

from supabase import create_client

from preva.errors import ConfigurationError


class TableSource(Protocol):
  """Anything that hands out query builders by table name or function."""

  def table(self, name: str): ...

  def rpc(self, fn: str, params: dict): ...


class StoreSettings:
  """Connection settings read from the environment."""

  def __init__(self):
    self.url = os.environ.get("SUPABASE_URL")
    self.service_key = os.environ.get("SUPABASE_SERVICE_KEY")

  @property
  def complete(self) -> bool:
    return bool(self.url and self.service_key)

  def require(self) -> None:
    """Raise ConfigurationError naming the first missing variable."""
    for name, value in (("SUPABASE_URL", self.url), ("SUPABASE_SERVICE_KEY", self.service_key)):
      if not value:
        raise ConfigurationError(f"{name} environment variable not set")


# -----------------------------------------------------------------------------
# Shared connection
# -----------------------------------------------------------------------------

_client: Optional[TableSource] = None


def get_client() -> TableSource:
  """The process-wide store connection, created on first use."""
  global _client
  if _client is None:
    settings = StoreSettings()
    settings.require()
    _client = create_client(settings.url, settings.service_key)
  return _client


def set_client(client: Optional[TableSource]) -> None:
  """Install a connection (or any object with `table`) for later calls."""
  global _client
  _client = client


def is_configured() -> bool:
  """True when a connection exists or can be created."""
  return _client is not None or StoreSettings().complete


def reset_clients() -> None:
  """Forget the current connection."""
  global _client
  _client = None
