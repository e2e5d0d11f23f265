"""
Client-side helpers for polled views.

`ChatFeed` keeps the local copy of a chat thread. Polled pages are merged by
message id, never swapped in wholesale, so overlapping poll responses and
optimistic local inserts cannot drop or duplicate lines. `Poller` runs a
refresh function on a fixed interval until it is cancelled.

Nothing in the server imports this module. It is for Python consumers of
the HTTP API, which poll the chat, unread, self-report and calendar routes
at the intervals below.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

logger = structlog.get_logger(__name__)

CHAT_POLL_SECONDS = 5
UNREAD_POLL_SECONDS = 10
PATIENT_MESSAGES_POLL_SECONDS = 30
APPOINTMENTS_POLL_SECONDS = 60

TEMP_PREFIX = "tmp-"


def _timestamp(value: str) -> datetime:
    """Parse an ISO timestamp; a trailing Z is accepted."""
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class ChatFeed:
    """Local, de-duplicated view of one chat thread."""

    def __init__(self) -> None:
        self._by_id: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.cursor: Optional[str] = None

    @property
    def messages(self) -> list[dict[str, Any]]:
        """Messages ordered by creation time, optimistic entries included."""
        with self._lock:
            return sorted(self._by_id.values(), key=lambda m: (_timestamp(m["created_at"]), m["id"]))

    def merge(self, page: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """
        Add server messages not seen before.

        Returns the newly added messages and moves the cursor to the newest
        server timestamp, for the next `after` fetch.
        """
        fresh = []
        with self._lock:
            for message in page:
                if message["id"] in self._by_id:
                    continue
                self._by_id[message["id"]] = message
                fresh.append(message)
                if self.cursor is None or _timestamp(message["created_at"]) > _timestamp(self.cursor):
                    self.cursor = message["created_at"]
        return fresh

    def add_optimistic(self, text: str, sender_role: str) -> str:
        """Show a sent message immediately under a temporary id."""
        temp_id = f"{TEMP_PREFIX}{uuid4().hex}"
        with self._lock:
            self._by_id[temp_id] = {
                "id": temp_id,
                "sender_id": "",
                "sender_role": sender_role,
                "text": text,
                "read": False,
                "created_at": datetime.now(timezone.utc).isoformat(timespec="microseconds"),
            }
        return temp_id

    def reconcile(self, temp_id: str, page: Optional[list[dict[str, Any]]] = None) -> None:
        """Drop an optimistic entry once the authoritative page has been fetched."""
        with self._lock:
            self._by_id.pop(temp_id, None)
        if page:
            self.merge(page)

    @property
    def pending(self) -> list[str]:
        with self._lock:
            return [mid for mid in self._by_id if mid.startswith(TEMP_PREFIX)]


class Poller:
    """
    Call `fn` every `interval` seconds on a daemon thread until cancelled.

    Errors from `fn` are logged and the next tick still runs.
    """

    def __init__(self, fn: Callable[[], Any], interval: float, name: str = "poller"):
        self.fn = fn
        self.interval = interval
        self.name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> None:
        try:
            self.fn()
        except Exception:
            logger.exception("poll_failed", poller=self.name)

    def _run(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.interval)

    def start(self) -> "Poller":
        if self.running:
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def cancel(self, timeout: Optional[float] = None) -> None:
        """Stop polling; waits for an in-flight tick to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def __enter__(self) -> "Poller":
        return self.start()

    def __exit__(self, *exc: Any) -> None:
        self.cancel()
