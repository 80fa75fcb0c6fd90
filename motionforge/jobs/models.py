"""Domain models for translation pipeline sessions."""

from __future__ import annotations

import calendar
import time
from typing import Any, Literal

import msgspec

SessionStatus = Literal["queued", "processing", "completed", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


class SessionRecord(msgspec.Struct, rename="camel", kw_only=True):
  """Durable status/progress record for one pipeline job."""

  status: SessionStatus = "queued"
  message: str = "Processing queued"
  progress: int = 0
  result: dict[str, Any] | None = None
  error: str | None = None
  file_name: str | None = None
  created_at: str
  updated_at: str

  @property
  def is_terminal(self) -> bool:
    """Return True once the session reached completed or failed."""
    return self.status in TERMINAL_STATUSES


# Fields callers may merge through SessionStore.update; timestamps are store-owned.
UPDATABLE_FIELDS: frozenset[str] = frozenset({"status", "message", "progress", "result", "error", "file_name"})


def utc_timestamp(epoch_seconds: float | None = None) -> str:
  """Return an ISO-8601 UTC timestamp with millisecond precision."""
  now = time.time() if epoch_seconds is None else epoch_seconds
  millis = int((now % 1) * 1000)
  return f"{time.strftime(TIMESTAMP_FORMAT, time.gmtime(now))}.{millis:03d}Z"


def parse_timestamp(raw: str) -> float:
  """Convert a stored timestamp back into epoch seconds."""
  # Accept both the millisecond form we write and plain second precision.
  base, _, fraction = raw.rstrip("Z").partition(".")
  struct = time.strptime(base, TIMESTAMP_FORMAT)
  seconds = float(calendar.timegm(struct))
  if fraction:
    seconds += float(f"0.{fraction}")
  return seconds


def new_session(now: float | None = None) -> SessionRecord:
  """Return a freshly-initialized queued session."""
  timestamp = utc_timestamp(now)
  return SessionRecord(created_at=timestamp, updated_at=timestamp)
