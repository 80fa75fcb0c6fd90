"""Storage interfaces for pipeline sessions."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Protocol

from motionforge.jobs.models import SessionRecord

ExpiryReason = Literal["stale", "unreadable", "missing_record"]


@dataclass(frozen=True)
class ExpiredSession:
  """A session directory eligible for removal by the retention sweeper."""

  job_id: str
  path: Path
  reason: ExpiryReason


class SessionStore(Protocol):
  """Repository contract for session persistence."""

  def session_dir(self, job_id: str) -> Path:
    """Return the directory backing a session."""

  async def get(self, job_id: str) -> SessionRecord | None:
    """Fetch a session, returning None when no record exists."""

  async def update(self, job_id: str, **fields: Any) -> SessionRecord:
    """Merge fields over the stored record and stamp updated_at."""

  async def write_artifact(self, job_id: str, name: str, payload: Any) -> None:
    """Persist one JSON stage artifact next to the session record."""

  async def read_artifact(self, job_id: str, name: str) -> Any | None:
    """Load a stage artifact, returning None when it was never written."""

  async def list_expired(self, cutoff_epoch: float) -> list[ExpiredSession]:
    """Return sessions last updated before the cutoff or whose record is unreadable."""

  def forget(self, job_id: str) -> None:
    """Drop in-process bookkeeping for a removed session."""
