"""Pipeline stage plan and monotonic progress reporting."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from motionforge.jobs.models import SessionRecord
from motionforge.storage.sessions_repo import SessionStore

logger = logging.getLogger(__name__)

COMPLETE_PROGRESS = 100
COMPLETED_MESSAGE = "Processing completed successfully"


@dataclass(frozen=True)
class Stage:
  """One ordered pipeline stage with its announcement and progress checkpoint."""

  name: str
  message: str
  progress: int
  # Progress written while the stage reports intermediate updates.
  active_progress: int | None = None


ACCESS_TOKEN = Stage("access_token", "Getting access token", 5)
CREATE_BUCKET = Stage("create_bucket", "Creating bucket", 10)
UPLOAD_FILES = Stage("upload_files", "Uploading files", 20, active_progress=25)
DETECT_ASSEMBLY = Stage("detect_assembly", "Detecting assembly file", 30)
LINK_REFERENCES = Stage("link_references", "Linking references", 40)
START_TRANSLATION = Stage("start_translation", "Starting translation", 50)
TRANSLATE = Stage("translate", "Translating model (this may take several minutes)", 60, active_progress=65)
METADATA = Stage("metadata", "Retrieving metadata", 80)
HIERARCHY = Stage("hierarchy", "Extracting hierarchy", 85)
PROPERTIES = Stage("properties", "Retrieving properties", 95)

PIPELINE_STAGES: tuple[Stage, ...] = (ACCESS_TOKEN, CREATE_BUCKET, UPLOAD_FILES, DETECT_ASSEMBLY, LINK_REFERENCES, START_TRANSLATION, TRANSLATE, METADATA, HIERARCHY, PROPERTIES)


class ProgressTracker:
  """Write stage announcements to the session store without ever moving progress backwards.

  Only `complete()` may write 100; every other write is clamped below it and
  raised to the highest value already reported.
  """

  def __init__(self, *, job_id: str, store: SessionStore, initial_progress: int = 0) -> None:
    self._job_id = job_id
    self._store = store
    self._progress = max(0, min(initial_progress, COMPLETE_PROGRESS - 1))
    self._stage: Stage | None = None

  @property
  def progress(self) -> int:
    """Return the highest progress value written so far."""
    return self._progress

  @property
  def current_stage(self) -> Stage | None:
    """Return the stage most recently announced."""
    return self._stage

  def _clamp(self, value: int) -> int:
    return max(self._progress, min(value, COMPLETE_PROGRESS - 1))

  async def begin(self, stage: Stage) -> SessionRecord:
    """Announce a stage before any of its work runs."""
    self._stage = stage
    self._progress = self._clamp(stage.progress)
    logger.info("Job %s stage=%s progress=%s", self._job_id, stage.name, self._progress)
    return await self._store.update(self._job_id, status="processing", message=stage.message, progress=self._progress)

  async def report(self, message: str, progress: int | None = None) -> SessionRecord:
    """Record an intermediate update for the active stage."""
    if progress is None:
      stage = self._stage
      progress = stage.active_progress if stage and stage.active_progress is not None else self._progress
    self._progress = self._clamp(progress)
    return await self._store.update(self._job_id, message=message, progress=self._progress)

  async def complete(self, result: dict[str, Any]) -> SessionRecord:
    """Write the completed terminal state."""
    self._progress = COMPLETE_PROGRESS
    return await self._store.update(self._job_id, status="completed", message=COMPLETED_MESSAGE, progress=COMPLETE_PROGRESS, result=result, error=None)

  async def fail(self, error: str) -> SessionRecord:
    """Write the failed terminal state, leaving progress at its last value."""
    return await self._store.update(self._job_id, status="failed", message=error, error=error, progress=self._progress)
