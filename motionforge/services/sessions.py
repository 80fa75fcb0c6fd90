"""Request-facing operations over pipeline sessions."""

from __future__ import annotations

import logging
import time
from typing import Any

from motionforge.ai.sanitizer import AnimationCommand
from motionforge.core.errors import InvalidArchiveError, MalformedGenerationError, RemoteStageError, ServiceError, StagingError, StoreIOError
from motionforge.jobs import artifacts
from motionforge.jobs.models import SessionRecord, parse_timestamp
from motionforge.jobs.runner import JobRunner
from motionforge.services.animation import AnimationService
from motionforge.services.translation.interface import VIEWER_SCOPES, TranslationService
from motionforge.storage.sessions_repo import SessionStore
from motionforge.storage.staging import StagingManager
from motionforge.utils.ids import is_valid_job_id

logger = logging.getLogger(__name__)


def _require_valid_id(job_id: str | None) -> str:
  if not job_id or not is_valid_job_id(job_id):
    raise ServiceError(400, "INVALID_SESSION_ID", "Invalid session ID format")
  return job_id


def _not_found() -> ServiceError:
  return ServiceError(404, "SESSION_NOT_FOUND", "Session not found")


class SessionService:
  """Translate HTTP-level requests into store, staging, and pipeline calls."""

  def __init__(self, *, store: SessionStore, staging: StagingManager, runner: JobRunner, translation: TranslationService, animation: AnimationService | None, retention_hours: float) -> None:
    self._store = store
    self._staging = staging
    self._runner = runner
    self._translation = translation
    self._animation = animation
    self._retention_hours = retention_hours

  async def start_processing(self, payload: bytes, file_name: str | None) -> str:
    """Stage an uploaded archive, create its session, and launch the pipeline."""
    try:
      staged = await self._staging.stage(payload)
    except InvalidArchiveError as exc:
      raise ServiceError(400, "INVALID_ZIP", "Invalid ZIP file", details=str(exc)) from exc
    except StagingError as exc:
      logger.error("Staging failed for upload file_name=%s: %s", file_name, exc)
      raise ServiceError(500, "PROCESSING_ERROR", "Failed to start processing", details=str(exc)) from exc

    try:
      await self._store.update(staged.job_id, status="queued", message="Processing queued", progress=0, file_name=file_name)
    except StoreIOError as exc:
      logger.error("Session creation failed job_id=%s: %s", staged.job_id, exc)
      await self._staging.release(staged.working_dir)
      raise ServiceError(500, "PROCESSING_ERROR", "Failed to start processing", details=str(exc)) from exc

    self._runner.launch(staged.job_id, staged.working_dir)
    return staged.job_id

  async def get_session(self, job_id: str, *, error_code: str = "STATUS_ERROR") -> SessionRecord:
    """Return an existing session or raise the matching ServiceError."""
    _require_valid_id(job_id)
    try:
      record = await self._store.get(job_id)
    except StoreIOError as exc:
      logger.error("Session read failed job_id=%s: %s", job_id, exc)
      raise ServiceError(500, error_code, "Failed to get session status", details=str(exc)) from exc
    if record is None:
      raise _not_found()
    return record

  async def generate_animation(self, job_id: str) -> list[AnimationCommand]:
    """Generate commands for a completed session from its stored artifacts."""
    record = await self.get_session(job_id, error_code="ANIMATION_ERROR")
    if record.status != "completed":
      raise ServiceError(409, "SESSION_NOT_READY", "Session processing not completed", currentStatus=record.status)
    if self._animation is None:
      raise ServiceError(503, "ANIMATION_ERROR", "Animation generation is not configured")

    try:
      hierarchy = await self._store.read_artifact(job_id, artifacts.HIERARCHY_ARTIFACT)
      properties = await self._store.read_artifact(job_id, artifacts.PROPERTIES_ARTIFACT)
    except StoreIOError as exc:
      raise ServiceError(500, "ARTIFACTS_MISSING", "Stored model data could not be read", details=str(exc)) from exc
    if not isinstance(hierarchy, dict) or not isinstance(properties, dict):
      raise ServiceError(500, "ARTIFACTS_MISSING", "Stored model data is missing for this session")

    try:
      return await self._animation.generate(hierarchy, properties)
    except MalformedGenerationError as exc:
      raise ServiceError(502, "INVALID_GENERATION", "Generated animation was not valid JSON", details=exc.reason, rawText=exc.raw_text) from exc
    except RemoteStageError as exc:
      logger.error("Animation generation failed job_id=%s: %s", job_id, exc)
      raise ServiceError(502, "ANIMATION_ERROR", "Failed to generate animation", details=exc.detail) from exc

  async def issue_viewer_token(self, job_id: str | None, *, now: float | None = None) -> dict[str, Any]:
    """Issue a read-only token for a session still inside the retention window."""
    job_id = _require_valid_id(job_id)
    record = await self.get_session(job_id, error_code="AUTH_ERROR")

    age_hours = ((time.time() if now is None else now) - parse_timestamp(record.updated_at)) / 3600
    if age_hours > self._retention_hours:
      raise ServiceError(403, "SESSION_EXPIRED", "Session too old to generate new token", maxAgeHours=self._retention_hours)

    try:
      token = await self._translation.acquire_token(VIEWER_SCOPES)
    except RemoteStageError as exc:
      logger.error("Viewer token request failed job_id=%s: %s", job_id, exc)
      raise ServiceError(502, "AUTH_ERROR", "Failed to generate access token", details=exc.detail) from exc

    return {"accessToken": token.access_token, "tokenType": "Bearer", "expiresIn": token.expires_in, "sessionAgeHours": round(max(age_hours, 0.0), 2)}
