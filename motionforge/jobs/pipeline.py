"""Orchestrate the archive -> translation -> metadata pipeline for one job."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from motionforge.core.errors import MotionForgeError, RemoteStageError, StagingError
from motionforge.jobs import artifacts
from motionforge.jobs.polling import PollResult, poll_until_terminal
from motionforge.jobs.progress import (
  ACCESS_TOKEN,
  CREATE_BUCKET,
  DETECT_ASSEMBLY,
  HIERARCHY,
  LINK_REFERENCES,
  METADATA,
  PROPERTIES,
  START_TRANSLATION,
  TRANSLATE,
  UPLOAD_FILES,
  ProgressTracker,
)
from motionforge.services.translation.interface import PIPELINE_SCOPES, PartReference, TranslationService
from motionforge.storage.sessions_repo import SessionStore
from motionforge.storage.staging import StagingManager
from motionforge.utils.ids import generate_bucket_key

logger = logging.getLogger(__name__)

NO_ASSEMBLY_MESSAGE = "No assembly (.iam) file found"
CANCELLED_MESSAGE = "Processing interrupted by service shutdown"


@dataclass(frozen=True)
class PollSettings:
  """Interval and budget for the bounded remote waits."""

  translation_interval_seconds: float = 10.0
  translation_timeout_seconds: float = 30 * 60.0
  metadata_interval_seconds: float = 5.0
  metadata_attempts: int = 5

  @property
  def metadata_timeout_seconds(self) -> float:
    return self.metadata_interval_seconds * self.metadata_attempts


@dataclass(frozen=True)
class RemoteJobHandle:
  """Identifiers assigned mid-pipeline and published as the session result."""

  bucket_key: str
  encoded_urn: str
  viewable_guid: str

  def as_result(self) -> dict[str, Any]:
    return {"bucketKey": self.bucket_key, "encodedUrn": self.encoded_urn, "viewableGuid": self.viewable_guid}


def _failure_message(exc: BaseException) -> str:
  if isinstance(exc, MotionForgeError):
    return str(exc)
  return f"Unexpected error: {exc.__class__.__name__}: {exc}" if str(exc) else f"Unexpected error: {exc.__class__.__name__}"


class PipelineOrchestrator:
  """Run the ordered translation stages for a staged job and record exactly one outcome.

  Every stage is announced through the progress tracker before it runs. The
  first failure aborts the remaining stages and marks the session failed; the
  working directory is released on every exit path.
  """

  def __init__(self, *, store: SessionStore, staging: StagingManager, translation: TranslationService, poll_settings: PollSettings | None = None, poll_sleep: Callable[[float], Awaitable[Any]] | None = None) -> None:
    self._store = store
    self._staging = staging
    self._translation = translation
    self._poll = poll_settings or PollSettings()
    self._poll_kwargs: dict[str, Any] = {} if poll_sleep is None else {"sleep": poll_sleep}

  async def run(self, job_id: str, working_dir: Path) -> None:
    """Drive one job to a terminal state; never raises for pipeline failures."""
    tracker = ProgressTracker(job_id=job_id, store=self._store)
    try:
      handle = await self._run_stages(job_id, working_dir, tracker)
      await tracker.complete(handle.as_result())
      logger.info("Job %s completed urn=%s", job_id, handle.encoded_urn)
    except asyncio.CancelledError:
      logger.warning("Job %s cancelled at stage=%s", job_id, tracker.current_stage.name if tracker.current_stage else "startup")
      await self._record_failure(job_id, tracker, CANCELLED_MESSAGE)
      raise
    except Exception as exc:
      stage = tracker.current_stage.name if tracker.current_stage else "startup"
      message = _failure_message(exc)
      logger.error("Job %s failed at stage=%s: %s", job_id, stage, message, exc_info=not isinstance(exc, MotionForgeError))
      await self._record_failure(job_id, tracker, message)
    finally:
      await self._staging.release(working_dir)

  async def _record_failure(self, job_id: str, tracker: ProgressTracker, message: str) -> None:
    try:
      await tracker.fail(message)
    except Exception:  # noqa: BLE001
      # The pipeline failure is already logged; a store outage must not escape the task.
      logger.error("Job %s failed and its failure could not be recorded", job_id, exc_info=True)

  async def _run_stages(self, job_id: str, working_dir: Path, tracker: ProgressTracker) -> RemoteJobHandle:
    client = self._translation

    await tracker.begin(ACCESS_TOKEN)
    token = await client.acquire_token(PIPELINE_SCOPES)
    await self._store.write_artifact(job_id, artifacts.ACCESS_TOKEN_ARTIFACT, artifacts.token_artifact(token_type=token.token_type, expires_in=token.expires_in))

    await tracker.begin(CREATE_BUCKET)
    bucket_key = generate_bucket_key()
    existed = await client.create_bucket(token, bucket_key)
    await self._store.write_artifact(job_id, artifacts.CREATE_BUCKET_ARTIFACT, {"success": True, "existed": existed})

    await tracker.begin(UPLOAD_FILES)
    files = self._staging.list_files(working_dir)
    if not files:
      raise StagingError("No files found in the uploaded archive")

    async def _on_uploaded(count: int, total: int) -> None:
      await tracker.report(f"Uploaded {count}/{total} files")

    uploaded = await client.upload_files(token, bucket_key, files, _on_uploaded)
    await self._store.write_artifact(job_id, artifacts.UPLOAD_FILES_ARTIFACT, artifacts.completed_artifact(filesUploaded=uploaded))

    await tracker.begin(DETECT_ASSEMBLY)
    assembly = self._staging.locate_primary_assembly(working_dir)
    if assembly is None:
      raise StagingError(NO_ASSEMBLY_MESSAGE)
    logger.info("Job %s assembly=%s", job_id, assembly.name)

    await tracker.begin(LINK_REFERENCES)
    references = [PartReference(filename=part.name, relative_path=part.relative_to(working_dir).as_posix()) for part in self._staging.list_part_files(working_dir)]
    linked = await client.link_references(token, bucket_key, assembly.name, references)
    await self._store.write_artifact(job_id, artifacts.LINK_REFERENCES_ARTIFACT, {"success": True, "referencesCount": linked})

    await tracker.begin(START_TRANSLATION)
    encoded_urn = await client.submit_translation(token, bucket_key, assembly.name)
    await self._store.write_artifact(job_id, artifacts.START_TRANSLATION_ARTIFACT, {"result": "created", "urn": encoded_urn})

    await tracker.begin(TRANSLATE)
    translation = await poll_until_terminal(
      lambda: client.translation_status(token, encoded_urn),
      stage=TRANSLATE.name,
      interval_seconds=self._poll.translation_interval_seconds,
      timeout_seconds=self._poll.translation_timeout_seconds,
      on_progress=tracker.report,
      **self._poll_kwargs,
    )
    await self._store.write_artifact(job_id, artifacts.TRANSLATION_STATUS_ARTIFACT, translation or {"status": "success"})

    await tracker.begin(METADATA)
    metadata = await client.fetch_metadata(token, encoded_urn)
    await self._store.write_artifact(job_id, artifacts.METADATA_ARTIFACT, artifacts.metadata_artifact(metadata_type=metadata.metadata_type, viewables=metadata.viewables))

    await tracker.begin(HIERARCHY)
    hierarchy = await self._poll_viewable(HIERARCHY.name, lambda: client.object_hierarchy(token, encoded_urn, metadata.viewable_guid))
    await self._store.write_artifact(job_id, artifacts.HIERARCHY_ARTIFACT, hierarchy)

    await tracker.begin(PROPERTIES)
    properties = await self._poll_viewable(PROPERTIES.name, lambda: client.object_properties(token, encoded_urn, metadata.viewable_guid))
    await self._store.write_artifact(job_id, artifacts.PROPERTIES_ARTIFACT, properties)

    return RemoteJobHandle(bucket_key=bucket_key, encoded_urn=encoded_urn, viewable_guid=metadata.viewable_guid)

  async def _poll_viewable(self, stage: str, operation: Callable[[], Awaitable[PollResult]]) -> dict[str, Any]:
    payload = await poll_until_terminal(
      operation,
      stage=stage,
      interval_seconds=self._poll.metadata_interval_seconds,
      timeout_seconds=self._poll.metadata_timeout_seconds,
      **self._poll_kwargs,
    )
    if not isinstance(payload, dict):
      raise RemoteStageError(stage, "Response carried no data")
    return payload
