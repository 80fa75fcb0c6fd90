"""Service wiring and FastAPI dependencies."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from motionforge.ai.providers.base import GenerationConfig
from motionforge.ai.providers.gemini import GeminiProvider
from motionforge.config import Settings
from motionforge.jobs.pipeline import PipelineOrchestrator, PollSettings
from motionforge.jobs.runner import JobRunner
from motionforge.jobs.sweeper import RetentionSweeper
from motionforge.services.animation import AnimationService
from motionforge.services.sessions import SessionService
from motionforge.services.translation.aps import ApsTranslationClient
from motionforge.services.translation.interface import TranslationService
from motionforge.storage.filesystem_sessions_repo import FileSessionStore
from motionforge.storage.staging import StagingManager

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
  """Long-lived collaborators shared by every request and background task."""

  settings: Settings
  store: FileSessionStore
  staging: StagingManager
  translation: TranslationService
  runner: JobRunner
  sweeper: RetentionSweeper
  sessions: SessionService

  async def aclose(self) -> None:
    await self.runner.aclose()
    await self.translation.aclose()


def build_container(settings: Settings, *, translation: TranslationService | None = None, animation: AnimationService | None = None, poll_settings: PollSettings | None = None) -> ServiceContainer:
  """Assemble the store, staging, pipeline and sweeper from settings."""
  store = FileSessionStore(settings.sessions_dir)
  staging = StagingManager(settings.uploads_dir)
  translation = translation or ApsTranslationClient.from_settings(settings)

  if animation is None and settings.gemini_api_key:
    model = GeminiProvider(settings.gemini_api_key, timeout_seconds=settings.generation_timeout_seconds).get_model(settings.gemini_model)
    animation = AnimationService(model, GenerationConfig())
  if animation is None:
    logger.warning("GEMINI_API_KEY is not set; animation generation is disabled.")

  poll_settings = poll_settings or PollSettings(
    translation_interval_seconds=settings.translation_check_interval_seconds,
    translation_timeout_seconds=settings.translation_timeout_seconds,
    metadata_interval_seconds=settings.metadata_retry_interval_seconds,
    metadata_attempts=settings.metadata_retry_attempts,
  )
  orchestrator = PipelineOrchestrator(store=store, staging=staging, translation=translation, poll_settings=poll_settings)
  runner = JobRunner(orchestrator)
  sweeper = RetentionSweeper(store=store, staging=staging, retention_seconds=settings.session_retention_seconds, interval_seconds=settings.sweep_interval_seconds)
  sessions = SessionService(store=store, staging=staging, runner=runner, translation=translation, animation=animation, retention_hours=settings.session_retention_hours)
  return ServiceContainer(settings=settings, store=store, staging=staging, translation=translation, runner=runner, sweeper=sweeper, sessions=sessions)


def get_container(request: Request) -> ServiceContainer:
  """Return the container installed by the application lifespan."""
  container = getattr(request.app.state, "container", None)
  if container is None:
    raise RuntimeError("Service container is not initialized.")
  return container


def get_session_service(request: Request) -> SessionService:
  return get_container(request).sessions
