import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from motionforge.core.env_contract import EnvContractError, validate_runtime_env_or_raise
from motionforge.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Prepare directories, wire services, and run the retention sweeper."""
  from motionforge.api.deps import build_container
  from motionforge.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("motionforge.core.lifespan")

  try:
    initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
    validate_runtime_env_or_raise(logger=logger)
  except EnvContractError:
    logger.error("Environment contract failed; refusing to start the service.", exc_info=True)
    raise
  except Exception:
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  # Tests install their own container with fake remote services.
  container = getattr(app.state, "container", None)
  if container is None:
    container = build_container(settings)
    app.state.container = container

  # Working and record roots must exist before the first upload arrives.
  for directory in (container.settings.uploads_dir, container.settings.sessions_dir):
    Path(directory).mkdir(parents=True, exist_ok=True)

  sweeper_task = asyncio.create_task(container.sweeper.run_forever(), name="retention-sweeper")
  try:
    yield
  finally:
    sweeper_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
      await sweeper_task
    await container.aclose()
    logger.info("Shutdown complete.")
