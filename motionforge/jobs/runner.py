"""Launch pipeline runs as independent background tasks."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from motionforge.jobs.pipeline import PipelineOrchestrator

logger = logging.getLogger(__name__)


class JobRunner:
  """Own the asyncio tasks running pipeline jobs.

  The event loop keeps only weak references to tasks, so the runner holds each
  one until it finishes.
  """

  def __init__(self, orchestrator: PipelineOrchestrator) -> None:
    self._orchestrator = orchestrator
    self._tasks: dict[str, asyncio.Task[None]] = {}

  @property
  def active_jobs(self) -> list[str]:
    """Return the ids of runs that have not finished yet."""
    return [job_id for job_id, task in self._tasks.items() if not task.done()]

  def launch(self, job_id: str, working_dir: Path) -> asyncio.Task[None]:
    """Start the pipeline for a staged job without waiting for it."""
    if job_id in self._tasks:
      raise ValueError(f"Job {job_id} is already running.")

    task = asyncio.create_task(self._orchestrator.run(job_id, working_dir), name=f"pipeline-{job_id}")
    self._tasks[job_id] = task
    task.add_done_callback(lambda finished: self._on_done(job_id, finished))
    logger.info("Launched pipeline job_id=%s", job_id)
    return task

  def _on_done(self, job_id: str, task: asyncio.Task[None]) -> None:
    self._tasks.pop(job_id, None)
    if task.cancelled():
      return
    exc = task.exception()
    if exc is not None:
      logger.error("Pipeline task for job %s failed: %s", job_id, exc, exc_info=exc)

  async def wait_idle(self) -> None:
    """Wait for every launched run to finish."""
    while self._tasks:
      await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

  async def aclose(self) -> None:
    """Cancel outstanding runs and wait for their cleanup to finish."""
    tasks = list(self._tasks.values())
    for task in tasks:
      task.cancel()
    if tasks:
      logger.info("Cancelling %s in-flight pipeline job(s)", len(tasks))
      await asyncio.gather(*tasks, return_exceptions=True)
    self._tasks.clear()
