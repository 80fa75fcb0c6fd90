from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from motionforge.jobs.runner import JobRunner


class BlockingOrchestrator:
  """Orchestrator stand-in that runs until released."""

  def __init__(self) -> None:
    self.release = asyncio.Event()
    self.started: list[str] = []
    self.cancelled: list[str] = []

  async def run(self, job_id: str, working_dir: Path) -> None:
    self.started.append(job_id)
    try:
      await self.release.wait()
    except asyncio.CancelledError:
      self.cancelled.append(job_id)
      raise


@pytest.mark.anyio
async def test_launch_runs_jobs_in_background_and_forgets_finished_ones(tmp_path) -> None:
  orchestrator = BlockingOrchestrator()
  runner = JobRunner(orchestrator)

  runner.launch("job-a", tmp_path)
  runner.launch("job-b", tmp_path)
  await asyncio.sleep(0)
  assert sorted(runner.active_jobs) == ["job-a", "job-b"]
  assert orchestrator.started == ["job-a", "job-b"]

  orchestrator.release.set()
  await runner.wait_idle()
  assert runner.active_jobs == []


@pytest.mark.anyio
async def test_duplicate_launch_is_rejected(tmp_path) -> None:
  runner = JobRunner(BlockingOrchestrator())
  runner.launch("job-a", tmp_path)
  with pytest.raises(ValueError):
    runner.launch("job-a", tmp_path)
  await runner.aclose()


@pytest.mark.anyio
async def test_aclose_cancels_in_flight_jobs(tmp_path) -> None:
  orchestrator = BlockingOrchestrator()
  runner = JobRunner(orchestrator)
  runner.launch("job-a", tmp_path)
  await asyncio.sleep(0)

  await runner.aclose()
  assert orchestrator.cancelled == ["job-a"]
  assert runner.active_jobs == []
