from __future__ import annotations

from typing import Any

import msgspec
import pytest

from motionforge.jobs.models import SessionRecord, new_session, utc_timestamp
from motionforge.jobs.progress import PIPELINE_STAGES, TRANSLATE, UPLOAD_FILES, ProgressTracker


class InMemorySessionStore:
  """Minimal in-memory store for progress tracker tests."""

  def __init__(self) -> None:
    self.records: dict[str, SessionRecord] = {}
    self.history: list[SessionRecord] = []

  async def update(self, job_id: str, **fields: Any) -> SessionRecord:
    base = self.records.get(job_id) or new_session()
    # Merge updates onto the latest record to mimic persistence behavior.
    record = msgspec.structs.replace(base, **fields, updated_at=utc_timestamp())
    self.records[job_id] = record
    self.history.append(record)
    return record


def test_stage_checkpoints_are_strictly_increasing() -> None:
  checkpoints = [stage.progress for stage in PIPELINE_STAGES]
  assert checkpoints == sorted(set(checkpoints))
  assert checkpoints[0] == 5
  assert checkpoints[-1] == 95


@pytest.mark.anyio
async def test_progress_never_moves_backwards() -> None:
  store = InMemorySessionStore()
  tracker = ProgressTracker(job_id="job-1", store=store)

  await tracker.begin(TRANSLATE)
  await tracker.begin(UPLOAD_FILES)
  await tracker.report("late update", progress=10)

  assert [record.progress for record in store.history] == [60, 60, 60]
  assert store.records["job-1"].status == "processing"


@pytest.mark.anyio
async def test_report_uses_active_stage_progress_and_stays_below_complete() -> None:
  store = InMemorySessionStore()
  tracker = ProgressTracker(job_id="job-1", store=store)

  await tracker.begin(TRANSLATE)
  record = await tracker.report("Translation inprogress - 40%")
  assert record.progress == 65
  assert record.message == "Translation inprogress - 40%"

  record = await tracker.report("overshoot", progress=100)
  assert record.progress == 99


@pytest.mark.anyio
async def test_complete_and_fail_write_terminal_states() -> None:
  store = InMemorySessionStore()
  tracker = ProgressTracker(job_id="ok", store=store)
  await tracker.begin(UPLOAD_FILES)
  done = await tracker.complete({"encodedUrn": "abc"})
  assert (done.status, done.progress, done.result, done.error) == ("completed", 100, {"encodedUrn": "abc"}, None)

  tracker = ProgressTracker(job_id="bad", store=store)
  await tracker.begin(TRANSLATE)
  failed = await tracker.fail("translate: boom")
  assert (failed.status, failed.progress, failed.error, failed.message) == ("failed", 60, "translate: boom", "translate: boom")
