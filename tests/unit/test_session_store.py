from __future__ import annotations

import asyncio
import json
import os
import time

import msgspec
import pytest

from motionforge.core.errors import StoreIOError
from motionforge.jobs.models import SessionRecord, parse_timestamp, utc_timestamp
from motionforge.storage.filesystem_sessions_repo import SESSION_FILE_NAME, FileSessionStore

JOB_ID = "1b4e28ba-2fa1-11d2-883f-0016d3cca427"


def _write_record(store: FileSessionStore, job_id: str, *, updated_epoch: float, status: str = "completed") -> None:
  directory = store.session_dir(job_id)
  directory.mkdir(parents=True, exist_ok=True)
  record = SessionRecord(status=status, message="done", progress=100, result={}, created_at=utc_timestamp(updated_epoch), updated_at=utc_timestamp(updated_epoch))
  (directory / SESSION_FILE_NAME).write_bytes(msgspec.json.encode(record))


@pytest.mark.anyio
async def test_update_creates_record_with_camel_case_fields(tmp_path) -> None:
  store = FileSessionStore(tmp_path)
  record = await store.update(JOB_ID, status="queued", message="Processing queued", progress=0, file_name="gearbox.zip")

  assert record.status == "queued"
  on_disk = json.loads((store.session_dir(JOB_ID) / SESSION_FILE_NAME).read_text())
  assert on_disk["fileName"] == "gearbox.zip"
  assert {"createdAt", "updatedAt", "progress", "message"} <= set(on_disk)


@pytest.mark.anyio
async def test_update_merges_over_previous_fields(tmp_path) -> None:
  store = FileSessionStore(tmp_path)
  first = await store.update(JOB_ID, status="processing", message="Uploading files", progress=20, file_name="gearbox.zip")
  second = await store.update(JOB_ID, message="Uploaded 1/3 files", progress=25)

  assert second.file_name == "gearbox.zip"
  assert second.status == "processing"
  assert second.created_at == first.created_at
  assert parse_timestamp(second.updated_at) >= parse_timestamp(first.updated_at)
  assert await store.get(JOB_ID) == second


@pytest.mark.anyio
async def test_update_rejects_unknown_fields(tmp_path) -> None:
  store = FileSessionStore(tmp_path)
  with pytest.raises(ValueError):
    await store.update(JOB_ID, created_at="2020-01-01T00:00:00.000Z")


@pytest.mark.anyio
async def test_update_rejects_mistyped_fields_without_writing(tmp_path) -> None:
  store = FileSessionStore(tmp_path)
  first = await store.update(JOB_ID, status="processing", progress=40)

  with pytest.raises(ValueError):
    await store.update(JOB_ID, progress="50")
  with pytest.raises(ValueError):
    await store.update(JOB_ID, status="paused")

  assert await store.get(JOB_ID) == first


@pytest.mark.anyio
async def test_concurrent_updates_apply_in_call_order(tmp_path) -> None:
  store = FileSessionStore(tmp_path)
  await asyncio.gather(*(store.update(JOB_ID, status="processing", progress=index, message=f"step {index}") for index in range(20)))

  record = await store.get(JOB_ID)
  assert record is not None
  assert record.progress == 19
  assert record.message == "step 19"


@pytest.mark.anyio
async def test_get_returns_none_for_unknown_and_raises_for_corrupt(tmp_path) -> None:
  store = FileSessionStore(tmp_path)
  assert await store.get(JOB_ID) is None

  directory = store.session_dir(JOB_ID)
  directory.mkdir(parents=True)
  (directory / SESSION_FILE_NAME).write_text("{not json")
  with pytest.raises(StoreIOError):
    await store.get(JOB_ID)


def test_session_dir_rejects_path_like_ids(tmp_path) -> None:
  store = FileSessionStore(tmp_path)
  with pytest.raises(ValueError):
    store.session_dir("../etc")


@pytest.mark.anyio
async def test_artifacts_are_stored_as_json_files(tmp_path) -> None:
  store = FileSessionStore(tmp_path)
  await store.write_artifact(JOB_ID, "09_object_hierarchy", {"data": {"objects": []}})

  assert (store.session_dir(JOB_ID) / "09_object_hierarchy.json").is_file()
  assert await store.read_artifact(JOB_ID, "09_object_hierarchy") == {"data": {"objects": []}}
  assert await store.read_artifact(JOB_ID, "10_properties_all_objects") is None
  with pytest.raises(ValueError):
    await store.write_artifact(JOB_ID, "../escape", {})


@pytest.mark.anyio
async def test_list_expired_covers_stale_unreadable_and_orphaned_dirs(tmp_path) -> None:
  store = FileSessionStore(tmp_path)
  now = time.time()
  cutoff = now - 24 * 3600

  stale_id = "aaaaaaaa-0000-0000-0000-000000000001"
  fresh_id = "aaaaaaaa-0000-0000-0000-000000000002"
  corrupt_id = "aaaaaaaa-0000-0000-0000-000000000003"
  young_orphan_id = "aaaaaaaa-0000-0000-0000-000000000004"
  old_orphan_id = "aaaaaaaa-0000-0000-0000-000000000005"

  _write_record(store, stale_id, updated_epoch=now - 25 * 3600)
  await store.update(fresh_id, status="processing", progress=60, message="Translating")
  store.session_dir(corrupt_id).mkdir(parents=True)
  (store.session_dir(corrupt_id) / SESSION_FILE_NAME).write_text("garbage")
  store.session_dir(young_orphan_id).mkdir(parents=True)
  store.session_dir(old_orphan_id).mkdir(parents=True)
  os.utime(store.session_dir(old_orphan_id), (now - 48 * 3600, now - 48 * 3600))

  expired = {item.job_id: item.reason for item in await store.list_expired(cutoff)}

  assert expired == {stale_id: "stale", corrupt_id: "unreadable", old_orphan_id: "missing_record"}


def test_timestamps_round_trip_to_the_millisecond() -> None:
  stamp = utc_timestamp(1_700_000_000.25)
  assert stamp == "2023-11-14T22:13:20.250Z"
  assert parse_timestamp(stamp) == pytest.approx(1_700_000_000.25)
  assert parse_timestamp("2023-11-14T22:13:20Z") == 1_700_000_000
