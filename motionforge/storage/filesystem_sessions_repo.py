"""Filesystem-backed session store with per-job update serialization."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Any

import msgspec
from starlette.concurrency import run_in_threadpool

from motionforge.core.errors import StoreIOError
from motionforge.jobs.models import UPDATABLE_FIELDS, SessionRecord, new_session, parse_timestamp, utc_timestamp
from motionforge.storage.sessions_repo import ExpiredSession
from motionforge.utils.ids import is_valid_job_id

logger = logging.getLogger(__name__)

SESSION_DIR_PREFIX = "session_"
SESSION_FILE_NAME = "session.json"
_ARTIFACT_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileSessionStore:
  """Store one `session.json` plus stage artifacts per job under a root directory.

  Updates for the same job id are serialized through an asyncio lock owned by that
  id, so an earlier update can never land after a later one. Different job ids
  never share a lock. Reads are lock-free because every write replaces the file
  atomically.
  """

  def __init__(self, root: str | Path) -> None:
    self._root = Path(root)
    self._locks: dict[str, asyncio.Lock] = {}

  @property
  def root(self) -> Path:
    """Return the directory holding all session folders."""
    return self._root

  def session_dir(self, job_id: str) -> Path:
    """Return the directory backing a session."""
    if not is_valid_job_id(job_id):
      raise ValueError(f"Invalid job id: {job_id!r}")
    return self._root / f"{SESSION_DIR_PREFIX}{job_id}"

  def _lock_for(self, job_id: str) -> asyncio.Lock:
    # setdefault keeps lock creation race-free on a single event loop.
    return self._locks.setdefault(job_id, asyncio.Lock())

  async def get(self, job_id: str) -> SessionRecord | None:
    """Fetch a session, returning None when no record exists."""
    record_path = self.session_dir(job_id) / SESSION_FILE_NAME
    return await run_in_threadpool(_read_record, record_path)

  async def update(self, job_id: str, **fields: Any) -> SessionRecord:
    """Merge fields over the stored record and stamp updated_at."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
      raise ValueError(f"Unsupported session fields: {', '.join(sorted(unknown))}")

    directory = self.session_dir(job_id)
    record_path = directory / SESSION_FILE_NAME
    async with self._lock_for(job_id):
      existing = await run_in_threadpool(_read_record, record_path)
      base = existing if existing is not None else new_session()
      updated = msgspec.structs.replace(base, **fields, updated_at=utc_timestamp())
      payload = msgspec.json.format(msgspec.json.encode(updated), indent=2)
      # replace() skips type checks; decode what is about to be written so a bad field never reaches disk.
      try:
        msgspec.json.decode(payload, type=SessionRecord)
      except msgspec.ValidationError as exc:
        raise ValueError(f"Invalid session fields for {job_id}: {exc}") from exc
      await run_in_threadpool(_atomic_write, directory, SESSION_FILE_NAME, payload)
    return updated

  async def write_artifact(self, job_id: str, name: str, payload: Any) -> None:
    """Persist one JSON stage artifact next to the session record."""
    file_name = _artifact_file_name(name)
    directory = self.session_dir(job_id)
    try:
      encoded = msgspec.json.format(msgspec.json.encode(payload), indent=2)
    except (TypeError, msgspec.EncodeError) as exc:
      raise StoreIOError(f"Artifact {name} for session {job_id} is not JSON-serializable: {exc}") from exc
    await run_in_threadpool(_atomic_write, directory, file_name, encoded)

  async def read_artifact(self, job_id: str, name: str) -> Any | None:
    """Load a stage artifact, returning None when it was never written."""
    artifact_path = self.session_dir(job_id) / _artifact_file_name(name)
    return await run_in_threadpool(_read_json, artifact_path)

  async def list_expired(self, cutoff_epoch: float) -> list[ExpiredSession]:
    """Return sessions last updated before the cutoff or whose record is unreadable."""
    return await run_in_threadpool(self._scan_expired, cutoff_epoch)

  def forget(self, job_id: str) -> None:
    """Drop the per-job lock once a session directory is gone."""
    lock = self._locks.get(job_id)
    if lock is not None and not lock.locked():
      self._locks.pop(job_id, None)

  def _scan_expired(self, cutoff_epoch: float) -> list[ExpiredSession]:
    if not self._root.is_dir():
      return []

    expired: list[ExpiredSession] = []
    for entry in sorted(self._root.iterdir()):
      if not entry.is_dir() or not entry.name.startswith(SESSION_DIR_PREFIX):
        continue
      job_id = entry.name[len(SESSION_DIR_PREFIX) :]
      record_path = entry / SESSION_FILE_NAME

      # A directory without a record is only orphaned once it is itself old enough.
      if not record_path.exists():
        try:
          if entry.stat().st_mtime < cutoff_epoch:
            expired.append(ExpiredSession(job_id=job_id, path=entry, reason="missing_record"))
        except FileNotFoundError:
          continue
        continue

      try:
        record = _read_record(record_path)
        updated_epoch = parse_timestamp(record.updated_at) if record is not None else None
      except (StoreIOError, ValueError):
        logger.warning("Session record unreadable; treating as expired path=%s", record_path)
        expired.append(ExpiredSession(job_id=job_id, path=entry, reason="unreadable"))
        continue

      if updated_epoch is None:
        continue
      if updated_epoch < cutoff_epoch:
        expired.append(ExpiredSession(job_id=job_id, path=entry, reason="stale"))
    return expired


def _artifact_file_name(name: str) -> str:
  if not _ARTIFACT_NAME_RE.match(name) or name == SESSION_FILE_NAME.removesuffix(".json"):
    raise ValueError(f"Invalid artifact name: {name!r}")
  return f"{name}.json"


def _read_record(path: Path) -> SessionRecord | None:
  try:
    raw = path.read_bytes()
  except FileNotFoundError:
    return None
  except OSError as exc:
    raise StoreIOError(f"Failed to read session record {path}: {exc}") from exc

  try:
    return msgspec.json.decode(raw, type=SessionRecord)
  except (msgspec.DecodeError, msgspec.ValidationError) as exc:
    raise StoreIOError(f"Corrupt session record {path}: {exc}") from exc


def _read_json(path: Path) -> Any | None:
  try:
    raw = path.read_bytes()
  except FileNotFoundError:
    return None
  except OSError as exc:
    raise StoreIOError(f"Failed to read {path}: {exc}") from exc

  try:
    return msgspec.json.decode(raw)
  except msgspec.DecodeError as exc:
    raise StoreIOError(f"Corrupt JSON in {path}: {exc}") from exc


def _atomic_write(directory: Path, file_name: str, payload: bytes) -> None:
  target = directory / file_name
  temp_path = directory / f".{file_name}.{uuid.uuid4().hex}.tmp"
  try:
    directory.mkdir(parents=True, exist_ok=True)
    temp_path.write_bytes(payload)
    os.replace(temp_path, target)
  except OSError as exc:
    # Leave no half-written temp file behind for the sweeper to trip over.
    try:
      temp_path.unlink(missing_ok=True)
    except OSError:
      logger.warning("Failed to remove temp file %s", temp_path, exc_info=True)
    raise StoreIOError(f"Failed to write {target}: {exc}") from exc
