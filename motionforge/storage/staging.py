"""Archive validation, extraction, and release of per-job working directories."""

from __future__ import annotations

import io
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

import pyzipper
from starlette.concurrency import run_in_threadpool

from motionforge.core.errors import InvalidArchiveError, StagingError
from motionforge.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

STAGING_DIR_PREFIX = "session_"
ASSEMBLY_SUFFIX = ".iam"
PART_SUFFIX = ".ipt"


@dataclass(frozen=True)
class StagedJob:
  """A freshly extracted upload awaiting the pipeline."""

  job_id: str
  working_dir: Path


def _is_unsafe_member(member_name: str) -> bool:
  normalized = member_name.replace("\\", "/")
  return normalized.startswith("/") or ".." in Path(normalized).parts or (len(normalized) > 1 and normalized[1] == ":")


def _open_archive(payload: bytes) -> pyzipper.AESZipFile:
  try:
    return pyzipper.AESZipFile(io.BytesIO(payload), mode="r")
  except (pyzipper.BadZipFile, pyzipper.LargeZipFile, EOFError, ValueError) as exc:
    raise InvalidArchiveError(f"Invalid ZIP file: {exc}") from exc


def _extract_archive(payload: bytes, output_dir: Path) -> None:
  """Extract every member into output_dir, refusing targets outside it."""
  root = output_dir.resolve()
  with _open_archive(payload) as archive:
    for member in archive.infolist():
      member_name = member.filename
      target_path = (output_dir / member_name).resolve()
      if root not in target_path.parents and target_path != root:
        raise StagingError(f"Unsafe extraction target for zip member: {member_name}")
      if member.is_dir():
        target_path.mkdir(parents=True, exist_ok=True)
        continue
      target_path.parent.mkdir(parents=True, exist_ok=True)
      with archive.open(member, "r") as source, target_path.open("wb") as destination:
        shutil.copyfileobj(source, destination)


def _remove_tree(path: Path) -> None:
  if path.is_dir():
    shutil.rmtree(path)
  elif path.exists():
    path.unlink()


class StagingManager:
  """Own the uploads root: validate archives, extract jobs, and release their files."""

  def __init__(self, uploads_root: str | Path) -> None:
    self._root = Path(uploads_root)

  @property
  def root(self) -> Path:
    """Return the directory holding staged uploads."""
    return self._root

  def validate_archive(self, payload: bytes) -> None:
    """Reject empty, malformed, encrypted, or path-escaping archives without touching disk."""
    if not payload:
      raise InvalidArchiveError("ZIP file is empty")

    with _open_archive(payload) as archive:
      members = archive.infolist()
      files = [member for member in members if not member.is_dir()]
      if not files:
        raise InvalidArchiveError("ZIP file is empty")

      for member in members:
        if _is_unsafe_member(member.filename):
          raise InvalidArchiveError(f"Unsafe path in zip member: {member.filename}")
        # Bit 0 of the general purpose flag marks an encrypted entry.
        if member.flag_bits & 0x1:
          raise InvalidArchiveError(f"Encrypted zip member is not supported: {member.filename}")

      try:
        corrupt_member = archive.testzip()
      except (pyzipper.BadZipFile, EOFError, OSError, RuntimeError, NotImplementedError) as exc:
        raise InvalidArchiveError(f"Invalid ZIP file: {exc}") from exc
      if corrupt_member is not None:
        raise InvalidArchiveError(f"Corrupt zip member: {corrupt_member}")

  async def stage(self, payload: bytes) -> StagedJob:
    """Validate the archive, mint a job id, and extract into its working directory."""
    await run_in_threadpool(self.validate_archive, payload)

    job_id = generate_job_id()
    working_dir = self._root / f"{STAGING_DIR_PREFIX}{job_id}"
    try:
      await run_in_threadpool(working_dir.mkdir, parents=True, exist_ok=False)
      await run_in_threadpool(_extract_archive, payload, working_dir)
    except StagingError:
      await self.release(working_dir)
      raise
    except (OSError, RuntimeError, pyzipper.BadZipFile) as exc:
      await self.release(working_dir)
      raise StagingError(f"Failed to extract archive: {exc}") from exc

    logger.info("Staged upload job_id=%s working_dir=%s", job_id, working_dir)
    return StagedJob(job_id=job_id, working_dir=working_dir)

  def locate_primary_assembly(self, working_dir: Path) -> Path | None:
    """Return the first assembly file in deterministic order, or None when absent."""
    for path in sorted(working_dir.rglob("*")):
      if path.is_file() and path.suffix.lower() == ASSEMBLY_SUFFIX:
        return path
    return None

  def list_part_files(self, working_dir: Path) -> list[Path]:
    """Return every part file the assembly may reference."""
    return [path for path in sorted(working_dir.rglob("*")) if path.is_file() and path.suffix.lower() == PART_SUFFIX]

  def list_files(self, working_dir: Path) -> list[Path]:
    """Return every extracted file in stable order."""
    return [path for path in sorted(working_dir.rglob("*")) if path.is_file()]

  async def release(self, path: Path) -> None:
    """Remove a staged or session directory; missing paths are a no-op and failures are logged."""
    try:
      await run_in_threadpool(_remove_tree, path)
    except OSError:
      logger.warning("Failed to release path=%s", path, exc_info=True)
