"""Background expiry of old session and staging directories."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from starlette.concurrency import run_in_threadpool

from motionforge.storage.sessions_repo import SessionStore
from motionforge.storage.staging import STAGING_DIR_PREFIX, StagingManager

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
  """What one sweep removed."""

  removed_sessions: list[str] = field(default_factory=list)
  removed_staging: list[Path] = field(default_factory=list)

  @property
  def total(self) -> int:
    return len(self.removed_sessions) + len(self.removed_staging)


def _stale_staging_dirs(root: Path, cutoff_epoch: float) -> list[Path]:
  if not root.is_dir():
    return []
  stale: list[Path] = []
  for entry in sorted(root.iterdir()):
    if not entry.is_dir() or not entry.name.startswith(STAGING_DIR_PREFIX):
      continue
    try:
      if entry.stat().st_mtime < cutoff_epoch:
        stale.append(entry)
    except FileNotFoundError:
      continue
  return stale


class RetentionSweeper:
  """Remove sessions whose updatedAt is older than the retention window.

  Expiry keys off the stored updatedAt, which every stage transition refreshes,
  so a job still in flight is never swept while the window exceeds the longest
  realistic pipeline run. Staging directories left behind by a crash are
  removed by the same window using their modification time.
  """

  def __init__(self, *, store: SessionStore, staging: StagingManager, retention_seconds: float, interval_seconds: float, clock: Callable[[], float] = time.time) -> None:
    if retention_seconds <= 0 or interval_seconds <= 0:
      raise ValueError("retention_seconds and interval_seconds must be positive.")
    self._store = store
    self._staging = staging
    self._retention_seconds = retention_seconds
    self._interval_seconds = interval_seconds
    self._clock = clock

  async def sweep_once(self, now: float | None = None) -> SweepReport:
    """Remove every expired session and orphaned staging directory."""
    cutoff = (self._clock() if now is None else now) - self._retention_seconds
    report = SweepReport()

    for expired in await self._store.list_expired(cutoff):
      await self._staging.release(expired.path)
      self._store.forget(expired.job_id)
      report.removed_sessions.append(expired.job_id)
      logger.info("Swept session job_id=%s reason=%s", expired.job_id, expired.reason)

    for orphan in await run_in_threadpool(_stale_staging_dirs, self._staging.root, cutoff):
      await self._staging.release(orphan)
      report.removed_staging.append(orphan)
      logger.info("Swept orphaned staging dir=%s", orphan)

    if report.total:
      logger.info("Retention sweep removed %s session(s) and %s staging dir(s)", len(report.removed_sessions), len(report.removed_staging))
    return report

  async def run_forever(self) -> None:
    """Sweep at startup and then on every interval until cancelled."""
    while True:
      try:
        await self.sweep_once()
      except Exception:  # noqa: BLE001
        logger.error("Retention sweep failed", exc_info=True)
      await asyncio.sleep(self._interval_seconds)
