"""Bounded polling of long-running remote operations."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

from motionforge.core.errors import PollTimeoutError, RemoteStageError

logger = logging.getLogger(__name__)

PollState = Literal["success", "failure", "pending"]


@dataclass(frozen=True)
class PollResult:
  """Outcome of one status check against a remote job."""

  state: PollState
  value: Any = None
  detail: str | None = None

  @classmethod
  def success(cls, value: Any = None, detail: str | None = None) -> PollResult:
    return cls("success", value, detail)

  @classmethod
  def failure(cls, detail: str) -> PollResult:
    return cls("failure", None, detail)

  @classmethod
  def pending(cls, detail: str | None = None) -> PollResult:
    return cls("pending", None, detail)


async def poll_until_terminal(
  operation: Callable[[], Awaitable[PollResult]],
  *,
  stage: str,
  interval_seconds: float,
  timeout_seconds: float,
  not_found_grace_attempts: int = 3,
  on_progress: Callable[[str], Awaitable[Any]] | None = None,
  sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
  clock: Callable[[], float] = time.monotonic,
) -> Any:
  """Check `operation` every `interval_seconds` until it succeeds, fails, or the budget runs out.

  A 404 during the first `not_found_grace_attempts` checks counts as "not ready
  yet" because freshly submitted remote jobs are briefly invisible. Any other
  remote error propagates on the spot.

  Raises:
      RemoteStageError: the remote job reported failure, or a status call failed.
      PollTimeoutError: neither outcome arrived within `timeout_seconds`.
  """
  if interval_seconds <= 0 or timeout_seconds <= 0:
    raise ValueError("interval_seconds and timeout_seconds must be positive.")

  max_attempts = max(1, math.floor(timeout_seconds / interval_seconds))
  started = clock()
  attempts = 0

  while True:
    attempts += 1
    try:
      outcome = await operation()
    except RemoteStageError as exc:
      if exc.status_code == 404 and attempts <= not_found_grace_attempts:
        logger.info("Poll %s attempt=%s not found yet; retrying", stage, attempts)
        outcome = PollResult.pending()
      else:
        raise

    if outcome.state == "success":
      return outcome.value
    if outcome.state == "failure":
      raise RemoteStageError(stage, outcome.detail or f"{stage} failed")

    if outcome.detail and on_progress is not None:
      await on_progress(outcome.detail)

    # Stop before sleeping when another interval would exceed the budget.
    elapsed = clock() - started
    if attempts >= max_attempts or elapsed + interval_seconds > timeout_seconds:
      logger.warning("Poll %s exhausted after attempts=%s elapsed=%.1fs", stage, attempts, elapsed)
      raise PollTimeoutError(stage, timeout_seconds, attempts)
    await sleep(interval_seconds)
