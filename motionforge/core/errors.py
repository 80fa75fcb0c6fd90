"""Error taxonomy shared by the pipeline, the store, and the HTTP layer."""

from __future__ import annotations

from typing import Any

MAX_RAW_TEXT_CHARS = 2000


class MotionForgeError(Exception):
  """Base class for domain failures raised by the service."""


class InvalidArchiveError(MotionForgeError):
  """Raised when an upload is empty or not a well-formed ZIP archive."""


class StagingError(MotionForgeError):
  """Raised when staged files cannot be extracted or lack a root assembly."""


class StoreIOError(MotionForgeError):
  """Raised when a session record cannot be read or written."""


class RemoteStageError(MotionForgeError):
  """Wrap a remote-service failure with the pipeline stage that triggered it."""

  def __init__(self, stage: str, message: str, *, status_code: int | None = None) -> None:
    self.stage = stage
    self.detail = message
    self.status_code = status_code
    super().__init__(f"{stage}: {message}")


class PollTimeoutError(MotionForgeError):
  """Raised when a bounded wait runs out of budget without a terminal outcome."""

  def __init__(self, stage: str, timeout_seconds: float, attempts: int) -> None:
    self.stage = stage
    self.timeout_seconds = timeout_seconds
    self.attempts = attempts
    super().__init__(f"{stage}: no terminal outcome after {attempts} attempts ({timeout_seconds:g}s budget)")


class MalformedGenerationError(MotionForgeError):
  """Raised when generated text cannot be parsed into animation commands."""

  def __init__(self, raw_text: str, reason: str = "Generated text is not a valid command list") -> None:
    self.raw_text = raw_text[:MAX_RAW_TEXT_CHARS]
    self.reason = reason
    super().__init__(reason)


class ServiceError(Exception):
  """HTTP-facing outcome carrying a status code, an error code, and extra body fields."""

  def __init__(self, status_code: int, code: str, error: str, **extra: Any) -> None:
    self.status_code = status_code
    self.code = code
    self.error = error
    self.extra = extra
    super().__init__(error)

  def to_payload(self) -> dict[str, Any]:
    """Return the JSON body for this error."""
    payload: dict[str, Any] = {"error": self.error, "code": self.code}
    payload.update(self.extra)
    return payload
