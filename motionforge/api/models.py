from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from motionforge.jobs.models import SessionRecord, SessionStatus


class HealthResponse(BaseModel):
  status: StrictStr
  version: StrictStr


class ProcessResponse(BaseModel):
  """Acknowledgement returned as soon as a job is staged and launched."""

  success: bool = True
  message: StrictStr = "Processing started"
  session_id: StrictStr = Field(alias="sessionId")
  model_config = ConfigDict(populate_by_name=True)


class SessionStatusResponse(BaseModel):
  """Status payload for a pipeline session."""

  status: SessionStatus
  message: StrictStr
  progress: int = Field(ge=0, le=100)
  result: dict[str, Any] | None = None
  error: StrictStr | None = None
  file_name: StrictStr | None = Field(default=None, alias="fileName")
  created_at: StrictStr = Field(alias="createdAt")
  updated_at: StrictStr = Field(alias="updatedAt")
  model_config = ConfigDict(populate_by_name=True)

  @classmethod
  def from_record(cls, record: SessionRecord) -> SessionStatusResponse:
    return cls(
      status=record.status,
      message=record.message,
      progress=record.progress,
      result=record.result,
      error=record.error,
      file_name=record.file_name,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )


class AuthRequest(BaseModel):
  """Viewer token request; the id format is checked by the service."""

  session_id: StrictStr | None = Field(default=None, alias="sessionId")
  model_config = ConfigDict(populate_by_name=True, extra="forbid")


class AuthResponse(BaseModel):
  access_token: StrictStr = Field(alias="accessToken")
  token_type: StrictStr = Field(default="Bearer", alias="tokenType")
  expires_in: int = Field(alias="expiresIn")
  session_age_hours: float = Field(alias="sessionAgeHours")
  model_config = ConfigDict(populate_by_name=True)
