from __future__ import annotations

from fastapi import APIRouter, Depends

from motionforge.api.deps import get_session_service
from motionforge.api.models import SessionStatusResponse
from motionforge.services.sessions import SessionService

router = APIRouter()


@router.get("/status/{session_id}", response_model=SessionStatusResponse, response_model_by_alias=True)
async def get_status(session_id: str, service: SessionService = Depends(get_session_service)) -> SessionStatusResponse:  # noqa: B008
  """Return the current record for a pipeline session."""
  record = await service.get_session(session_id)
  return SessionStatusResponse.from_record(record)
