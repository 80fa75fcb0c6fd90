from __future__ import annotations

from fastapi import APIRouter, Depends

from motionforge.api.deps import get_session_service
from motionforge.api.models import AuthRequest, AuthResponse
from motionforge.services.sessions import SessionService

router = APIRouter()


@router.post("/auth", response_model=AuthResponse, response_model_by_alias=True)
async def issue_viewer_token(request: AuthRequest, service: SessionService = Depends(get_session_service)) -> AuthResponse:  # noqa: B008
  """Issue a read-only viewer token for a session still inside retention."""
  payload = await service.issue_viewer_token(request.session_id)
  return AuthResponse(**payload)
