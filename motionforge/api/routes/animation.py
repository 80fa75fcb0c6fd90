from __future__ import annotations

from fastapi import APIRouter, Depends

from motionforge.ai.sanitizer import AnimationCommand
from motionforge.api.deps import get_session_service
from motionforge.services.sessions import SessionService

router = APIRouter()


@router.get("/generate-animation/{session_id}", response_model=list[AnimationCommand], response_model_by_alias=True)
async def generate_animation(session_id: str, service: SessionService = Depends(get_session_service)) -> list[AnimationCommand]:  # noqa: B008
  """Generate animation commands for a completed session."""
  return await service.generate_animation(session_id)
