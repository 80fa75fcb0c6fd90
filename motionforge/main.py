from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from motionforge import __version__
from motionforge.api.models import HealthResponse
from motionforge.api.routes import animation, auth, process, status
from motionforge.config import get_settings
from motionforge.core.exceptions import register_exception_handlers
from motionforge.core.lifespan import lifespan
from motionforge.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware


def create_app() -> FastAPI:
  """Build the HTTP application."""
  settings = get_settings()

  app = FastAPI(title="MotionForge", version=__version__, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

  app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization", "x-request-id"], expose_headers=["content-length", "x-request-id"])

  register_exception_handlers(app)

  app.add_middleware(RequestLoggingMiddleware)
  app.add_middleware(SecurityHeadersMiddleware)

  @app.get("/health", response_model=HealthResponse, include_in_schema=False)
  async def health_check() -> HealthResponse:
    """Return a simple health status."""
    return HealthResponse(status="ok", version=__version__)

  app.include_router(process.router, tags=["process"])
  app.include_router(status.router, tags=["status"])
  app.include_router(auth.router, tags=["auth"])
  app.include_router(animation.router, tags=["animation"])
  return app


app = create_app()
