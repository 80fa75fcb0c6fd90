import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from motionforge.core.errors import ServiceError

logger = logging.getLogger("uvicorn.error")


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    message = str(value)
    return f"{type(value).__name__}: {message}" if message else type(value).__name__
  return str(value)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx
    sanitized.append(_coerce_json_safe(scrubbed))
  return sanitized


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
  """Render a ServiceError as its `{error, code, ...}` body."""
  if exc.status_code >= 500:
    logger.error("ServiceError request_id=%s path=%s code=%s error=%s", _request_id(request), request.url.path, exc.code, exc.error)
  else:
    from motionforge.config import get_settings

    if get_settings().log_http_4xx:
      logger.warning("ServiceError request_id=%s path=%s status_code=%s code=%s", _request_id(request), request.url.path, exc.status_code, exc.code)
  return JSONResponse(status_code=exc.status_code, content=_coerce_json_safe(exc.to_payload()))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
  """Handle HTTP exceptions without leaking 5xx diagnostics."""
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", _request_id(request), request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": "Internal Server Error", "code": "HTTP_ERROR", "requestId": _request_id(request)})
  return JSONResponse(status_code=exc.status_code, content={"error": _coerce_json_safe(exc.detail), "code": "HTTP_ERROR"}, headers=getattr(exc, "headers", None))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors without echoing request payloads."""
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", _request_id(request), request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"error": "Invalid request", "code": "VALIDATION_ERROR", "details": sanitized_errors})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Catch unhandled errors and answer with a correlatable 500."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=exc)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Internal Server Error", "code": "INTERNAL_ERROR", "requestId": request_id})


def register_exception_handlers(app: FastAPI) -> None:
  """Attach every handler to the application."""
  app.add_exception_handler(ServiceError, service_error_handler)
  app.add_exception_handler(StarletteHTTPException, http_exception_handler)
  app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
  app.add_exception_handler(Exception, global_exception_handler)
