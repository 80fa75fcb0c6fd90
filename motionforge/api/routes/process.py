"""Upload endpoint that stages an assembly archive and starts the pipeline."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile, status

from motionforge.api.deps import ServiceContainer, get_container
from motionforge.api.models import ProcessResponse
from motionforge.core.errors import ServiceError

router = APIRouter()

# Define the upload field once to avoid inline function calls.
ZIPFILE_FIELD = File(None)
_READ_CHUNK_BYTES = 1024 * 1024


def _looks_like_zip(upload: UploadFile) -> bool:
  filename = (upload.filename or "").lower()
  return upload.content_type == "application/zip" or filename.endswith(".zip")


async def _read_bounded(upload: UploadFile, max_bytes: int) -> bytes:
  """Read the upload body, refusing anything larger than max_bytes."""
  buffer = bytearray()
  while True:
    chunk = await upload.read(_READ_CHUNK_BYTES)
    if not chunk:
      break
    buffer.extend(chunk)
    if len(buffer) > max_bytes:
      raise ServiceError(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "FILE_TOO_LARGE", "File too large", maxBytes=max_bytes)
  return bytes(buffer)


@router.post("/process", response_model=ProcessResponse, response_model_by_alias=True)
async def process_archive(zipfile: UploadFile | None = ZIPFILE_FIELD, container: ServiceContainer = Depends(get_container)) -> ProcessResponse:  # noqa: B008
  """Accept one ZIP upload and return the session id immediately."""
  if zipfile is None:
    raise ServiceError(status.HTTP_400_BAD_REQUEST, "MISSING_FILE", "No file uploaded")
  if not _looks_like_zip(zipfile):
    raise ServiceError(status.HTTP_400_BAD_REQUEST, "INVALID_ZIP", "Only ZIP files are allowed")

  try:
    payload = await _read_bounded(zipfile, container.settings.max_upload_bytes)
  finally:
    await zipfile.close()

  session_id = await container.sessions.start_processing(payload, zipfile.filename)
  return ProcessResponse(session_id=session_id)
