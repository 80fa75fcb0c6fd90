"""Names and trimmed payloads for per-stage response artifacts."""

from __future__ import annotations

from typing import Any

from motionforge.jobs.models import utc_timestamp

ACCESS_TOKEN_ARTIFACT = "01_get_access_token"
CREATE_BUCKET_ARTIFACT = "02_create_bucket"
UPLOAD_FILES_ARTIFACT = "03_upload_files"
LINK_REFERENCES_ARTIFACT = "05_link_references"
START_TRANSLATION_ARTIFACT = "06_start_translation_job"
TRANSLATION_STATUS_ARTIFACT = "07_translation_status"
METADATA_ARTIFACT = "08_metadata"
HIERARCHY_ARTIFACT = "09_object_hierarchy"
PROPERTIES_ARTIFACT = "10_properties_all_objects"


def token_artifact(*, token_type: str, expires_in: int) -> dict[str, Any]:
  """Describe an acquired token without persisting the secret itself."""
  return {"token_type": token_type, "expires_in": expires_in}


def completed_artifact(**extra: Any) -> dict[str, Any]:
  """Stamp a stage that produced nothing worth keeping beyond its outcome."""
  return {"status": "completed", "timestamp": utc_timestamp(), **extra}


def metadata_artifact(*, metadata_type: str | None, viewables: list[dict[str, Any]]) -> dict[str, Any]:
  return {"data": {"type": metadata_type, "metadata": viewables}}
