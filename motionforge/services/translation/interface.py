from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from motionforge.jobs.polling import PollResult

PIPELINE_SCOPES: tuple[str, ...] = ("data:write", "data:read", "bucket:create", "bucket:delete")
VIEWER_SCOPES: tuple[str, ...] = ("data:read",)

UploadCallback = Callable[[int, int], Awaitable[Any]]


@dataclass(frozen=True)
class AccessToken:
  """OAuth client-credentials token returned by the authentication endpoint."""

  access_token: str
  token_type: str = "Bearer"
  expires_in: int = 3600


@dataclass(frozen=True)
class PartReference:
  """A part file the root assembly depends on."""

  filename: str
  relative_path: str


@dataclass(frozen=True)
class MetadataResult:
  """Viewables reported for a translated model."""

  viewable_guid: str
  metadata_type: str | None = None
  viewables: list[dict[str, Any]] = field(default_factory=list)


class TranslationService(Protocol):
  """Interface for the remote model translation service."""

  async def acquire_token(self, scopes: Sequence[str] = PIPELINE_SCOPES) -> AccessToken:
    """Exchange client credentials for an access token."""
    ...

  async def create_bucket(self, token: AccessToken, bucket_key: str) -> bool:
    """Create a transient bucket, returning True when it already existed."""
    ...

  async def upload_files(self, token: AccessToken, bucket_key: str, files: Sequence[Path], on_uploaded: UploadCallback | None = None) -> int:
    """Upload files one by one, stopping at the first failure."""
    ...

  async def link_references(self, token: AccessToken, bucket_key: str, assembly_name: str, references: Sequence[PartReference]) -> int:
    """Declare the part files referenced by the root assembly."""
    ...

  async def submit_translation(self, token: AccessToken, bucket_key: str, assembly_name: str) -> str:
    """Submit the translation job and return the encoded model URN."""
    ...

  async def translation_status(self, token: AccessToken, encoded_urn: str) -> PollResult:
    """Check the translation manifest once."""
    ...

  async def fetch_metadata(self, token: AccessToken, encoded_urn: str) -> MetadataResult:
    """Return the viewables of a translated model."""
    ...

  async def object_hierarchy(self, token: AccessToken, encoded_urn: str, viewable_guid: str) -> PollResult:
    """Check once whether the object tree is available."""
    ...

  async def object_properties(self, token: AccessToken, encoded_urn: str, viewable_guid: str) -> PollResult:
    """Check once whether the property collection is available."""
    ...

  async def aclose(self) -> None:
    """Release network resources."""
    ...
