"""Shared fixtures and in-memory fakes for the remote services."""

from __future__ import annotations

import copy
import io
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

# Ensure required settings are available before importing the app.
_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="motionforge-tests-"))
os.environ.setdefault("MOTIONFORGE_ALLOWED_ORIGINS", "http://localhost")
os.environ["MOTIONFORGE_UPLOADS_DIR"] = str(_RUNTIME_DIR / "uploads")
os.environ["MOTIONFORGE_SESSIONS_DIR"] = str(_RUNTIME_DIR / "responses")
os.environ["MOTIONFORGE_LOG_DIR"] = str(_RUNTIME_DIR / "logs")
os.environ.pop("GEMINI_API_KEY", None)

import pyzipper  # noqa: E402
import pytest  # noqa: E402

from motionforge.ai.providers.base import AIModel, GenerationConfig, SimpleModelResponse  # noqa: E402
from motionforge.core.errors import RemoteStageError  # noqa: E402
from motionforge.jobs.polling import PollResult  # noqa: E402
from motionforge.services.translation.interface import PIPELINE_SCOPES, AccessToken, MetadataResult, PartReference, UploadCallback  # noqa: E402

SAMPLE_HIERARCHY = {
  "data": {
    "type": "objects",
    "objects": [{"objectid": 1, "name": "Gearbox", "objects": [{"objectid": 2, "name": "Shaft"}, {"objectid": 3, "name": "Housing"}]}],
  }
}
SAMPLE_PROPERTIES = {
  "data": {
    "type": "properties",
    "collection": [{"objectid": 2, "name": "Shaft", "properties": {"Dimensions": {"Length": "120 mm"}}}],
  }
}
SAMPLE_COMMANDS_TEXT = '```json\n[{"fragmentId": 2, "action": "rotate", "params": {"axis": "z", "angle": 90}}, {"fragmentId": 3, "action": "translate", "params": {"x": 0, "y": 0, "z": 50}}]\n```'


def make_zip(files: dict[str, bytes]) -> bytes:
  """Build an in-memory archive from name -> bytes."""
  buffer = io.BytesIO()
  with pyzipper.AESZipFile(buffer, "w", compression=pyzipper.ZIP_DEFLATED) as archive:
    for name, data in files.items():
      archive.writestr(name, data)
  return buffer.getvalue()


def assembly_zip() -> bytes:
  return make_zip({"Gearbox/Gearbox.iam": b"assembly", "Gearbox/Parts/Shaft.ipt": b"shaft", "Gearbox/Parts/Housing.ipt": b"housing"})


class FakeTranslationService:
  """In-memory translation service that records every call."""

  def __init__(self, *, manifest_states: Sequence[str] = ("success",), fail_stage: str | None = None, hierarchy_pending: int = 0, properties_pending: int = 0) -> None:
    self.calls: list[str] = []
    self.scopes: list[tuple[str, ...]] = []
    self.uploaded: list[str] = []
    self.references: list[PartReference] = []
    self.assembly_name: str | None = None
    self.closed = False
    self._manifest_states = list(manifest_states)
    self._fail_stage = fail_stage
    self._hierarchy_pending = hierarchy_pending
    self._properties_pending = properties_pending

  def _record(self, stage: str) -> None:
    self.calls.append(stage)
    if stage == self._fail_stage:
      raise RemoteStageError(stage, f"{stage} rejected", status_code=500)

  async def acquire_token(self, scopes: Sequence[str] = PIPELINE_SCOPES) -> AccessToken:
    self._record("access_token")
    self.scopes.append(tuple(scopes))
    return AccessToken(access_token=f"token-{len(self.scopes)}", expires_in=3599)

  async def create_bucket(self, token: AccessToken, bucket_key: str) -> bool:
    self._record("create_bucket")
    return False

  async def upload_files(self, token: AccessToken, bucket_key: str, files: Sequence[Path], on_uploaded: UploadCallback | None = None) -> int:
    self._record("upload_files")
    for index, path in enumerate(files, start=1):
      self.uploaded.append(path.name)
      if on_uploaded is not None:
        await on_uploaded(index, len(files))
    return len(files)

  async def link_references(self, token: AccessToken, bucket_key: str, assembly_name: str, references: Sequence[PartReference]) -> int:
    self._record("link_references")
    self.assembly_name = assembly_name
    self.references = list(references)
    return len(references)

  async def submit_translation(self, token: AccessToken, bucket_key: str, assembly_name: str) -> str:
    self._record("start_translation")
    return f"urn-{bucket_key}-{assembly_name}"

  async def translation_status(self, token: AccessToken, encoded_urn: str) -> PollResult:
    self._record("translate")
    state = self._manifest_states.pop(0) if len(self._manifest_states) > 1 else self._manifest_states[0]
    if state == "success":
      return PollResult.success({"status": "success", "progress": "complete"})
    if state == "failed":
      return PollResult.failure("Translation failed: missing reference")
    return PollResult.pending(f"Translation inprogress - {state}")

  async def fetch_metadata(self, token: AccessToken, encoded_urn: str) -> MetadataResult:
    self._record("metadata")
    return MetadataResult(viewable_guid="guid-3d", metadata_type="metadata", viewables=[{"guid": "guid-3d", "name": "3D View", "role": "3d"}])

  async def object_hierarchy(self, token: AccessToken, encoded_urn: str, viewable_guid: str) -> PollResult:
    self._record("hierarchy")
    if self._hierarchy_pending > 0:
      self._hierarchy_pending -= 1
      return PollResult.pending()
    return PollResult.success(SAMPLE_HIERARCHY)

  async def object_properties(self, token: AccessToken, encoded_urn: str, viewable_guid: str) -> PollResult:
    self._record("properties")
    if self._properties_pending > 0:
      self._properties_pending -= 1
      return PollResult.pending()
    return PollResult.success(SAMPLE_PROPERTIES)

  async def aclose(self) -> None:
    self.closed = True


class FakeModel(AIModel):
  """Generative model returning canned text or raising a canned error."""

  def __init__(self, text: str = SAMPLE_COMMANDS_TEXT, *, error: Exception | None = None) -> None:
    self.name = "fake-model"
    self.text = text
    self.error = error
    self.prompts: list[str] = []

  async def generate(self, prompt: str, config: GenerationConfig | None = None) -> SimpleModelResponse:
    self.prompts.append(prompt)
    if self.error is not None:
      raise self.error
    return SimpleModelResponse(content=self.text)


async def no_sleep(_seconds: float) -> None:
  return None


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def fake_translation() -> FakeTranslationService:
  return FakeTranslationService()


@pytest.fixture
def translation_factory() -> type[FakeTranslationService]:
  return FakeTranslationService


@pytest.fixture
def model_factory() -> type[FakeModel]:
  return FakeModel


@pytest.fixture
def make_archive():
  return make_zip


@pytest.fixture
def assembly_archive() -> bytes:
  return assembly_zip()


@pytest.fixture
def sample_hierarchy() -> dict:
  return copy.deepcopy(SAMPLE_HIERARCHY)


@pytest.fixture
def sample_properties() -> dict:
  return copy.deepcopy(SAMPLE_PROPERTIES)


@pytest.fixture
def instant_sleep():
  return no_sleep
