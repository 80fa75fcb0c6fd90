"""Autodesk Platform Services client for buckets, uploads, and Model Derivative jobs."""

from __future__ import annotations

import base64
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
from starlette.concurrency import run_in_threadpool

from motionforge.config import Settings
from motionforge.core.errors import RemoteStageError
from motionforge.jobs.polling import PollResult
from motionforge.services.translation.interface import PIPELINE_SCOPES, AccessToken, MetadataResult, PartReference, UploadCallback

logger = logging.getLogger(__name__)

UPLOAD_TIMEOUT_SECONDS = 120.0
JOB_TIMEOUT_SECONDS = 60.0
SIGNED_URL_MINUTES = 60
_MAX_ERROR_TEXT = 500


def object_urn(bucket_key: str, object_name: str) -> str:
  """Return the OSS object id for an uploaded file."""
  return f"urn:adsk.objects:os.object:{bucket_key}/{object_name}"


def encode_urn(urn: str) -> str:
  """Encode a URN as URL-safe base64 without padding."""
  return base64.urlsafe_b64encode(urn.encode("utf-8")).decode("ascii").rstrip("=")


def _error_message(response: httpx.Response) -> str:
  """Pull the most specific error text the service returned."""
  try:
    body = response.json()
  except ValueError:
    body = None

  if isinstance(body, dict):
    for key in ("error_description", "errorMessage", "developerMessage", "reason", "detail", "message"):
      value = body.get(key)
      if isinstance(value, str) and value.strip():
        return value.strip()
    diagnostic = body.get("diagnostic")
    if isinstance(diagnostic, str) and diagnostic.strip():
      return diagnostic.strip()

  text = response.text.strip()
  if text:
    return text[:_MAX_ERROR_TEXT]
  return f"HTTP {response.status_code}"


def _manifest_messages(manifest: dict[str, Any]) -> list[str]:
  messages: list[str] = []
  entries = list(manifest.get("messages") or [])
  for derivative in manifest.get("derivatives") or []:
    if isinstance(derivative, dict):
      entries.extend(derivative.get("messages") or [])
  for entry in entries:
    if isinstance(entry, dict) and entry.get("message"):
      message = entry["message"]
      messages.append(" ".join(message) if isinstance(message, list) else str(message))
  return messages


class ApsTranslationClient:
  """Talk to the APS authentication, OSS, and Model Derivative endpoints over httpx."""

  def __init__(
    self,
    *,
    client_id: str | None,
    client_secret: str | None,
    base_url: str = "https://developer.api.autodesk.com",
    connect_timeout: float = 10.0,
    read_timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    self._client_id = client_id
    self._client_secret = client_secret
    self._connect_timeout = connect_timeout
    self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
    self._client = httpx.AsyncClient(base_url=base_url, timeout=self._timeout, transport=transport)

  @classmethod
  def from_settings(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> ApsTranslationClient:
    """Build a client from application settings."""
    return cls(
      client_id=settings.forge_client_id,
      client_secret=settings.forge_client_secret,
      base_url=settings.aps_base_url,
      connect_timeout=settings.http_connect_timeout_seconds,
      read_timeout=settings.http_read_timeout_seconds,
      transport=transport,
    )

  async def aclose(self) -> None:
    await self._client.aclose()

  def _long_timeout(self, seconds: float) -> httpx.Timeout:
    return httpx.Timeout(seconds, connect=self._connect_timeout)

  async def _request(self, stage: str, method: str, url: str, *, allow_status: Sequence[int] = (), timeout: httpx.Timeout | None = None, **kwargs: Any) -> httpx.Response:
    """Send one request, wrapping every transport and HTTP failure with the stage name."""
    try:
      response = await self._client.request(method, url, timeout=timeout or self._timeout, **kwargs)
    except httpx.TimeoutException as exc:
      raise RemoteStageError(stage, f"Request timed out: {exc.__class__.__name__}") from exc
    except httpx.RequestError as exc:
      raise RemoteStageError(stage, f"Request failed: {exc}") from exc

    if response.status_code >= 400 and response.status_code not in allow_status:
      message = _error_message(response)
      logger.warning("APS %s %s returned %s during %s: %s", method, response.request.url.path, response.status_code, stage, message)
      raise RemoteStageError(stage, message, status_code=response.status_code)
    return response

  @staticmethod
  def _json(stage: str, response: httpx.Response) -> dict[str, Any]:
    try:
      body = response.json()
    except ValueError as exc:
      raise RemoteStageError(stage, "Response was not valid JSON", status_code=response.status_code) from exc
    if not isinstance(body, dict):
      raise RemoteStageError(stage, "Response JSON was not an object", status_code=response.status_code)
    return body

  @staticmethod
  def _bearer(token: AccessToken) -> dict[str, str]:
    return {"Authorization": f"Bearer {token.access_token}"}

  async def acquire_token(self, scopes: Sequence[str] = PIPELINE_SCOPES) -> AccessToken:
    """Exchange client credentials for an access token."""
    stage = "access_token"
    if not self._client_id or not self._client_secret:
      raise RemoteStageError(stage, "FORGE_CLIENT_ID and FORGE_CLIENT_SECRET must be configured.")

    response = await self._request(
      stage,
      "POST",
      "/authentication/v2/token",
      data={"grant_type": "client_credentials", "scope": " ".join(scopes)},
      auth=httpx.BasicAuth(self._client_id, self._client_secret),
      headers={"Accept": "application/json"},
    )
    body = self._json(stage, response)
    access_token = body.get("access_token")
    if not isinstance(access_token, str) or not access_token:
      raise RemoteStageError(stage, "Token response did not include an access token", status_code=response.status_code)
    try:
      expires_in = int(body.get("expires_in") or 3600)
    except (TypeError, ValueError) as exc:
      raise RemoteStageError(stage, f"Token response carried an invalid expires_in: {body.get('expires_in')!r}", status_code=response.status_code) from exc
    return AccessToken(access_token=access_token, token_type=str(body.get("token_type") or "Bearer"), expires_in=expires_in)

  async def create_bucket(self, token: AccessToken, bucket_key: str) -> bool:
    """Create a transient bucket, returning True when it already existed."""
    response = await self._request(
      "create_bucket",
      "POST",
      "/oss/v2/buckets",
      json={"bucketKey": bucket_key, "policyKey": "transient", "access": "full"},
      headers=self._bearer(token),
      allow_status=(409,),
    )
    existed = response.status_code == 409
    if existed:
      logger.info("Bucket %s already exists", bucket_key)
    return existed

  async def upload_files(self, token: AccessToken, bucket_key: str, files: Sequence[Path], on_uploaded: UploadCallback | None = None) -> int:
    """Upload files one by one through signed S3 URLs, stopping at the first failure."""
    total = len(files)
    for index, path in enumerate(files, start=1):
      await self._upload_one(token, bucket_key, path)
      if on_uploaded is not None:
        await on_uploaded(index, total)
    return total

  async def _upload_one(self, token: AccessToken, bucket_key: str, path: Path) -> None:
    stage = "upload_files"
    object_path = f"/oss/v2/buckets/{bucket_key}/objects/{quote(path.name, safe='')}/signeds3upload"

    # Request a signed URL, PUT the bytes to it, then finalize with the upload key.
    signed = self._json(stage, await self._request(stage, "GET", object_path, params={"minutesExpiration": SIGNED_URL_MINUTES}, headers=self._bearer(token)))
    urls = signed.get("urls") or []
    upload_key = signed.get("uploadKey")
    if not urls or not upload_key:
      raise RemoteStageError(stage, f"Signed upload URL missing for {path.name}")

    try:
      payload = await run_in_threadpool(path.read_bytes)
    except OSError as exc:
      raise RemoteStageError(stage, f"Failed to read {path.name}: {exc}") from exc

    await self._request(stage, "PUT", urls[0], content=payload, headers={"Content-Type": "application/octet-stream"}, timeout=self._long_timeout(UPLOAD_TIMEOUT_SECONDS))
    await self._request(stage, "POST", object_path, json={"uploadKey": upload_key}, headers=self._bearer(token))
    logger.debug("Uploaded %s to bucket %s (%s bytes)", path.name, bucket_key, len(payload))

  async def link_references(self, token: AccessToken, bucket_key: str, assembly_name: str, references: Sequence[PartReference]) -> int:
    """Declare the part files referenced by the root assembly."""
    assembly_urn = object_urn(bucket_key, assembly_name)
    body = {
      "urn": assembly_urn,
      "filename": assembly_name,
      "references": [{"urn": object_urn(bucket_key, ref.filename), "relativePath": ref.relative_path, "filename": ref.filename} for ref in references],
    }
    await self._request(
      "link_references",
      "POST",
      f"/modelderivative/v2/designdata/{encode_urn(assembly_urn)}/references",
      json=body,
      headers=self._bearer(token),
      timeout=self._long_timeout(JOB_TIMEOUT_SECONDS),
    )
    return len(references)

  async def submit_translation(self, token: AccessToken, bucket_key: str, assembly_name: str) -> str:
    """Submit an SVF2 translation job for the root assembly."""
    encoded = encode_urn(object_urn(bucket_key, assembly_name))
    body = {
      "input": {"urn": encoded, "checkReferences": True},
      "output": {"formats": [{"type": "svf2", "views": ["2d", "3d"]}]},
    }
    await self._request(
      "start_translation",
      "POST",
      "/modelderivative/v2/designdata/job",
      json=body,
      headers={**self._bearer(token), "x-ads-force": "true"},
      timeout=self._long_timeout(JOB_TIMEOUT_SECONDS),
    )
    return encoded

  async def translation_status(self, token: AccessToken, encoded_urn: str) -> PollResult:
    """Check the translation manifest once."""
    stage = "translate"
    manifest = self._json(stage, await self._request(stage, "GET", f"/modelderivative/v2/designdata/{encoded_urn}/manifest", headers=self._bearer(token)))
    status = str(manifest.get("status") or "pending")
    progress = str(manifest.get("progress") or "0%")

    if status == "success":
      return PollResult.success({"status": status, "progress": progress}, detail=f"Translation {status} - {progress}")
    if status in {"failed", "timeout"}:
      messages = _manifest_messages(manifest)
      return PollResult.failure("; ".join(messages) if messages else f"Translation {status}")
    return PollResult.pending(f"Translation {status} - {progress}")

  async def fetch_metadata(self, token: AccessToken, encoded_urn: str) -> MetadataResult:
    """Return the viewables of a translated model."""
    stage = "metadata"
    response = await self._request(stage, "GET", f"/modelderivative/v2/designdata/{encoded_urn}/metadata", headers=self._bearer(token))
    data = self._json(stage, response).get("data") or {}
    if not isinstance(data, dict) or not isinstance(data.get("metadata") or [], list):
      raise RemoteStageError(stage, "Metadata response was not in the expected shape", status_code=response.status_code)
    entries = [entry for entry in data.get("metadata") or [] if isinstance(entry, dict) and entry.get("guid")]
    if not entries:
      raise RemoteStageError(stage, "No viewable files found")
    viewables = [{"guid": entry.get("guid"), "name": entry.get("name"), "role": entry.get("role")} for entry in entries]
    return MetadataResult(viewable_guid=str(entries[0]["guid"]), metadata_type=data.get("type"), viewables=viewables)

  async def _viewable_resource(self, stage: str, token: AccessToken, path: str) -> PollResult:
    response = await self._request(stage, "GET", path, headers=self._bearer(token))
    # 202 means the service is still extracting the resource.
    if response.status_code == 202:
      return PollResult.pending()
    body = self._json(stage, response)
    if body.get("data"):
      return PollResult.success(body)
    return PollResult.pending()

  async def object_hierarchy(self, token: AccessToken, encoded_urn: str, viewable_guid: str) -> PollResult:
    """Check once whether the object tree is available."""
    return await self._viewable_resource("hierarchy", token, f"/modelderivative/v2/designdata/{encoded_urn}/metadata/{viewable_guid}")

  async def object_properties(self, token: AccessToken, encoded_urn: str, viewable_guid: str) -> PollResult:
    """Check once whether the property collection is available."""
    return await self._viewable_resource("properties", token, f"/modelderivative/v2/designdata/{encoded_urn}/metadata/{viewable_guid}/properties")
