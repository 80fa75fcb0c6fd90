from __future__ import annotations

import base64
import json

import httpx
import pytest

from motionforge.core.errors import RemoteStageError
from motionforge.services.translation.aps import ApsTranslationClient, encode_urn, object_urn
from motionforge.services.translation.interface import VIEWER_SCOPES, AccessToken, PartReference

TOKEN = AccessToken(access_token="abc")


def _client(handler) -> ApsTranslationClient:
  return ApsTranslationClient(client_id="id", client_secret="secret", base_url="https://aps.test", transport=httpx.MockTransport(handler))


def test_encode_urn_is_url_safe_without_padding() -> None:
  urn = object_urn("bucket_1", "Gearbox Assembly.iam")
  encoded = encode_urn(urn)

  assert urn == "urn:adsk.objects:os.object:bucket_1/Gearbox Assembly.iam"
  assert "=" not in encoded and "+" not in encoded and "/" not in encoded
  assert base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)).decode() == urn


@pytest.mark.anyio
async def test_acquire_token_uses_basic_auth_and_scopes() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(200, json={"access_token": "tok", "token_type": "Bearer", "expires_in": 3599})

  client = _client(handler)
  token = await client.acquire_token(VIEWER_SCOPES)
  await client.aclose()

  assert token == AccessToken(access_token="tok", token_type="Bearer", expires_in=3599)
  request = seen[0]
  assert request.url.path == "/authentication/v2/token"
  assert request.headers["authorization"] == "Basic " + base64.b64encode(b"id:secret").decode()
  assert b"scope=data%3Aread" in request.content
  assert b"grant_type=client_credentials" in request.content


@pytest.mark.anyio
async def test_acquire_token_without_credentials_fails_fast() -> None:
  client = ApsTranslationClient(client_id=None, client_secret=None, transport=httpx.MockTransport(lambda request: httpx.Response(500)))
  with pytest.raises(RemoteStageError) as excinfo:
    await client.acquire_token()
  assert excinfo.value.stage == "access_token"
  await client.aclose()


@pytest.mark.anyio
@pytest.mark.parametrize(("status", "existed"), [(200, False), (409, True)])
async def test_create_bucket_treats_conflict_as_existing(status: int, existed: bool) -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    assert body == {"bucketKey": "bucket_1", "policyKey": "transient", "access": "full"}
    return httpx.Response(status, json={"reason": "Bucket already exists"})

  client = _client(handler)
  assert await client.create_bucket(TOKEN, "bucket_1") is existed
  await client.aclose()


@pytest.mark.anyio
async def test_http_errors_carry_stage_and_status() -> None:
  client = _client(lambda request: httpx.Response(403, json={"developerMessage": "Token does not have the privilege"}))
  with pytest.raises(RemoteStageError) as excinfo:
    await client.create_bucket(TOKEN, "bucket_1")
  await client.aclose()

  assert excinfo.value.stage == "create_bucket"
  assert excinfo.value.status_code == 403
  assert excinfo.value.detail == "Token does not have the privilege"


@pytest.mark.anyio
async def test_transport_errors_are_wrapped() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)

  client = _client(handler)
  with pytest.raises(RemoteStageError) as excinfo:
    await client.submit_translation(TOKEN, "bucket_1", "Gearbox.iam")
  await client.aclose()
  assert excinfo.value.stage == "start_translation"


@pytest.mark.anyio
async def test_upload_files_uses_signed_urls_in_order(tmp_path) -> None:
  first = tmp_path / "Gearbox.iam"
  second = tmp_path / "Shaft.ipt"
  first.write_bytes(b"assembly")
  second.write_bytes(b"shaft")
  log: list[tuple[str, str]] = []
  progress: list[tuple[int, int]] = []

  def handler(request: httpx.Request) -> httpx.Response:
    log.append((request.method, request.url.host + request.url.path))
    if request.method == "GET":
      name = request.url.path.split("/")[-2]
      assert request.url.params["minutesExpiration"] == "60"
      return httpx.Response(200, json={"urls": [f"https://s3.test/upload/{name}"], "uploadKey": f"key-{name}"})
    if request.method == "PUT":
      return httpx.Response(200)
    assert json.loads(request.content)["uploadKey"].startswith("key-")
    return httpx.Response(200, json={"objectKey": "done"})

  async def on_uploaded(count: int, total: int) -> None:
    progress.append((count, total))

  client = _client(handler)
  assert await client.upload_files(TOKEN, "bucket_1", [first, second], on_uploaded) == 2
  await client.aclose()

  assert log == [
    ("GET", "aps.test/oss/v2/buckets/bucket_1/objects/Gearbox.iam/signeds3upload"),
    ("PUT", "s3.test/upload/Gearbox.iam"),
    ("POST", "aps.test/oss/v2/buckets/bucket_1/objects/Gearbox.iam/signeds3upload"),
    ("GET", "aps.test/oss/v2/buckets/bucket_1/objects/Shaft.ipt/signeds3upload"),
    ("PUT", "s3.test/upload/Shaft.ipt"),
    ("POST", "aps.test/oss/v2/buckets/bucket_1/objects/Shaft.ipt/signeds3upload"),
  ]
  assert progress == [(1, 2), (2, 2)]


@pytest.mark.anyio
async def test_upload_stops_at_first_failure(tmp_path) -> None:
  first = tmp_path / "a.ipt"
  second = tmp_path / "b.ipt"
  first.write_bytes(b"a")
  second.write_bytes(b"b")
  calls: list[str] = []

  def handler(request: httpx.Request) -> httpx.Response:
    calls.append(request.method)
    return httpx.Response(500, text="boom")

  client = _client(handler)
  with pytest.raises(RemoteStageError):
    await client.upload_files(TOKEN, "bucket_1", [first, second])
  await client.aclose()
  assert calls == ["GET"]


@pytest.mark.anyio
async def test_link_references_and_submit_translation_payloads() -> None:
  bodies: dict[str, httpx.Request] = {}

  def handler(request: httpx.Request) -> httpx.Response:
    bodies[request.url.path] = request
    return httpx.Response(200, json={"result": "created"})

  client = _client(handler)
  linked = await client.link_references(TOKEN, "bucket_1", "Gearbox.iam", [PartReference(filename="Shaft.ipt", relative_path="Parts/Shaft.ipt")])
  encoded = await client.submit_translation(TOKEN, "bucket_1", "Gearbox.iam")
  await client.aclose()

  assert linked == 1
  assert encoded == encode_urn(object_urn("bucket_1", "Gearbox.iam"))
  references = json.loads(bodies[f"/modelderivative/v2/designdata/{encoded}/references"].content)
  assert references["references"] == [{"urn": object_urn("bucket_1", "Shaft.ipt"), "relativePath": "Parts/Shaft.ipt", "filename": "Shaft.ipt"}]

  job = bodies["/modelderivative/v2/designdata/job"]
  assert job.headers["x-ads-force"] == "true"
  payload = json.loads(job.content)
  assert payload["input"] == {"urn": encoded, "checkReferences": True}
  assert payload["output"]["formats"][0]["type"] == "svf2"


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("manifest", "state", "detail"),
  [
    ({"status": "inprogress", "progress": "40% complete"}, "pending", "Translation inprogress - 40% complete"),
    ({"status": "success", "progress": "complete"}, "success", "Translation success - complete"),
    ({"status": "failed", "derivatives": [{"messages": [{"type": "error", "message": "Missing reference"}]}]}, "failure", "Missing reference"),
    ({"status": "timeout"}, "failure", "Translation timeout"),
  ],
)
async def test_translation_status_maps_manifest_states(manifest, state, detail) -> None:
  client = _client(lambda request: httpx.Response(200, json=manifest))
  result = await client.translation_status(TOKEN, "encoded")
  await client.aclose()
  assert result.state == state
  assert result.detail == detail


@pytest.mark.anyio
async def test_fetch_metadata_picks_first_viewable() -> None:
  body = {"data": {"type": "metadata", "metadata": [{"name": "3D", "role": "3d", "guid": "g-1"}, {"name": "2D", "role": "2d", "guid": "g-2"}]}}
  client = _client(lambda request: httpx.Response(200, json=body))
  metadata = await client.fetch_metadata(TOKEN, "encoded")
  await client.aclose()
  assert metadata.viewable_guid == "g-1"
  assert [viewable["guid"] for viewable in metadata.viewables] == ["g-1", "g-2"]


@pytest.mark.anyio
async def test_fetch_metadata_without_viewables_fails() -> None:
  client = _client(lambda request: httpx.Response(200, json={"data": {"metadata": []}}))
  with pytest.raises(RemoteStageError) as excinfo:
    await client.fetch_metadata(TOKEN, "encoded")
  await client.aclose()
  assert excinfo.value.detail == "No viewable files found"


@pytest.mark.anyio
@pytest.mark.parametrize("data", [[{"guid": "g-1"}], {"metadata": {"guid": "g-1"}}])
async def test_fetch_metadata_with_unexpected_shape_fails_in_stage(data) -> None:
  client = _client(lambda request: httpx.Response(200, json={"data": data}))
  with pytest.raises(RemoteStageError) as excinfo:
    await client.fetch_metadata(TOKEN, "encoded")
  await client.aclose()
  assert excinfo.value.stage == "metadata"


@pytest.mark.anyio
@pytest.mark.parametrize("expires_in", ["soon", [3600]])
async def test_acquire_token_with_invalid_expiry_fails_in_stage(expires_in) -> None:
  client = _client(lambda request: httpx.Response(200, json={"access_token": "tok", "expires_in": expires_in}))
  with pytest.raises(RemoteStageError) as excinfo:
    await client.acquire_token(VIEWER_SCOPES)
  await client.aclose()
  assert excinfo.value.stage == "access_token"
  assert "expires_in" in excinfo.value.detail


@pytest.mark.anyio
async def test_hierarchy_is_pending_until_data_is_ready() -> None:
  responses = [httpx.Response(202, json={"result": "success"}), httpx.Response(200, json={"data": {"type": "objects", "objects": [{"objectid": 1}]}})]
  client = _client(lambda request: responses.pop(0))

  first = await client.object_hierarchy(TOKEN, "encoded", "g-1")
  second = await client.object_hierarchy(TOKEN, "encoded", "g-1")
  await client.aclose()

  assert first.state == "pending"
  assert second.state == "success"
  assert second.value["data"]["objects"] == [{"objectid": 1}]
