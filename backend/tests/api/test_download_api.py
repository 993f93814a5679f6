import contextlib
from urllib.parse import quote

import anyio
import pytest
from httpx import ASGITransport, AsyncClient

from dropcode.services import ServiceContainer
from main import create_app

PAYLOAD = bytes(range(256)) * 4


@pytest.mark.asyncio
async def test_download_returns_file_with_headers(client: AsyncClient, share):
    shared = await share(content=PAYLOAD, filename="data.bin")

    resp = await client.post(f"/api/download/{shared['code']}")

    assert resp.status_code == 200
    assert resp.content == PAYLOAD
    assert resp.headers["content-type"] == "application/octet-stream"
    assert resp.headers["content-length"] == str(len(PAYLOAD))
    assert resp.headers["content-disposition"].startswith('attachment; filename="data.bin"')
    assert resp.headers["cache-control"] == "no-store"

    info = (await client.get(f"/api/file/{shared['code']}")).json()
    assert info["downloadCount"] == 1


@pytest.mark.asyncio
async def test_download_non_ascii_filename(client: AsyncClient, share):
    shared = await share(content=b"pdf", filename="报告.pdf", content_type="application/pdf")

    resp = await client.post(f"/api/download/{shared['code']}")

    assert resp.status_code == 200
    assert f"filename*=UTF-8''{quote('报告.pdf', safe='')}" in resp.headers["content-disposition"]


@pytest.mark.asyncio
async def test_download_password_rules(client: AsyncClient, share):
    shared = await share(content=PAYLOAD, password="hunter2")
    url = f"/api/download/{shared['code']}"

    resp = await client.post(url)
    assert resp.status_code == 401
    assert resp.json() == {"error": "Password required"}

    resp = await client.post(url, json={"password": "wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Incorrect password"}

    resp = await client.post(url, json={"password": "hunter2"})
    assert resp.status_code == 200
    assert resp.content == PAYLOAD


@pytest.mark.asyncio
async def test_download_cap_then_deleted(client: AsyncClient, share, blob_store):
    shared = await share(content=PAYLOAD, maxDownloads=2)
    url = f"/api/download/{shared['code']}"

    assert (await client.post(url)).status_code == 200
    info = (await client.get(f"/api/file/{shared['code']}")).json()
    assert info["downloadCount"] == 1
    assert info["remainingDownloads"] == 1

    assert (await client.post(url)).status_code == 200

    resp = await client.post(url)
    assert resp.status_code == 404
    assert blob_store.objects == {}


@pytest.mark.asyncio
async def test_download_cap_kept_when_deletion_disabled(test_settings, blob_store, hasher, clock):
    config = test_settings.model_copy(update={"DELETE_ON_DOWNLOAD_LIMIT": False})
    container = ServiceContainer(config=config, blob_store=blob_store, hasher=hasher, clock=clock)
    app = create_app(container)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post(
            "/api/upload",
            files={"file": ("data.bin", PAYLOAD, "application/octet-stream")},
            data={"maxDownloads": "2"},
        )
        code = resp.json()["code"]

        first = await client.post(f"/api/download/{code}")
        second = await client.post(f"/api/download/{code}")
        assert first.content == PAYLOAD and second.content == PAYLOAD

        third = await client.post(f"/api/download/{code}")
        assert third.status_code == 403
        assert third.json() == {"error": "Download limit reached"}

        info = (await client.get(f"/api/file/{code}")).json()
        assert info["downloadCount"] == 2
        assert info["remainingDownloads"] == 0


@pytest.mark.asyncio
async def test_one_time_download(client: AsyncClient, share, blob_store):
    shared = await share(content=PAYLOAD, isOneTime="true")
    url = f"/api/download/{shared['code']}"

    first = await client.post(url)
    assert first.status_code == 200
    assert first.content == PAYLOAD

    second = await client.post(url)
    assert second.status_code == 404
    assert blob_store.objects == {}


@pytest.mark.asyncio
async def test_storage_failure_is_retryable_and_not_counted(client: AsyncClient, share, blob_store):
    shared = await share(content=PAYLOAD, maxDownloads=1)
    blob_store.fail_open = True

    resp = await client.post(f"/api/download/{shared['code']}")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Storage operation failed"}

    blob_store.fail_open = False
    info = (await client.get(f"/api/file/{shared['code']}")).json()
    assert info["downloadCount"] == 0

    resp = await client.post(f"/api/download/{shared['code']}")
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_download_via_signed_link(client: AsyncClient, share):
    shared = await share(content=PAYLOAD, password="hunter2", isOneTime="true")
    link = (
        await client.post(f"/api/file/{shared['code']}/get-download-link", json={"password": "hunter2"})
    ).json()["downloadUrl"]

    resp = await client.get(link)
    assert resp.status_code == 200
    assert resp.content == PAYLOAD

    resp = await client.get(link)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_tampered_or_expired_link_is_forbidden(client: AsyncClient, share, container):
    shared = await share(content=PAYLOAD)
    code = shared["code"]
    file_id = container.records.get_by_code(code).id

    resp = await client.get(f"/api/download/{code}", params={"fid": file_id, "expires": 4102444800, "sig": "0" * 64})
    assert resp.status_code == 403

    resp = await client.get(f"/api/download/{code}", params={"fid": file_id, "expires": 1, "sig": "0" * 64})
    assert resp.status_code == 403
    assert resp.json() == {"error": "Download link expired"}

    resp = await client.get(f"/api/download/{code}")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_download_malformed_code(client: AsyncClient):
    resp = await client.post("/api/download/abc")

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid code format"}


@pytest.mark.asyncio
async def test_stale_link_cannot_download_file_that_reuses_the_code(client: AsyncClient, share, container, monkeypatch):
    monkeypatch.setattr(container.code_generator, "generate", lambda: "123456")

    first = await share(content=b"PUBLIC", isOneTime="true")
    assert first["code"] == "123456"
    link = (await client.post("/api/file/123456/get-download-link")).json()["downloadUrl"]
    resp = await client.get(link)
    assert resp.status_code == 200
    assert resp.content == b"PUBLIC"

    second = await share(content=b"SECRET", password="s3cret")
    assert second["code"] == "123456"

    resp = await client.post("/api/download/123456")
    assert resp.status_code == 401

    resp = await client.get(link)
    assert resp.status_code == 404
    assert resp.content != b"SECRET"
    assert container.records.get_by_code("123456").download_count == 0


def _http_scope(method: str, path: str, *, spec_version: str) -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": spec_version},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("ascii"),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"test"), (b"content-length", b"0")],
        "client": ("127.0.0.1", 50000),
        "server": ("test", 80),
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("spec_version", ["2.3", "2.4"])
async def test_client_disconnect_mid_body_rolls_back(share, container, blob_store, spec_version):
    shared = await share(content=b"z" * 4096, isOneTime="true")
    record = container.records.get_by_code(shared["code"])
    app = create_app(container)

    messages: list[dict] = []
    requested = False
    disconnected = anyio.Event()

    async def receive() -> dict:
        nonlocal requested
        if not requested:
            requested = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await disconnected.wait()
        return {"type": "http.disconnect"}

    async def send(message: dict) -> None:
        messages.append(message)
        if message["type"] == "http.response.body" and message.get("body"):
            disconnected.set()
            raise OSError("connection reset by peer")

    with contextlib.suppress(Exception):
        await app(_http_scope("POST", f"/api/download/{record.code}", spec_version=spec_version), receive, send)

    assert messages[0]["type"] == "http.response.start"
    assert messages[0]["status"] == 200
    live = container.records.get_by_code(record.code)
    assert live is not None
    assert live.download_count == 0
    assert record.storage_key in blob_store.objects


@pytest.mark.asyncio
async def test_storage_failure_mid_body_rolls_back(share, container, blob_store):
    shared = await share(content=b"z" * 4096, isOneTime="true")
    app = create_app(container)
    blob_store.fail_after_chunks = 1

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        resp = await ac.post(f"/api/download/{shared['code']}")
        assert resp.status_code == 200
        assert len(resp.content) < 4096

        info = (await ac.get(f"/api/file/{shared['code']}")).json()
        assert info["downloadCount"] == 0

        blob_store.fail_after_chunks = None
        resp = await ac.post(f"/api/download/{shared['code']}")
        assert resp.status_code == 200
        assert resp.content == b"z" * 4096

    assert blob_store.objects == {}
