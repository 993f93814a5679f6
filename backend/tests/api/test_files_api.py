from urllib.parse import parse_qs, urlparse

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_file_info_hides_storage_details(client: AsyncClient, share):
    shared = await share(content=b"hello", filename="hello.txt", content_type="text/plain", maxDownloads=3)

    resp = await client.get(f"/api/file/{shared['code']}")

    assert resp.status_code == 200
    info = resp.json()
    assert info["code"] == shared["code"]
    assert info["originalName"] == "hello.txt"
    assert info["size"] == 5
    assert info["mimetype"] == "text/plain"
    assert info["isPasswordProtected"] is False
    assert info["downloadCount"] == 0
    assert info["maxDownloads"] == 3
    assert info["remainingDownloads"] == 3
    assert info["isOneTime"] is False
    assert "uploadedAt" in info and "expiresAt" in info
    assert not {"id", "storageKey", "passwordHash"} & set(info)


@pytest.mark.asyncio
async def test_file_info_unknown_and_malformed_codes(client: AsyncClient):
    resp = await client.get("/api/file/000000")
    assert resp.status_code == 404
    assert resp.json() == {"error": "File not found or expired"}

    resp = await client.get("/api/file/12ab56")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid code format"}


@pytest.mark.asyncio
async def test_file_info_after_expiry(client: AsyncClient, share, clock):
    shared = await share(expiresIn=1)
    clock.advance(hours=1, seconds=1)

    resp = await client.get(f"/api/file/{shared['code']}")

    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_verify_password(client: AsyncClient, share):
    shared = await share(password="hunter2")
    url = f"/api/file/{shared['code']}/verify"

    resp = await client.post(url, json={"password": "hunter2"})
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    resp = await client.post(url, json={"password": "wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Incorrect password"}

    resp = await client.post(url, json={})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Password required"}


@pytest.mark.asyncio
async def test_verify_does_not_count_as_download(client: AsyncClient, share):
    shared = await share(password="hunter2", maxDownloads=1)

    await client.post(f"/api/file/{shared['code']}/verify", json={"password": "hunter2"})

    info = (await client.get(f"/api/file/{shared['code']}")).json()
    assert info["downloadCount"] == 0


@pytest.mark.asyncio
async def test_get_download_link(client: AsyncClient, share):
    shared = await share(filename="report.pdf", content_type="application/pdf", password="hunter2")
    url = f"/api/file/{shared['code']}/get-download-link"

    resp = await client.post(url, json={"password": "nope"})
    assert resp.status_code == 401

    resp = await client.post(url, json={"password": "hunter2"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["filename"] == "report.pdf"
    assert data["requiresPassword"] is True

    link = urlparse(data["downloadUrl"])
    assert link.path == f"/api/download/{shared['code']}"
    query = parse_qs(link.query)
    assert set(query) == {"fid", "expires", "sig"}
