"""
Content upload API tests
"""

import pytest
from httpx import AsyncClient

from socialize.core.config import settings
from socialize.core.errors import StorageError
from socialize.services.publishers.base import PublishError
from socialize.services.upload_service import storage_key_for

from helpers import create_platform, create_tenant, upload_file


def stored_files(storage):
    return [p for p in storage.root.rglob("*") if p.is_file()]


@pytest.mark.parametrize("filename, suffix", [
    ("photo.JPG", ".jpg"),
    ("../../etc/passwd", ""),
    ("clip.tar.gz", ".gz"),
    ("weird.ext with spaces", ""),
    (None, ""),
])
def test_storage_key_keeps_only_safe_extension(filename, suffix):
    key = storage_key_for("u1", "p1", filename)
    assert key.startswith("uploads/u1/p1/")
    name = key.rsplit("/", 1)[1]
    assert ".." not in key
    assert name.endswith(suffix)
    assert len(name) == 36 + len(suffix)


async def test_upload_creates_pending_record(client: AsyncClient, admin_headers, user_headers,
                                             default_tenant_id, storage):
    platform = await create_platform(client, admin_headers, default_tenant_id)

    response = await upload_file(
        client, user_headers, platform["id"],
        filename="my holiday photo.jpg",
        metadata='{"caption": "Sunset"}',
        scheduled_at="2030-01-01T10:00:00Z",
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["file_name"] == "my holiday photo.jpg"
    assert data["file_type"] == "image/jpeg"
    assert data["file_size"] == len(b"hello world")
    assert data["metadata"] == {"caption": "Sunset"}
    assert data["scheduled_at"].startswith("2030-01-01T10:00:00")
    assert data["user"]["email"] == "user@example.com"
    assert data["social_platform"]["id"] == platform["id"]

    files = stored_files(storage)
    assert len(files) == 1
    assert "holiday" not in files[0].name
    assert files[0].suffix == ".jpg"
    assert files[0].read_bytes() == b"hello world"


async def test_oversized_upload_leaves_nothing_behind(client: AsyncClient, admin_headers, user_headers,
                                                      default_tenant_id, storage, monkeypatch):
    platform = await create_platform(client, admin_headers, default_tenant_id)
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 5)

    response = await upload_file(client, user_headers, platform["id"], content=b"0123456789")
    assert response.status_code == 422
    assert "file" in response.json()["data"]

    listed = await client.get("/api/v1/content-uploads", headers=user_headers)
    assert listed.json()["data"] == []
    assert stored_files(storage) == []


async def test_invalid_metadata_is_rejected(client: AsyncClient, admin_headers, user_headers, default_tenant_id):
    platform = await create_platform(client, admin_headers, default_tenant_id)

    response = await upload_file(client, user_headers, platform["id"], metadata="[1, 2]")
    assert response.status_code == 422
    assert "metadata" in response.json()["data"]


async def test_upload_to_unknown_platform(client: AsyncClient, user_headers, storage):
    response = await upload_file(client, user_headers, "missing")
    assert response.status_code == 422
    assert "social_platform_id" in response.json()["data"]
    assert stored_files(storage) == []


async def test_upload_to_foreign_platform_is_forbidden(client: AsyncClient, admin_headers, user_headers):
    tenant = await create_tenant(client, admin_headers)
    platform = await create_platform(client, admin_headers, tenant["id"])

    response = await upload_file(client, user_headers, platform["id"])
    assert response.status_code == 403


async def test_list_filters(client: AsyncClient, admin_headers, user_headers, default_tenant_id):
    first = await create_platform(client, admin_headers, default_tenant_id)
    second = await create_platform(client, admin_headers, default_tenant_id)
    await upload_file(client, user_headers, first["id"])
    await upload_file(client, user_headers, second["id"])

    response = await client.get(
        "/api/v1/content-uploads", params={"social_platform_id": first["id"]}, headers=user_headers
    )
    assert [u["social_platform_id"] for u in response.json()["data"]] == [first["id"]]

    response = await client.get("/api/v1/content-uploads", params={"status": "published"}, headers=user_headers)
    assert response.json()["data"] == []

    response = await client.get("/api/v1/content-uploads", params={"status": "bogus"}, headers=user_headers)
    assert response.status_code == 422


async def test_members_do_not_see_other_tenants_uploads(client: AsyncClient, admin_headers, user_headers):
    tenant = await create_tenant(client, admin_headers)
    platform = await create_platform(client, admin_headers, tenant["id"])
    uploaded = await upload_file(client, admin_headers, platform["id"])
    upload_id = uploaded.json()["data"]["id"]

    listed = await client.get("/api/v1/content-uploads", headers=user_headers)
    assert listed.json()["data"] == []

    response = await client.get(f"/api/v1/content-uploads/{upload_id}", headers=user_headers)
    assert response.status_code == 403


async def test_signed_download_url(client: AsyncClient, admin_headers, user_headers, default_tenant_id):
    platform = await create_platform(client, admin_headers, default_tenant_id)
    uploaded = await upload_file(client, user_headers, platform["id"], content=b"image bytes")
    upload_id = uploaded.json()["data"]["id"]

    response = await client.get(f"/api/v1/content-uploads/{upload_id}/download", headers=user_headers)
    assert response.status_code == 200
    url = response.json()["data"]["url"]
    assert response.json()["data"]["expires_at"]

    fetched = await client.get(url)
    assert fetched.status_code == 200
    assert fetched.content == b"image bytes"
    assert fetched.headers["content-type"] == "image/jpeg"

    tampered = await client.get(url + "x")
    assert tampered.status_code == 404

    await client.delete(f"/api/v1/content-uploads/{upload_id}", headers=user_headers)
    assert (await client.get(url)).status_code == 404
    response = await client.get(f"/api/v1/content-uploads/{upload_id}/download", headers=user_headers)
    assert response.status_code == 404


async def test_download_url_for_missing_file(client: AsyncClient, admin_headers, user_headers,
                                             default_tenant_id, storage):
    platform = await create_platform(client, admin_headers, default_tenant_id)
    uploaded = await upload_file(client, user_headers, platform["id"])
    for path in stored_files(storage):
        path.unlink()

    response = await client.get(
        f"/api/v1/content-uploads/{uploaded.json()['data']['id']}/download", headers=user_headers
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Stored file not found"


async def test_delete_removes_record_and_file(client: AsyncClient, admin_headers, user_headers,
                                              default_tenant_id, storage):
    platform = await create_platform(client, admin_headers, default_tenant_id)
    uploaded = await upload_file(client, user_headers, platform["id"])
    upload_id = uploaded.json()["data"]["id"]

    response = await client.delete(f"/api/v1/content-uploads/{upload_id}", headers=user_headers)
    assert response.status_code == 200
    assert response.json()["data"] is None

    assert (await client.get(f"/api/v1/content-uploads/{upload_id}", headers=user_headers)).status_code == 404
    assert stored_files(storage) == []


async def test_delete_rolls_back_when_storage_fails(client: AsyncClient, admin_headers, user_headers,
                                                    default_tenant_id, storage, monkeypatch):
    platform = await create_platform(client, admin_headers, default_tenant_id)
    uploaded = await upload_file(client, user_headers, platform["id"])
    upload_id = uploaded.json()["data"]["id"]

    async def broken_delete(key):
        raise StorageError("Failed to delete file")

    monkeypatch.setattr(storage, "delete", broken_delete)

    response = await client.delete(f"/api/v1/content-uploads/{upload_id}", headers=user_headers)
    assert response.status_code == 500
    assert response.json()["status"] == "error"

    assert (await client.get(f"/api/v1/content-uploads/{upload_id}", headers=user_headers)).status_code == 200
    assert len(stored_files(storage)) == 1


async def test_client_cannot_set_pipeline_statuses(client: AsyncClient, admin_headers, user_headers,
                                                   default_tenant_id):
    platform = await create_platform(client, admin_headers, default_tenant_id)
    uploaded = await upload_file(client, user_headers, platform["id"])
    upload_id = uploaded.json()["data"]["id"]

    for target in ("published", "processing", "failed"):
        response = await client.put(
            f"/api/v1/content-uploads/{upload_id}", json={"status": target}, headers=user_headers
        )
        assert response.status_code == 409, target

    response = await client.get(f"/api/v1/content-uploads/{upload_id}", headers=user_headers)
    assert response.json()["data"]["status"] == "pending"


async def test_update_metadata(client: AsyncClient, admin_headers, user_headers, default_tenant_id):
    platform = await create_platform(client, admin_headers, default_tenant_id)
    uploaded = await upload_file(client, user_headers, platform["id"])
    upload_id = uploaded.json()["data"]["id"]

    response = await client.put(
        f"/api/v1/content-uploads/{upload_id}",
        json={"metadata": {"caption": "Updated"}, "status": "pending"},
        headers=user_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["metadata"] == {"caption": "Updated"}


async def test_failed_upload_can_be_requeued(client: AsyncClient, admin_headers, user_headers,
                                             default_tenant_id, fake_publisher):
    fake_publisher.errors = [PublishError("rejected by platform")]
    platform = await create_platform(client, admin_headers, default_tenant_id)
    uploaded = await upload_file(client, user_headers, platform["id"])
    upload_id = uploaded.json()["data"]["id"]

    response = await client.post(f"/api/v1/content-uploads/{upload_id}/publish", headers=user_headers)
    assert response.json()["data"]["status"] == "failed"

    response = await client.put(
        f"/api/v1/content-uploads/{upload_id}", json={"status": "pending"}, headers=user_headers
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["last_error"] is None

    response = await client.post(f"/api/v1/content-uploads/{upload_id}/publish", headers=user_headers)
    assert response.json()["data"]["status"] == "published"
    # each generation publishes under its own idempotency key
    assert fake_publisher.calls[0][1] != fake_publisher.calls[1][1]
