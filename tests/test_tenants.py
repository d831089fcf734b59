"""
Tenant API tests
"""

from httpx import AsyncClient

from helpers import PASSWORD, bearer, create_platform, create_tenant, upload_file


async def test_create_and_get_tenant(client: AsyncClient, admin_headers):
    tenant = await create_tenant(client, admin_headers)
    assert tenant["name"] == "Acme"
    assert tenant["is_active"] is True
    assert tenant["settings"] == {}

    response = await client.get(f"/api/v1/tenants/{tenant['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["domain"] == "acme.example.com"


async def test_duplicate_domain_is_rejected(client: AsyncClient, admin_headers):
    await create_tenant(client, admin_headers)

    response = await client.post(
        "/api/v1/tenants", json={"name": "Other", "domain": "acme.example.com"}, headers=admin_headers
    )
    assert response.status_code == 422
    assert response.json()["data"] == {"domain": ["The domain has already been taken."]}


async def test_update_keeping_own_domain(client: AsyncClient, admin_headers):
    tenant = await create_tenant(client, admin_headers)

    response = await client.put(
        f"/api/v1/tenants/{tenant['id']}",
        json={"name": "Acme Inc", "domain": "acme.example.com", "settings": {"timezone": "UTC"}},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Acme Inc"
    assert data["settings"] == {"timezone": "UTC"}


async def test_update_to_taken_domain_is_rejected(client: AsyncClient, admin_headers):
    await create_tenant(client, admin_headers)
    other = await create_tenant(client, admin_headers, name="Other", domain="other.example.com")

    response = await client.put(
        f"/api/v1/tenants/{other['id']}", json={"domain": "acme.example.com"}, headers=admin_headers
    )
    assert response.status_code == 422


async def test_missing_tenant_is_not_found(client: AsyncClient, admin_headers):
    response = await client.get("/api/v1/tenants/does-not-exist", headers=admin_headers)
    assert response.status_code == 404
    assert response.json() == {"status": "error", "message": "Tenant not found", "data": None}


async def test_tenants_require_admin(client: AsyncClient, user_headers):
    response = await client.get("/api/v1/tenants", headers=user_headers)
    assert response.status_code == 403

    response = await client.post(
        "/api/v1/tenants", json={"name": "Nope", "domain": "nope.example.com"}, headers=user_headers
    )
    assert response.status_code == 403


async def test_delete_tenant_cascades(client: AsyncClient, admin_headers, storage, fake_publisher):
    tenant = await create_tenant(client, admin_headers)

    registered = await client.post("/api/v1/register", json={
        "name": "Acme Member",
        "email": "member@acme.example.com",
        "password": PASSWORD,
        "password_confirmation": PASSWORD,
        "tenant_id": tenant["id"],
    })
    assert registered.status_code == 201
    member_headers = bearer(registered.json()["data"]["token"]["access_token"])

    platform = await create_platform(client, admin_headers, tenant["id"])
    uploaded = await upload_file(client, member_headers, platform["id"])
    assert uploaded.status_code == 201
    assert len([p for p in storage.root.rglob("*") if p.is_file()]) == 1

    response = await client.delete(f"/api/v1/tenants/{tenant['id']}", headers=admin_headers)
    assert response.status_code == 200

    assert (await client.get(f"/api/v1/tenants/{tenant['id']}", headers=admin_headers)).status_code == 404
    response = await client.get(f"/api/v1/social-platforms/{platform['id']}", headers=admin_headers)
    assert response.status_code == 404
    response = await client.get(f"/api/v1/content-uploads/{uploaded.json()['data']['id']}", headers=admin_headers)
    assert response.status_code == 404
    assert [p for p in storage.root.rglob("*") if p.is_file()] == []

    # the member's sessions went with the account
    assert (await client.get("/api/v1/user", headers=member_headers)).status_code == 401
    response = await client.post("/api/v1/login", json={"email": "member@acme.example.com", "password": PASSWORD})
    assert response.status_code == 401
