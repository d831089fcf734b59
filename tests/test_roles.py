"""
Role API tests
"""

import pytest
from httpx import AsyncClient

from socialize.services.role_service import slugify


@pytest.mark.parametrize("name, slug", [
    ("Content Manager", "content-manager"),
    ("  Édition / Vidéo ", "edition-video"),
    ("social--media__lead", "social-media-lead"),
    ("!!!", ""),
])
def test_slugify(name, slug):
    assert slugify(name) == slug


async def test_create_role_derives_slug(client: AsyncClient, admin_headers):
    response = await client.post(
        "/api/v1/roles",
        json={"name": "Content Manager", "permissions": {"manage_content": True}},
        headers=admin_headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["slug"] == "content-manager"
    assert body["data"]["permissions"] == {"manage_content": True}

    response = await client.get("/api/v1/roles", headers=admin_headers)
    slugs = [role["slug"] for role in response.json()["data"]]
    assert slugs.count("content-manager") == 1


async def test_create_role_without_permissions_stores_empty_map(client: AsyncClient, admin_headers):
    response = await client.post("/api/v1/roles", json={"name": "Viewer"}, headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["data"]["permissions"] == {}


async def test_names_with_same_slug_conflict(client: AsyncClient, admin_headers):
    first = await client.post("/api/v1/roles", json={"name": "Content Manager"}, headers=admin_headers)
    assert first.status_code == 201

    second = await client.post("/api/v1/roles", json={"name": "content   manager!"}, headers=admin_headers)
    assert second.status_code == 422
    body = second.json()
    assert body["status"] == "error"
    assert "name" in body["data"]


async def test_name_without_letters_is_rejected(client: AsyncClient, admin_headers):
    response = await client.post("/api/v1/roles", json={"name": "???"}, headers=admin_headers)
    assert response.status_code == 422
    assert "name" in response.json()["data"]


async def test_unknown_permission_is_rejected(client: AsyncClient, admin_headers):
    response = await client.post(
        "/api/v1/roles",
        json={"name": "Editor", "permissions": {"delete_everything": True}},
        headers=admin_headers,
    )
    assert response.status_code == 422
    assert "permissions.delete_everything" in response.json()["data"]


async def test_update_role_renames_and_replaces_permissions(client: AsyncClient, admin_headers):
    created = await client.post(
        "/api/v1/roles",
        json={"name": "Editor", "permissions": {"manage_content": True, "manage_users": True}},
        headers=admin_headers,
    )
    role_id = created.json()["data"]["id"]

    response = await client.put(
        f"/api/v1/roles/{role_id}",
        json={"name": "Senior Editor", "permissions": {"manage_content": False}},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["slug"] == "senior-editor"
    assert data["permissions"] == {"manage_content": False}


async def test_update_role_keeping_its_name(client: AsyncClient, admin_headers):
    created = await client.post("/api/v1/roles", json={"name": "Editor"}, headers=admin_headers)
    role_id = created.json()["data"]["id"]

    response = await client.put(
        f"/api/v1/roles/{role_id}",
        json={"name": "Editor", "description": "Edits captions"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["description"] == "Edits captions"


async def test_update_role_to_taken_slug_conflicts(client: AsyncClient, admin_headers):
    await client.post("/api/v1/roles", json={"name": "Editor"}, headers=admin_headers)
    other = await client.post("/api/v1/roles", json={"name": "Reviewer"}, headers=admin_headers)

    response = await client.put(
        f"/api/v1/roles/{other.json()['data']['id']}", json={"name": "EDITOR"}, headers=admin_headers
    )
    assert response.status_code == 422


async def test_system_roles_cannot_be_deleted(client: AsyncClient, admin_headers):
    roles = (await client.get("/api/v1/roles", headers=admin_headers)).json()["data"]
    for role in roles:
        if role["slug"] in ("admin", "user"):
            response = await client.delete(f"/api/v1/roles/{role['id']}", headers=admin_headers)
            assert response.status_code == 403


async def test_system_roles_cannot_be_renamed(client: AsyncClient, admin_headers):
    roles = (await client.get("/api/v1/roles", headers=admin_headers)).json()["data"]
    admin_role = next(role for role in roles if role["slug"] == "admin")

    response = await client.put(
        f"/api/v1/roles/{admin_role['id']}", json={"name": "Superuser"}, headers=admin_headers
    )
    assert response.status_code == 403
    assert response.json()["message"] == "System roles cannot be renamed"

    # admins keep their access and the role keeps its slug
    response = await client.get(f"/api/v1/roles/{admin_role['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["slug"] == "admin"
    assert response.json()["data"]["name"] == admin_role["name"]

    response = await client.put(
        f"/api/v1/roles/{admin_role['id']}", json={"description": "Full access"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["slug"] == "admin"


async def test_delete_custom_role(client: AsyncClient, admin_headers):
    created = await client.post("/api/v1/roles", json={"name": "Temporary"}, headers=admin_headers)
    role_id = created.json()["data"]["id"]

    response = await client.delete(f"/api/v1/roles/{role_id}", headers=admin_headers)
    assert response.status_code == 200

    response = await client.get(f"/api/v1/roles/{role_id}", headers=admin_headers)
    assert response.status_code == 404


async def test_assign_role_twice_keeps_one_link(client: AsyncClient, admin_headers, user_headers):
    user_id = (await client.get("/api/v1/user", headers=user_headers)).json()["data"]["id"]
    role_id = (await client.post("/api/v1/roles", json={"name": "Editor"}, headers=admin_headers)).json()["data"]["id"]

    for _ in range(2):
        response = await client.post(
            "/api/v1/roles/assign", json={"role_id": role_id, "user_id": user_id}, headers=admin_headers
        )
        assert response.status_code == 200

    detail = await client.get(f"/api/v1/roles/{role_id}", headers=admin_headers)
    users = detail.json()["data"]["users"]
    assert [user["id"] for user in users] == [user_id]

    response = await client.post(
        "/api/v1/roles/remove", json={"role_id": role_id, "user_id": user_id}, headers=admin_headers
    )
    assert response.status_code == 200
    detail = await client.get(f"/api/v1/roles/{role_id}", headers=admin_headers)
    assert detail.json()["data"]["users"] == []


async def test_assign_unknown_user_is_not_found(client: AsyncClient, admin_headers):
    role_id = (await client.post("/api/v1/roles", json={"name": "Editor"}, headers=admin_headers)).json()["data"]["id"]
    response = await client.post(
        "/api/v1/roles/assign", json={"role_id": role_id, "user_id": "missing"}, headers=admin_headers
    )
    assert response.status_code == 404


async def test_roles_require_admin(client: AsyncClient, user_headers):
    response = await client.get("/api/v1/roles", headers=user_headers)
    assert response.status_code == 403
    assert response.json()["status"] == "error"


async def test_roles_require_authentication(client: AsyncClient):
    response = await client.get("/api/v1/roles")
    assert response.status_code == 401
