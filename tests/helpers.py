"""
Shared test helpers
"""

import asyncio
from typing import Dict

from httpx import AsyncClient

from socialize.services.publishers.base import BasePublisher, PublishResult

PASSWORD = "password"


class FakePublisher(BasePublisher):
    """Records calls instead of talking to a platform."""

    platform_type = "fake"

    def __init__(self, delay: float = 0.0, errors=None):
        super().__init__()
        self.delay = delay
        self.errors = list(errors or [])
        self.calls = []
        # awaited with the upload snapshot while the "platform call" is in flight
        self.before_publish = None

    async def publish(self, upload, credentials, idempotency_key):
        self.calls.append((upload.id, idempotency_key))
        if self.before_publish:
            await self.before_publish(upload)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        return PublishResult(external_post_id=f"post-{len(self.calls)}", response={"ok": True})


async def login(client: AsyncClient, email: str, password: str = PASSWORD) -> Dict:
    response = await client.post("/api/v1/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def create_tenant(client: AsyncClient, headers: Dict, name: str = "Acme",
                        domain: str = "acme.example.com") -> Dict:
    response = await client.post("/api/v1/tenants", json={"name": name, "domain": domain}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def create_platform(client: AsyncClient, headers: Dict, tenant_id: str,
                          platform_type: str = "fake", **extra) -> Dict:
    payload = {"tenant_id": tenant_id, "name": f"{platform_type} account", "platform_type": platform_type}
    payload.update(extra)
    response = await client.post("/api/v1/social-platforms", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def upload_file(client: AsyncClient, headers: Dict, platform_id: str,
                      content: bytes = b"hello world", filename: str = "photo.jpg",
                      content_type: str = "image/jpeg", **form):
    data = {"social_platform_id": platform_id}
    data.update(form)
    return await client.post(
        "/api/v1/content-uploads",
        data=data,
        files={"file": (filename, content, content_type)},
        headers=headers,
    )
