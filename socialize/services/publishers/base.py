from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from socialize.core.config import settings
from socialize.utils.logger import get_logger

logger = get_logger("services.publishers")


class PublishError(Exception):
    """Permanent publish failure. The upload is marked failed without retrying."""


class TransientPublishError(PublishError):
    """Retryable failure: timeouts, connection errors, 429 and 5xx responses."""


@dataclass(frozen=True)
class UploadSnapshot:
    """Detached view of a content upload handed to publishers."""

    id: str
    file_name: str
    file_type: str
    file_size: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    media_url: Optional[str] = None
    platform_settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def caption(self) -> str:
        return str(self.metadata.get("caption") or self.metadata.get("text") or "")


@dataclass
class PublishResult:
    external_post_id: str
    response: Dict[str, Any] = field(default_factory=dict)


class BasePublisher(ABC):
    """
    Posts an upload to one social platform type.

    Implementations send ``idempotency_key`` with every request so a retried
    or re-claimed publish does not create a second post on platforms that
    honour it.
    """

    platform_type: str = ""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout or settings.PUBLISHER_TIMEOUT_SECONDS
        self.transport = transport

    @abstractmethod
    async def publish(self, upload: UploadSnapshot, credentials: Dict[str, Any],
                      idempotency_key: str) -> PublishResult:
        ...

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    @staticmethod
    def require(credentials: Dict[str, Any], *keys: str) -> None:
        missing = [key for key in keys if not credentials.get(key)]
        if missing:
            raise PublishError(f"Missing credentials: {', '.join(missing)}")

    async def _post(self, url: str, idempotency_key: str, **kwargs) -> Dict[str, Any]:
        """POST and classify failures into transient and permanent errors."""
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Idempotency-Key"] = idempotency_key

        try:
            async with self._client() as client:
                response = await client.post(url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientPublishError(f"{self.platform_type} request timed out") from e
        except httpx.TransportError as e:
            raise TransientPublishError(f"{self.platform_type} connection failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientPublishError(f"{self.platform_type} returned HTTP {response.status_code}")
        if response.status_code >= 400:
            logger.warning(f"{self.platform_type} rejected post: HTTP {response.status_code}")
            raise PublishError(f"{self.platform_type} rejected the post (HTTP {response.status_code}): "
                               f"{response.text[:300]}")

        try:
            return response.json()
        except ValueError:
            return {"body": response.text}
