import hashlib
import hmac
import json
from typing import Any, Dict

from socialize.services.publishers.base import BasePublisher, PublishResult, UploadSnapshot


class WebhookPublisher(BasePublisher):
    """
    POSTs the upload as JSON to ``credentials["webhook_url"]``.

    When ``credentials["secret"]`` is set the body is signed with HMAC-SHA256
    and sent in ``X-Socialize-Signature``. The receiver may answer with an
    ``id`` (or ``post_id``) field, otherwise the idempotency key doubles as the
    external post id.
    """

    platform_type = "webhook"

    async def publish(self, upload: UploadSnapshot, credentials: Dict[str, Any],
                      idempotency_key: str) -> PublishResult:
        self.require(credentials, "webhook_url")

        body = json.dumps({
            "upload_id": upload.id,
            "file_name": upload.file_name,
            "file_type": upload.file_type,
            "file_size": upload.file_size,
            "metadata": upload.metadata,
            "media_url": upload.media_url,
            "idempotency_key": idempotency_key,
        }).encode()

        headers = {"Content-Type": "application/json"}
        secret = credentials.get("secret")
        if secret:
            digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
            headers["X-Socialize-Signature"] = f"sha256={digest}"

        data = await self._post(credentials["webhook_url"], idempotency_key, content=body, headers=headers)
        external_id = str(data.get("id") or data.get("post_id") or idempotency_key)
        return PublishResult(external_post_id=external_id, response=data)
