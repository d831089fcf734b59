from typing import Any, Dict

from socialize.services.publishers.base import BasePublisher, PublishError, PublishResult, UploadSnapshot

X_API_BASE = "https://api.twitter.com/2"
MAX_TWEET_LENGTH = 280


class XPublisher(BasePublisher):
    """Text post through the X API v2 with a user-context OAuth 2.0 token."""

    platform_type = "x"

    async def publish(self, upload: UploadSnapshot, credentials: Dict[str, Any],
                      idempotency_key: str) -> PublishResult:
        self.require(credentials, "access_token")

        text = upload.caption
        if not text:
            raise PublishError("X posts need a caption in the upload metadata")
        if len(text) > MAX_TWEET_LENGTH:
            raise PublishError(f"Caption exceeds {MAX_TWEET_LENGTH} characters")

        data = await self._post(
            f"{X_API_BASE}/tweets",
            idempotency_key,
            json={"text": text},
            headers={"Authorization": f"Bearer {credentials['access_token']}"},
        )

        tweet_id = (data.get("data") or {}).get("id")
        if not tweet_id:
            raise PublishError("X response did not contain a tweet id")
        return PublishResult(external_post_id=str(tweet_id), response=data)
