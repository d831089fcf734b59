from typing import Any, Dict

from socialize.services.publishers.base import BasePublisher, PublishError, PublishResult, UploadSnapshot

GRAPH_API_BASE = "https://graph.facebook.com/v19.0"


class FacebookPublisher(BasePublisher):
    """
    Page post through the Graph API.

    Images are sent to ``/{page_id}/photos`` by URL so Facebook fetches the
    file from storage; everything else becomes a feed post with the caption.
    """

    platform_type = "facebook"

    async def publish(self, upload: UploadSnapshot, credentials: Dict[str, Any],
                      idempotency_key: str) -> PublishResult:
        self.require(credentials, "page_id", "page_access_token")
        page_id = credentials["page_id"]
        token = credentials["page_access_token"]

        if upload.file_type.startswith("image/") and upload.media_url:
            data = await self._post(
                f"{GRAPH_API_BASE}/{page_id}/photos",
                idempotency_key,
                data={"url": upload.media_url, "caption": upload.caption, "access_token": token},
            )
            post_id = data.get("post_id") or data.get("id")
        else:
            if not upload.caption:
                raise PublishError("Facebook feed posts need a caption in the upload metadata")
            data = await self._post(
                f"{GRAPH_API_BASE}/{page_id}/feed",
                idempotency_key,
                data={"message": upload.caption, "access_token": token},
            )
            post_id = data.get("id")

        if not post_id:
            raise PublishError("Graph API response did not contain a post id")
        return PublishResult(external_post_id=str(post_id), response=data)
