import os
import uuid
from datetime import datetime, timedelta
from typing import Any, BinaryIO, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from socialize.core.auth import RequestContext
from socialize.core.config import settings
from socialize.core.errors import ForbiddenError, NotFoundError, ValidationError
from socialize.core.security import utcnow
from socialize.db.models.content_upload import ContentUpload, UploadStatus
from socialize.db.models.social_platform import SocialPlatform
from socialize.services.storage_service import StorageBackend
from socialize.services.upload_state import ensure_client_transition
from socialize.utils.dto.content_upload import ContentUploadUpdate, DownloadUrlResponse
from socialize.utils.logger import get_logger, log_database_operation
from socialize.utils.metrics import uploaded_bytes_total

logger = get_logger("services.upload_service")

_MAX_EXTENSION_LENGTH = 16


def storage_key_for(user_id: str, platform_id: str, filename: Optional[str]) -> str:
    """
    Opaque storage key for a new upload.

    Only the extension of the client filename survives, and only when it is
    short and alphanumeric.
    """
    ext = os.path.splitext(filename or "")[1].lower()
    if not ext[1:].isalnum() or len(ext) > _MAX_EXTENSION_LENGTH:
        ext = ""
    return f"uploads/{user_id}/{platform_id}/{uuid.uuid4()}{ext}"


class UploadService:
    def __init__(self, db: AsyncSession, context: RequestContext, storage: StorageBackend):
        self.db = db
        self.context = context
        self.storage = storage

    def _scoped(self, stmt):
        if self.context.is_admin:
            return stmt
        return stmt.join(SocialPlatform, ContentUpload.social_platform_id == SocialPlatform.id).where(
            SocialPlatform.tenant_id == self.context.tenant_id
        )

    async def create_upload(
        self,
        social_platform_id: str,
        filename: str,
        content_type: Optional[str],
        stream: BinaryIO,
        metadata: Optional[Dict[str, Any]] = None,
        scheduled_at: Optional[datetime] = None,
        max_bytes: Optional[int] = None,
    ) -> ContentUpload:
        """
        Store the file and record it as a pending upload.

        The record is only written after the file was stored; if writing the
        record fails, the stored file is deleted again.
        """
        platform = await self.db.get(SocialPlatform, social_platform_id)
        if not platform:
            raise ValidationError.for_field("social_platform_id", "The selected social platform id is invalid.")
        if not self.context.is_admin and platform.tenant_id != self.context.tenant_id:
            raise ForbiddenError("This platform belongs to another tenant")

        max_bytes = max_bytes if max_bytes is not None else settings.MAX_UPLOAD_BYTES
        key = storage_key_for(self.context.user_id, platform.id, filename)

        size = await self.storage.save(key, stream, max_bytes=max_bytes)
        logger.info(f"Stored {size} bytes for upload on platform {platform.id}")

        upload = ContentUpload(
            user_id=self.context.user_id,
            social_platform_id=platform.id,
            file_name=filename or os.path.basename(key),
            file_path=key,
            file_type=content_type or "application/octet-stream",
            file_size=size,
            upload_metadata=metadata or {},
            status=UploadStatus.pending,
            scheduled_at=scheduled_at,
        )
        self.db.add(upload)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            await self.storage.delete(key)
            raise

        uploaded_bytes_total.inc(size)
        log_database_operation(logger, "INSERT", "content_uploads", upload.id)
        return await self.get_upload(upload.id)

    async def list_uploads(
        self,
        user_id: Optional[str] = None,
        social_platform_id: Optional[str] = None,
        status: Optional[UploadStatus] = None,
    ) -> List[ContentUpload]:
        stmt = self._scoped(
            select(ContentUpload).options(
                selectinload(ContentUpload.user),
                selectinload(ContentUpload.social_platform),
            )
        )
        if user_id:
            stmt = stmt.where(ContentUpload.user_id == user_id)
        if social_platform_id:
            stmt = stmt.where(ContentUpload.social_platform_id == social_platform_id)
        if status:
            stmt = stmt.where(ContentUpload.status == status)

        result = await self.db.execute(stmt.order_by(ContentUpload.created_at.desc()))
        return list(result.scalars().all())

    async def get_upload(self, upload_id: str) -> ContentUpload:
        upload = (await self.db.execute(
            select(ContentUpload)
            .options(selectinload(ContentUpload.user), selectinload(ContentUpload.social_platform))
            .where(ContentUpload.id == upload_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if not upload:
            raise NotFoundError("Content upload not found")
        if not self.context.is_admin and upload.social_platform.tenant_id != self.context.tenant_id:
            raise ForbiddenError("This upload belongs to another tenant")
        return upload

    async def update_upload(self, upload_id: str, payload: ContentUploadUpdate) -> ContentUpload:
        upload = await self.get_upload(upload_id)
        changes = payload.model_dump(exclude_unset=True)

        if changes.get("status") is not None and changes["status"] != upload.status:
            ensure_client_transition(upload.status, changes["status"])
            upload.status = changes["status"]
            if upload.status == UploadStatus.pending:
                # requeued after a failure
                upload.last_error = None
                upload.publish_generation = (upload.publish_generation or 0) + 1

        if "metadata" in changes:
            upload.upload_metadata = changes["metadata"] or {}
        if "published_at" in changes:
            upload.published_at = changes["published_at"]
        if "scheduled_at" in changes:
            upload.scheduled_at = changes["scheduled_at"]

        await self.db.commit()
        log_database_operation(logger, "UPDATE", "content_uploads", upload.id)
        return await self.get_upload(upload.id)

    async def delete_upload(self, upload_id: str) -> None:
        """
        Delete the record, then the stored file, then commit.

        A storage failure rolls the record deletion back and propagates as
        StorageError.
        """
        upload = await self.get_upload(upload_id)
        key = upload.file_path

        try:
            await self.db.execute(
                delete(ContentUpload)
                .where(ContentUpload.id == upload.id)
                .execution_options(synchronize_session=False)
            )
            await self.storage.delete(key)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        log_database_operation(logger, "DELETE", "content_uploads", upload_id)

    async def generate_download_url(self, upload_id: str) -> DownloadUrlResponse:
        upload = await self.get_upload(upload_id)
        if not await self.storage.exists(upload.file_path):
            logger.warning(f"Stored file for upload {upload.id} is missing")
            raise NotFoundError("Stored file not found")

        ttl = settings.DOWNLOAD_URL_TTL_SECONDS
        return DownloadUrlResponse(
            url=self.storage.get_signed_url(upload.file_path, ttl),
            expires_at=utcnow() + timedelta(seconds=ttl),
        )
