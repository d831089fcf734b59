import os
import socket
import time
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy import Text, and_, or_, select, type_coerce, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from socialize.core.config import settings
from socialize.core.errors import InvalidTransitionError, LeaseConflictError, NotFoundError, StorageError
from socialize.core.security import utcnow
from socialize.db.models.content_upload import ContentUpload, UploadStatus
from socialize.db.models.social_platform import SocialPlatform
from socialize.services.publishers.base import (
    PublishError,
    PublishResult,
    TransientPublishError,
    UploadSnapshot,
)
from socialize.services.publishers.registry import get_publisher
from socialize.services.storage_service import StorageBackend, get_storage
from socialize.utils.logger import get_logger, log_database_operation, log_publish_operation
from socialize.utils.metrics import publish_attempts_total, publish_duration, publish_lease_conflicts_total

logger = get_logger("services.publish_service")


def new_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def idempotency_key_for(upload_id: str, generation: int) -> str:
    """Stable across retries and lease re-claims; changes once a failed upload is requeued."""
    return f"{upload_id}:{generation}"


class PublishService:
    """
    Drives one upload through processing to published or failed.

    Exclusivity comes from a lease on the row: ``lease_owner``,
    ``lease_expires_at`` and ``version`` are set by a single conditional
    UPDATE, and the outcome is written by another conditional UPDATE that
    only matches while the lease is still ours.
    """

    def __init__(self, db: AsyncSession, storage: Optional[StorageBackend] = None):
        self.db = db
        self.storage = storage or get_storage()

    async def _claim(self, upload_id: str, worker_id: str) -> None:
        now = utcnow()
        claimable = or_(
            ContentUpload.status == UploadStatus.pending,
            and_(
                ContentUpload.status == UploadStatus.processing,
                ContentUpload.lease_expires_at < now,
            ),
        )
        result = await self.db.execute(
            update(ContentUpload)
            .where(ContentUpload.id == upload_id, claimable)
            .values(
                status=UploadStatus.processing,
                lease_owner=worker_id,
                lease_expires_at=now + timedelta(seconds=settings.PUBLISH_LEASE_SECONDS),
                version=ContentUpload.version + 1,
                publish_attempts=ContentUpload.publish_attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            publish_lease_conflicts_total.inc()
            logger.info(f"Upload {upload_id} is not claimable by {worker_id}")
            raise LeaseConflictError("Upload is already being published or is not pending")

        await self.db.commit()
        log_database_operation(logger, "UPDATE", "content_uploads", upload_id, lease_owner=worker_id)

    async def _load(self, upload_id: str) -> ContentUpload:
        upload = (await self.db.execute(
            select(ContentUpload)
            .where(ContentUpload.id == upload_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if not upload:
            raise NotFoundError("Content upload not found")
        return upload

    async def _load_platform(self, platform_id: str) -> SocialPlatform:
        platform = (await self.db.execute(
            select(SocialPlatform)
            .where(SocialPlatform.id == platform_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if not platform:
            raise PublishError("Social platform no longer exists")
        if not platform.enabled:
            raise PublishError("Social platform is disabled")
        if platform.credentials is None:
            # credentials load as None when the stored token no longer decrypts
            stored = (await self.db.execute(
                select(type_coerce(SocialPlatform.credentials, Text)).where(SocialPlatform.id == platform_id)
            )).scalar()
            if stored is not None:
                raise PublishError("Stored credentials could not be decrypted")
        return platform

    async def _extend_lease(self, upload_id: str, worker_id: str, version: int) -> None:
        """Push the lease out by a full term; raises LeaseConflictError when it is no longer ours."""
        result = await self.db.execute(
            update(ContentUpload)
            .where(
                ContentUpload.id == upload_id,
                ContentUpload.lease_owner == worker_id,
                ContentUpload.version == version,
            )
            .values(lease_expires_at=utcnow() + timedelta(seconds=settings.PUBLISH_LEASE_SECONDS))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount != 1:
            publish_lease_conflicts_total.inc()
            logger.warning(f"Lease on upload {upload_id} was lost before a publish attempt; not posting")
            raise LeaseConflictError("Lease expired before the publish completed")

    async def _call_publisher(self, upload: ContentUpload, worker_id: str) -> PublishResult:
        upload_id, version = upload.id, upload.version
        platform = await self._load_platform(upload.social_platform_id)

        publisher = get_publisher(platform.platform_type)
        credentials = platform.credentials or {}

        try:
            media_url = self.storage.get_signed_url(upload.file_path, settings.DOWNLOAD_URL_TTL_SECONDS)
        except StorageError as e:
            raise TransientPublishError(e.message) from e

        snapshot = UploadSnapshot(
            id=upload_id,
            file_name=upload.file_name,
            file_type=upload.file_type,
            file_size=upload.file_size,
            metadata=dict(upload.upload_metadata or {}),
            media_url=media_url,
            platform_settings=dict(platform.settings or {}),
        )
        key = idempotency_key_for(upload_id, upload.publish_generation)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(settings.PUBLISH_MAX_ATTEMPTS),
            wait=wait_exponential(
                multiplier=settings.PUBLISH_RETRY_BACKOFF_SECONDS, max=settings.PUBLISH_MAX_RETRY_WAIT_SECONDS,
            ),
            retry=retry_if_exception_type(TransientPublishError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying publish of upload {upload_id} "
                                   f"(attempt {attempt.retry_state.attempt_number})")
                await self._extend_lease(upload_id, worker_id, version)
                result = await publisher.publish(snapshot, credentials, key)
        return result

    async def _platform_type(self, platform_id: str) -> str:
        row = (await self.db.execute(
            select(SocialPlatform.platform_type).where(SocialPlatform.id == platform_id)
        )).first()
        return row[0] if row else "unknown"

    async def _record_post(self, upload_id: str, external_post_id: str) -> None:
        """
        Store the platform's post id the moment the publisher returns.

        Not guarded by the lease: a worker that lost its lease mid-call still
        leaves the id behind, so whoever claims the upload next finishes it
        without posting again. The first recorded id wins.
        """
        result = await self.db.execute(
            update(ContentUpload)
            .where(ContentUpload.id == upload_id, ContentUpload.external_post_id.is_(None))
            .values(external_post_id=external_post_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount != 1:
            logger.error(f"Upload {upload_id} already has a recorded post; {external_post_id} is a duplicate")

    async def _finish(self, upload_id: str, version: int, worker_id: str, status: UploadStatus,
                      error: Optional[str] = None) -> None:
        values = dict(status=status, lease_owner=None, lease_expires_at=None)
        if status == UploadStatus.published:
            values.update(published_at=utcnow(), last_error=None)
        else:
            values.update(last_error=(error or "Publish failed")[:2000])

        result = await self.db.execute(
            update(ContentUpload)
            .where(
                ContentUpload.id == upload_id,
                ContentUpload.lease_owner == worker_id,
                ContentUpload.version == version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            publish_lease_conflicts_total.inc()
            logger.warning(f"Lease on upload {upload_id} was lost before completion; outcome {status.value} dropped")
            raise LeaseConflictError("Lease expired before the publish completed")

        await self.db.commit()
        log_database_operation(logger, "UPDATE", "content_uploads", upload_id, status=status.value)

    async def publish_upload(self, upload_id: str, worker_id: Optional[str] = None) -> ContentUpload:
        """
        Claim, publish and record the outcome for ``upload_id``.

        Raises NotFoundError when the upload does not exist and
        LeaseConflictError when someone else holds it, it is not pending, or
        the lease is lost while publishing. Publisher failures never escape:
        they are stored on the upload.
        """
        worker_id = worker_id or new_worker_id()

        exists = (await self.db.execute(select(ContentUpload.id).where(ContentUpload.id == upload_id))).first()
        if not exists:
            raise NotFoundError("Content upload not found")

        await self._claim(upload_id, worker_id)
        upload = await self._load(upload_id)
        version = upload.version
        platform_type = await self._platform_type(upload.social_platform_id)
        log_publish_operation(logger, "CLAIMED", upload_id, platform_type, worker=worker_id)

        if upload.external_post_id:
            # an earlier attempt posted but lost its lease before recording the outcome
            log_publish_operation(logger, "ALREADY_POSTED", upload_id, platform_type)
            await self._finish(upload_id, version, worker_id, UploadStatus.published)
            publish_attempts_total.labels(platform_type=platform_type, outcome="published").inc()
            return await self.get_result(upload_id)

        start_time = time.time()
        try:
            result = await self._call_publisher(upload, worker_id)
        except LeaseConflictError:
            publish_duration.labels(platform_type=platform_type).observe(time.time() - start_time)
            raise
        except Exception as e:
            publish_duration.labels(platform_type=platform_type).observe(time.time() - start_time)
            publish_attempts_total.labels(platform_type=platform_type, outcome="failed").inc()
            log_publish_operation(logger, "FAILED", upload_id, platform_type, error=str(e))
            if isinstance(e, PublishError):
                logger.error(f"Publishing upload {upload_id} failed: {e}")
                reason = str(e)
            else:
                logger.exception(f"Unexpected error publishing upload {upload_id}: {e}")
                reason = f"Unexpected error: {e}"
            await self._finish(upload_id, version, worker_id, UploadStatus.failed, error=reason)
            return await self.get_result(upload_id)

        publish_duration.labels(platform_type=platform_type).observe(time.time() - start_time)
        await self._record_post(upload_id, result.external_post_id)
        log_publish_operation(logger, "PUBLISHED", upload_id, platform_type, external_post_id=result.external_post_id)
        await self._finish(upload_id, version, worker_id, UploadStatus.published)
        publish_attempts_total.labels(platform_type=platform_type, outcome="published").inc()
        return await self.get_result(upload_id)

    async def get_result(self, upload_id: str) -> ContentUpload:
        """Reload an upload with its user and platform for the response."""
        upload = (await self.db.execute(
            select(ContentUpload)
            .options(selectinload(ContentUpload.user), selectinload(ContentUpload.social_platform))
            .where(ContentUpload.id == upload_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if not upload:
            raise NotFoundError("Content upload not found")
        return upload

    async def queue_publish(self, upload: ContentUpload, producer) -> None:
        """
        Hand ``upload`` to the publish workers. Pending uploads are queued, and
        so are processing uploads whose lease ran out (their worker died).
        """
        upload_id = upload.id
        stale = (await self.db.execute(
            select(ContentUpload.id).where(
                ContentUpload.id == upload_id,
                ContentUpload.status == UploadStatus.processing,
                ContentUpload.lease_expires_at < utcnow(),
            )
        )).first()
        if upload.status != UploadStatus.pending and not stale:
            raise InvalidTransitionError(
                f"Only pending uploads or uploads with an expired lease can be published "
                f"(current status: {upload.status.value})"
            )
        await producer.enqueue_publish(upload_id, reason="api" if not stale else "recover")
