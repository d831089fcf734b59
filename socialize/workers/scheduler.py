import asyncio
import time
from typing import Dict, List, Tuple

from sqlalchemy import select

from socialize.core.config import settings
from socialize.core.security import utcnow
from socialize.db.models.content_upload import ContentUpload, UploadStatus
from socialize.db.sessions import AsyncSessionLocal
from socialize.utils.logger import get_logger
from socialize.utils.metrics import scheduled_uploads_enqueued

logger = get_logger("workers.scheduler")


class PublishScheduler:
    """
    Enqueues pending uploads whose ``scheduled_at`` has passed, and processing
    uploads whose lease expired because their worker died mid-publish.

    An upload is not enqueued again while a job for it could still be
    holding the lease; a stale duplicate would only lose the claim anyway.
    """

    def __init__(self, producer, session_factory=AsyncSessionLocal,
                 interval_seconds: int = None, batch_size: int = 100):
        self.producer = producer
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.SCHEDULER_INTERVAL_SECONDS
        self.batch_size = batch_size
        self._recent: Dict[str, float] = {}
        self._is_running = False

    async def due_upload_ids(self) -> List[Tuple[str, str]]:
        """(upload id, job reason) pairs that need a publish job now."""
        now = utcnow()
        async with self.session_factory() as db:
            scheduled = await db.execute(
                select(ContentUpload.id)
                .where(
                    ContentUpload.status == UploadStatus.pending,
                    ContentUpload.scheduled_at.is_not(None),
                    ContentUpload.scheduled_at <= now,
                )
                .order_by(ContentUpload.scheduled_at)
                .limit(self.batch_size)
            )
            abandoned = await db.execute(
                select(ContentUpload.id)
                .where(
                    ContentUpload.status == UploadStatus.processing,
                    ContentUpload.lease_expires_at < now,
                )
                .order_by(ContentUpload.lease_expires_at)
                .limit(self.batch_size)
            )
            return ([(upload_id, "schedule") for upload_id in scheduled.scalars().all()]
                    + [(upload_id, "recover") for upload_id in abandoned.scalars().all()])

    async def enqueue_due(self) -> int:
        now = time.monotonic()
        self._recent = {k: t for k, t in self._recent.items() if now - t < settings.PUBLISH_LEASE_SECONDS}

        enqueued = 0
        for upload_id, reason in await self.due_upload_ids():
            if upload_id in self._recent:
                continue
            await self.producer.enqueue_publish(upload_id, reason=reason)
            self._recent[upload_id] = now
            enqueued += 1
            if reason == "recover":
                logger.warning(f"Upload {upload_id} was abandoned mid-publish; re-queued")

        if enqueued:
            scheduled_uploads_enqueued.inc(enqueued)
            logger.info(f"Enqueued {enqueued} uploads for publishing")
        return enqueued

    async def run(self):
        self._is_running = True
        logger.info(f"Scheduler started (interval: {self.interval_seconds}s)")
        while self._is_running:
            try:
                await self.enqueue_due()
            except Exception as e:
                # the next tick retries
                logger.error(f"Scheduler tick failed: {e}")
            await asyncio.sleep(self.interval_seconds)

    def stop(self):
        self._is_running = False
