from typing import Dict, Any

from socialize.core.errors import LeaseConflictError, NotFoundError
from socialize.db.base import load_all_models
from socialize.db.sessions import AsyncSessionLocal
from socialize.services.publish_service import PublishService, new_worker_id
from socialize.utils.logger import get_logger, log_context

load_all_models()

logger = get_logger("workers.tasks")


class PublishTaskProcessor:
    """Runs queued publish jobs against the database lease."""

    def __init__(self, session_factory=AsyncSessionLocal, worker_id: str = None, storage=None):
        self.session_factory = session_factory
        self.storage = storage
        self.worker_id = worker_id or new_worker_id()
        self._processed_count = 0
        self._skipped_count = 0
        self._failed_count = 0
        self._last_error = None

    async def process_publish_job(self, job_data: dict):
        """
        Kafka message handler for one publish job.

        Jobs for uploads that were deleted, are already published or are held
        by another worker are dropped. Anything else that goes wrong is
        re-raised so the consumer can route the message to the retry topic.
        """
        job_id = job_data.get("job_id")
        upload_id = job_data.get("upload_id")
        lease_owner = f"{self.worker_id}:{(job_id or '')[:8]}"

        with log_context(job_id=job_id, upload_id=upload_id):
            logger.info(f"Processing publish job {job_id} for upload {upload_id} ({job_data.get('reason')})")
            await self._run(upload_id, job_id, lease_owner)

    async def _run(self, upload_id, job_id, lease_owner):
        async with self.session_factory() as db:
            try:
                upload = await PublishService(db, self.storage).publish_upload(upload_id, worker_id=lease_owner)
            except LeaseConflictError:
                self._skipped_count += 1
                logger.info(f"Upload {upload_id} already claimed or no longer pending, dropping job {job_id}")
                return
            except NotFoundError:
                self._skipped_count += 1
                logger.info(f"Upload {upload_id} was deleted, dropping job {job_id}")
                return
            except Exception as e:
                self._failed_count += 1
                self._last_error = str(e)
                logger.exception(f"Publish job {job_id} failed: {e}")
                raise

        self._processed_count += 1
        logger.info(f"Publish job {job_id} finished with status {upload.status.value}")

    def get_stats(self) -> Dict[str, Any]:
        total = self._processed_count + self._failed_count
        success_rate = (self._processed_count / total * 100) if total > 0 else 0

        return {
            "processed_jobs": self._processed_count,
            "skipped_jobs": self._skipped_count,
            "failed_jobs": self._failed_count,
            "success_rate": round(success_rate, 1),
            "last_error": self._last_error
        }


# Global task processor instance
task_processor = PublishTaskProcessor()


async def process_publish_job(job_data: dict):
    await task_processor.process_publish_job(job_data)
