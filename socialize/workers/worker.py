"""Publish worker with Prometheus metrics support"""
import asyncio
from socialize.core.config import settings
from socialize.utils.logger import get_logger, setup_logging
from socialize.utils.metrics import start_metrics_server, worker_up
from socialize.workers.consumer import PublishConsumer
from socialize.workers.producer import PublishQueueProducer
from socialize.workers.scheduler import PublishScheduler
from socialize.workers.tasks import process_publish_job, task_processor

setup_logging(level=settings.LOG_LEVEL, console=True, file=settings.LOG_TO_FILE, json_format=settings.LOG_JSON)
logger = get_logger("workers.worker")


async def main():
    # Start Prometheus metrics server
    try:
        start_metrics_server(port=settings.WORKER_METRICS_PORT)
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")

    logger.info("Starting publish worker...")
    worker_up.labels(worker_id=task_processor.worker_id, worker_type="publish").set(1)

    consumer = PublishConsumer()
    scheduler_producer = PublishQueueProducer()
    await scheduler_producer.start()
    scheduler = PublishScheduler(scheduler_producer)

    try:
        await asyncio.gather(
            consumer.start(process_publish_job),
            scheduler.run(),
        )
    finally:
        scheduler.stop()
        await scheduler_producer.stop()
        worker_up.labels(worker_id=task_processor.worker_id, worker_type="publish").set(0)
        logger.info(f"Publish worker stopped: {task_processor.get_stats()}")


if __name__ == "__main__":
    asyncio.run(main())
