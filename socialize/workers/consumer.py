import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiokafka import AIOKafkaConsumer

from socialize.core.config import settings
from socialize.utils.logger import get_logger
from socialize.utils.metrics import (
    kafka_message_processing_duration,
    kafka_messages_consumed,
    kafka_messages_failed,
    kafka_messages_in_flight,
    kafka_messages_processed,
)
from socialize.workers.kafka_config import (
    KAFKA_BROKER,
    MAX_MESSAGE_RETRIES,
    TOPIC_DLQ,
    TOPIC_PUBLISH,
    TOPIC_RETRY,
    KafkaTopicManager,
)
from socialize.workers.producer import PublishQueueProducer

logger = get_logger("workers.queue")

REQUIRED_FIELDS = ('job_id', 'upload_id')

JobHandler = Callable[[Dict[str, Any]], Awaitable[None]]


def _invalid(reason: str, raw: str, data: Optional[dict] = None) -> Dict[str, Any]:
    logger.error(f"Rejected publish message: {reason}")
    return {**(data or {}), "_invalid": True, "validation_error": reason, "_raw": raw}


def deserialize_message(value: bytes) -> Dict[str, Any]:
    """
    Value deserializer for the consumer. Never raises: a message that is not a
    JSON object with a job_id and an upload_id comes back flagged ``_invalid``
    so the loop can park it on the DLQ and keep going.
    """
    raw = value.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        return _invalid(f"JSONDecodeError: {e}", raw)

    if not isinstance(data, dict):
        return _invalid("Message is not a JSON object", raw)

    missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
    if missing:
        return _invalid(f"Missing required field(s): {', '.join(missing)}", raw, data)
    return data


def delivery_attempt(value: Dict[str, Any]) -> int:
    """1 for a job from the main topic, incremented each time it goes through the retry topic."""
    return value.get('_metadata', {}).get('attempt', 1)


class PublishConsumer:
    """
    Pulls publish jobs from the main and retry topics and runs them with
    bounded concurrency.

    A job that raises is re-queued on the retry topic until it has been
    delivered MAX_MESSAGE_RETRIES + 1 times, then parked on the DLQ. Offsets
    are committed after a whole batch has been handled one way or the other.
    """

    def __init__(self, group_id: str = "publish_worker_group", topics: List[str] = None,
                 concurrency: int = None, producer: PublishQueueProducer = None):
        self.group_id = group_id
        self.topics = topics or [TOPIC_PUBLISH, TOPIC_RETRY]
        self.producer = producer or PublishQueueProducer()
        self.semaphore = asyncio.Semaphore(concurrency or settings.PUBLISH_WORKER_CONCURRENCY)
        self.consumer: Optional[AIOKafkaConsumer] = None
        self._is_running = False
        self._stats = {"processed_messages": 0, "failed_messages": 0}

    def _build_consumer(self) -> AIOKafkaConsumer:
        return AIOKafkaConsumer(
            *self.topics,
            bootstrap_servers=KAFKA_BROKER,
            group_id=self.group_id,
            enable_auto_commit=False,
            auto_offset_reset="earliest",
            max_poll_records=settings.PUBLISH_WORKER_CONCURRENCY * 5,
            session_timeout_ms=30000,
            heartbeat_interval_ms=10000,
            # a batch can include platform calls with retries
            max_poll_interval_ms=300000,
            value_deserializer=deserialize_message,
        )

    def _labels(self, msg) -> Dict[str, str]:
        return {"consumer_group": self.group_id, "topic": msg.topic}

    async def start(self, process_func: JobHandler):
        """Consume until stop() is called."""
        await KafkaTopicManager.ensure_topics()
        self.consumer = self._build_consumer()

        try:
            await self.producer.start()
            await self.consumer.start()
            self._is_running = True
            logger.info(f"Publish consumer {self.group_id} subscribed to {', '.join(self.topics)}")

            while self._is_running:
                fetched = await self.consumer.getmany(timeout_ms=1000)
                batch = [msg for partition in fetched.values() for msg in partition]
                if not batch:
                    continue
                for msg in batch:
                    kafka_messages_consumed.labels(**self._labels(msg)).inc()
                await self.process_batch(batch, process_func)
                await self.consumer.commit()
        except Exception as e:
            logger.error(f"Publish consumer loop crashed: {e}")
            raise
        finally:
            await self._shutdown()

    async def process_batch(self, messages, process_func: JobHandler):
        async def bounded(msg):
            async with self.semaphore:
                await self._handle(msg, process_func)

        await asyncio.gather(*(bounded(msg) for msg in messages))

    async def _handle(self, msg, process_func: JobHandler):
        labels = self._labels(msg)

        if msg.value.get('_invalid'):
            self._stats["failed_messages"] += 1
            kafka_messages_failed.labels(**labels, error_type='validation').inc()
            await self._dead_letter(msg, msg.value.get('validation_error') or 'invalid_message')
            return

        kafka_messages_in_flight.labels(**labels).inc()
        started = time.time()
        try:
            await process_func(msg.value)
        except Exception as e:
            self._stats["failed_messages"] += 1
            kafka_messages_failed.labels(**labels, error_type=type(e).__name__).inc()
            await self._route_failure(msg, e)
        else:
            self._stats["processed_messages"] += 1
            kafka_messages_processed.labels(**labels).inc()
        finally:
            kafka_message_processing_duration.labels(**labels).observe(time.time() - started)
            kafka_messages_in_flight.labels(**labels).dec()

    async def _route_failure(self, msg, error: Exception):
        job_id = msg.value.get('job_id', 'unknown')
        attempt = delivery_attempt(msg.value)
        logger.error(f"Publish job {job_id} failed on delivery {attempt}: {error}")

        if attempt > MAX_MESSAGE_RETRIES:
            await self._dead_letter(msg, f"Max retries exceeded: {error}")
            return

        metadata = {
            **msg.value.get('_metadata', {}),
            "attempt": attempt + 1,
            "last_error": str(error),
            "retry_timestamp": time.time(),
        }
        await self.producer.send(TOPIC_RETRY, {**msg.value, "_metadata": metadata}, key=msg.value.get('upload_id'))
        logger.info(f"Publish job {job_id} re-queued for delivery {attempt + 1}")

    async def _dead_letter(self, msg, reason: str):
        payload = {**msg.value, 'dlq_reason': reason, 'dlq_timestamp': time.time()}
        await self.producer.send(TOPIC_DLQ, payload, key=msg.value.get('upload_id'))
        logger.warning(f"Publish job {msg.value.get('job_id', 'unknown')} parked on {TOPIC_DLQ}: {reason}")

    def stop(self):
        self._is_running = False

    async def _shutdown(self):
        self._is_running = False
        if self.consumer:
            await self.consumer.stop()
        await self.producer.stop()
        logger.info(f"Publish consumer {self.group_id} stopped: {self.get_stats()}")

    def get_stats(self) -> Dict[str, int]:
        return {**self._stats, "total_messages": sum(self._stats.values())}
