"""Kafka producer for publish jobs, shared by the API (queue mode), the scheduler and the consumer's retry path."""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from aiokafka import AIOKafkaProducer
from pydantic import BaseModel, Field

from socialize.core.config import settings
from socialize.utils.logger import get_logger, log_kafka_message
from socialize.utils.metrics import kafka_messages_produced

logger = get_logger("workers.producer")


class PublishJob(BaseModel):
    """Body of a message on the publish topic."""

    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    upload_id: str
    reason: Literal["api", "schedule", "recover"] = "api"
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def encode_value(value: dict) -> bytes:
    return json.dumps(value, default=_json_default, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def encode_key(key: Optional[str]) -> Optional[bytes]:
    return key.encode("utf-8") if isinstance(key, str) else key


class PublishQueueProducer:
    def __init__(self, topic: Optional[str] = None) -> None:
        self.topic = topic or settings.KAFKA_PUBLISH_TOPIC
        self.producer: Optional[AIOKafkaProducer] = None

    @property
    def started(self) -> bool:
        return self.producer is not None

    async def start(self) -> None:
        if self.started:
            return
        producer = AIOKafkaProducer(
            bootstrap_servers=settings.KAFKA_BROKER,
            client_id="socialize-publish",
            acks="all",
            enable_idempotence=True,
            linger_ms=5,
            request_timeout_ms=30000,
            value_serializer=encode_value,
            key_serializer=encode_key,
        )
        try:
            await producer.start()
        except Exception as e:
            logger.error(f"Could not connect Kafka producer to {settings.KAFKA_BROKER}: {e}")
            raise
        self.producer = producer
        logger.info(f"Kafka producer connected to {settings.KAFKA_BROKER}")

    async def send(self, topic: str, payload: dict, key: Optional[str] = None) -> None:
        """Write ``payload`` to ``topic`` and wait for the broker to acknowledge it."""
        if not self.started:
            raise RuntimeError("Kafka producer not started")
        await self.producer.send_and_wait(topic, value=payload, key=key)
        kafka_messages_produced.labels(producer="publish_queue", topic=topic).inc()
        log_kafka_message(logger, "PRODUCE", topic, payload.get("job_id"))

    async def enqueue_publish(self, upload_id: str, reason: str = "api") -> PublishJob:
        """Queue a publish job. Keyed by upload id so one upload's jobs stay on one partition."""
        job = PublishJob(upload_id=upload_id, reason=reason)
        await self.send(self.topic, job.model_dump(), key=upload_id)
        return job

    async def stop(self) -> None:
        if not self.started:
            return
        producer, self.producer = self.producer, None
        await producer.stop()
        logger.info("Kafka producer stopped")


_shared: Optional[PublishQueueProducer] = None


async def get_producer() -> PublishQueueProducer:
    """Process-wide producer for the API, started on first use."""
    global _shared
    if _shared is None:
        _shared = PublishQueueProducer()
    await _shared.start()
    return _shared


async def shutdown_producer() -> None:
    global _shared
    if _shared is not None:
        await _shared.stop()
        _shared = None
