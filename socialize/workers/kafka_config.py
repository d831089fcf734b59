"""Topic layout for the publish queue and the admin helper that creates it."""

from dataclasses import dataclass, field
from typing import Dict, List

from aiokafka.admin import AIOKafkaAdminClient, NewTopic
from aiokafka.errors import KafkaError, TopicAlreadyExistsError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from socialize.core.config import settings
from socialize.utils.logger import get_logger

logger = get_logger("workers.queue")

KAFKA_BROKER = settings.KAFKA_BROKER
TOPIC_PUBLISH = settings.KAFKA_PUBLISH_TOPIC
TOPIC_RETRY = f"{TOPIC_PUBLISH}.retry"
TOPIC_DLQ = f"{TOPIC_PUBLISH}.dlq"

# deliveries of one job before it is parked on the dead letter topic
MAX_MESSAGE_RETRIES = 3

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class TopicSpec:
    name: str
    partitions: int
    retention_days: int
    extra_configs: Dict[str, str] = field(default_factory=dict)

    def to_new_topic(self, replication_factor: int) -> NewTopic:
        return NewTopic(
            name=self.name,
            num_partitions=self.partitions,
            replication_factor=replication_factor,
            topic_configs={
                "retention.ms": str(self.retention_days * DAY_MS),
                "cleanup.policy": "delete",
                **self.extra_configs,
            },
        )


def publish_topics() -> List[TopicSpec]:
    """
    Jobs are keyed by upload id, so every job for one upload lands on the same
    partition of the main topic. Retry traffic is light and short lived; the
    dead letter topic is kept long enough for someone to inspect it.
    """
    return [
        TopicSpec(TOPIC_PUBLISH, partitions=10, retention_days=7),
        TopicSpec(TOPIC_RETRY, partitions=5, retention_days=1),
        TopicSpec(TOPIC_DLQ, partitions=3, retention_days=30, extra_configs={"max.message.bytes": "1048576"}),
    ]


class KafkaTopicManager:
    """Creates the queue topics when the worker starts."""

    replication_factor = 1

    @classmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((KafkaError, ConnectionError)),
        reraise=True,
    )
    async def ensure_topics(cls) -> List[str]:
        """Create any missing topic and return the names that were created."""
        admin = AIOKafkaAdminClient(bootstrap_servers=KAFKA_BROKER, client_id="socialize-admin")
        created = []
        await admin.start()
        try:
            for topic in publish_topics():
                try:
                    await admin.create_topics([topic.to_new_topic(cls.replication_factor)])
                except TopicAlreadyExistsError:
                    logger.debug(f"Kafka topic {topic.name} already exists")
                    continue
                created.append(topic.name)
                logger.info(f"Created Kafka topic {topic.name} ({topic.partitions} partitions)")
        finally:
            await admin.close()
        return created
