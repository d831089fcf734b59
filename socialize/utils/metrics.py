"""
Prometheus metrics.

The API exposes these on ``/metrics`` next to the HTTP metrics from
prometheus-fastapi-instrumentator; the worker process serves them on
``WORKER_METRICS_PORT`` through ``start_metrics_server``.
"""
from prometheus_client import Counter, Gauge, Histogram, start_http_server

from socialize.utils.logger import get_logger

logger = get_logger("utils.metrics")

# platform calls and queue handling share a scale: sub-second to a minute
SLOW_CALL_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)

QUEUE_LABELS = ('consumer_group', 'topic')

# --- publish queue ---

kafka_messages_produced = Counter(
    'kafka_messages_produced_total', 'Messages written to the publish topics', ['producer', 'topic'],
)
kafka_messages_consumed = Counter(
    'kafka_messages_consumed_total', 'Messages fetched by the publish consumer', QUEUE_LABELS,
)
kafka_messages_processed = Counter(
    'kafka_messages_processed_total', 'Messages whose publish job completed', QUEUE_LABELS,
)
kafka_messages_failed = Counter(
    'kafka_messages_failed_total', 'Messages routed to the retry topic or the DLQ',
    [*QUEUE_LABELS, 'error_type'],
)
kafka_messages_in_flight = Gauge(
    'kafka_messages_in_flight', 'Publish jobs currently running in this worker', QUEUE_LABELS,
)
kafka_message_processing_duration = Histogram(
    'kafka_message_processing_duration_seconds', 'Wall time of one publish job, database lease included',
    QUEUE_LABELS, buckets=SLOW_CALL_BUCKETS,
)

# --- publishing ---

publish_attempts_total = Counter(
    'publish_attempts_total', 'Finished publish attempts',
    ['platform_type', 'outcome'],  # outcome: published | failed
)
publish_duration = Histogram(
    'publish_duration_seconds', 'Time inside platform publishers, transient retries included',
    ['platform_type'], buckets=SLOW_CALL_BUCKETS,
)
publish_lease_conflicts_total = Counter(
    'publish_lease_conflicts_total', 'Claims refused because the upload was leased or not pending',
)
scheduled_uploads_enqueued = Counter(
    'scheduled_uploads_enqueued_total', 'Due scheduled or abandoned uploads handed to the publish queue',
)

# --- content storage ---

uploaded_bytes_total = Counter(
    'content_uploaded_bytes_total', 'Bytes of accepted content uploads',
)
storage_operations = Counter(
    'storage_operations_total', 'Calls into the storage backend', ['backend', 'operation', 'status'],
)

worker_up = Gauge(
    'worker_up', '1 while a worker process is running', ['worker_id', 'worker_type'],
)


def start_metrics_server(port: int = 8001) -> None:
    start_http_server(port)
    logger.info(f"Worker metrics served on :{port}/metrics")
