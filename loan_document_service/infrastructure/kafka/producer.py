# Kafka producer for outbound batch notifications
import asyncio
import logging
from typing import Optional, Callable, Any, Dict, List, Tuple

from confluent_kafka import Producer
from opentelemetry.propagate import inject
from pydantic import BaseModel

from loan_document_service.app.config import settings

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.1


def trace_headers() -> List[Tuple[str, bytes]]:
    """The active trace context as Kafka headers, so consumers can continue the trace."""
    carrier: Dict[str, str] = {}
    inject(carrier)
    return [(name, value.encode('utf-8')) for name, value in carrier.items()]


class KafkaProducerService:
    def __init__(self, bootstrap_servers: str, client_id: Optional[str] = None):
        self.producer_config = {
            'bootstrap.servers': bootstrap_servers,
            'client.id': client_id or settings.SERVICE_NAME_API,
            'acks': 'all',
        }
        self.producer = Producer(self.producer_config)
        self.delivered_count = 0
        self.failed_count = 0
        self._stopping = False
        self._poll_task: Optional[asyncio.Task] = None
        logger.info(f"Notification producer created for {bootstrap_servers} as '{self.producer_config['client.id']}'.")

    def _on_delivery(self, err, msg):
        if err is not None:
            self.failed_count += 1
            logger.error(f'Notification delivery failed: topic {msg.topic()} key {msg.key()}: {err}')
        else:
            self.delivered_count += 1
            logger.debug(f'Notification delivered: topic {msg.topic()} key {msg.key()} partition [{msg.partition()}] @ {msg.offset()}')

    async def _poll_loop(self):
        # Serves delivery callbacks until stop_polling is called.
        while not self._stopping:
            self.producer.poll(0)
            await asyncio.sleep(POLL_INTERVAL_SECONDS)
        logger.info("Notification producer poll loop stopped.")

    def _produce(self, topic: str, payload: bytes, key: Optional[str], callback: Callable[[Any, Any], None]):
        self.producer.produce(
            topic,
            value=payload,
            key=key.encode('utf-8') if key else None,
            headers=trace_headers(),
            on_delivery=callback,
        )

    def produce_message(
        self,
        topic: str,
        message: BaseModel,
        key: Optional[str] = None,
        callback: Optional[Callable[[Any, Any], None]] = None # err, msg
    ) -> bool:
        """
        Queues a Pydantic model as JSON on `topic`. Returns False when the producer is
        shutting down. A full local queue is drained once before giving up with BufferError.
        """
        if self._stopping:
            logger.warning(f"Producer is stopping; notification for key {key} not sent to {topic}.")
            return False

        payload = message.model_dump_json().encode('utf-8')
        callback = callback or self._on_delivery
        try:
            self._produce(topic, payload, key, callback)
        except BufferError:
            logger.warning(f"Local Kafka queue full while sending to {topic}; waiting for deliveries before retrying.")
            self.producer.poll(1.0)
            self._produce(topic, payload, key, callback)
        logger.debug(f"Notification queued on {topic} (key: {key})")
        return True

    async def start_polling(self):
        if self._poll_task is None or self._poll_task.done():
            self._stopping = False
            self._poll_task = asyncio.create_task(self._poll_loop())
            logger.info("Notification producer polling started.")

    async def stop_polling(self):
        if self._poll_task is None:
            return
        self._stopping = True
        try:
            await asyncio.wait_for(self._poll_task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Notification producer poll loop did not stop in time.")
        self._poll_task = None

    def flush(self, timeout: float = 10.0) -> int:
        """Waits for queued notifications to be delivered. Returns how many are still queued."""
        remaining = self.producer.flush(timeout)
        if remaining > 0:
            logger.warning(f"{remaining} notifications still queued after a {timeout}s flush.")
        logger.info(f"Notification producer flushed (delivered: {self.delivered_count}, failed: {self.failed_count}).")
        return remaining


_kafka_producer_instance: Optional[KafkaProducerService] = None

def get_kafka_producer() -> KafkaProducerService:
    global _kafka_producer_instance
    if _kafka_producer_instance is None:
        if not settings.KAFKA_BOOTSTRAP_SERVERS:
            logger.error("KAFKA_BOOTSTRAP_SERVERS not configured; notifications cannot be published to Kafka.")
            raise ValueError("KAFKA_BOOTSTRAP_SERVERS not configured.")
        _kafka_producer_instance = KafkaProducerService(bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS)
    return _kafka_producer_instance

async def startup_kafka_producer() -> KafkaProducerService:
    producer = get_kafka_producer()
    await producer.start_polling()
    return producer

async def shutdown_kafka_producer():
    global _kafka_producer_instance
    if _kafka_producer_instance is None:
        logger.info("Kafka producer was not initialized, skipping shutdown steps.")
        return
    _kafka_producer_instance.flush()
    await _kafka_producer_instance.stop_polling()
    _kafka_producer_instance = None
    logger.info("Kafka producer shutdown complete.")
