# Notification delivery channels for consent batch notifications
import logging

from loan_document_service.app.models import ConsentBatchDB, BatchNotification, NotificationStatus
from loan_document_service.app.service.interfaces.notification_dispatcher import AbstractNotificationDispatcher
from loan_document_service.infrastructure.kafka.producer import KafkaProducerService
from loan_document_service.infrastructure.kafka.schemas import NotificationMessage

logger = logging.getLogger(__name__)


class KafkaNotificationDispatcher(AbstractNotificationDispatcher):
    def __init__(self, producer: KafkaProducerService, topic: str):
        self.producer = producer
        self.topic = topic

    async def dispatch(self, batch: ConsentBatchDB, notification: BatchNotification) -> str:
        message = NotificationMessage(
            batch_id=batch.batch_id,
            pan_number=batch.pan_number,
            type=notification.type,
            message=notification.message,
            phone_number=batch.phone_number,
            email_address=batch.email_address,
            sent_at=notification.sent_at,
        )
        try:
            queued = self.producer.produce_message(self.topic, message, key=batch.batch_id)
        except Exception as e:
            # Delivery problems never fail the batch; the notification is recorded as failed.
            logger.error(f"Failed to publish {notification.type} notification for batch {batch.batch_id}: {e}", exc_info=True)
            return NotificationStatus.FAILED.value
        if not queued:
            return NotificationStatus.FAILED.value
        logger.info(f"{notification.type} notification for batch {batch.batch_id} published to '{self.topic}'.")
        return NotificationStatus.SENT.value


class LoggingNotificationDispatcher(AbstractNotificationDispatcher):
    """Used when Kafka is not configured: notifications are only logged."""

    async def dispatch(self, batch: ConsentBatchDB, notification: BatchNotification) -> str:
        logger.info(f"[{notification.type}] batch {batch.batch_id} -> PAN {batch.pan_number}: {notification.message}")
        return NotificationStatus.SENT.value
