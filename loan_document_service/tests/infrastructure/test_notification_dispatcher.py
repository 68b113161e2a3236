import pytest
from unittest.mock import MagicMock

from loan_document_service.infrastructure.kafka.schemas import NotificationMessage
from loan_document_service.infrastructure.notification_dispatcher import (
    KafkaNotificationDispatcher, LoggingNotificationDispatcher,
)


@pytest.mark.asyncio
async def test_kafka_dispatcher_publishes_keyed_by_batch(make_batch):
    producer = MagicMock()
    dispatcher = KafkaNotificationDispatcher(producer, "loan_document_notifications")
    batch = make_batch()
    batch.phone_number = "9876543210"
    notification = batch.add_notification("SMS", "Your OTP is 123456")

    status = await dispatcher.dispatch(batch, notification)

    assert status == "sent"
    topic, message = producer.produce_message.call_args[0]
    assert topic == "loan_document_notifications"
    assert producer.produce_message.call_args.kwargs["key"] == batch.batch_id
    assert isinstance(message, NotificationMessage)
    assert message.type == "SMS"
    assert message.phone_number == "9876543210"
    assert message.pan_number == batch.pan_number


@pytest.mark.asyncio
async def test_kafka_dispatcher_reports_failure(make_batch):
    producer = MagicMock()
    producer.produce_message.side_effect = BufferError("queue full")
    dispatcher = KafkaNotificationDispatcher(producer, "topic")
    batch = make_batch()

    status = await dispatcher.dispatch(batch, batch.add_notification("SMS", "hello"))

    assert status == "failed"


@pytest.mark.asyncio
async def test_logging_dispatcher(make_batch):
    batch = make_batch()
    assert await LoggingNotificationDispatcher().dispatch(batch, batch.add_notification("EMAIL", "hi")) == "sent"
