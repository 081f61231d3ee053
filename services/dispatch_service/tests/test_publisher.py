import json
import uuid
from collections.abc import Generator
from unittest.mock import MagicMock, patch

import pytest
from confluent_kafka import KafkaException

from shared.config import KafkaConfig
from shared.enums import Channel, DeliveryStatus

from dispatch_service.publisher import KafkaStatusPublisher


@pytest.fixture()
def mock_producer() -> Generator[MagicMock, None, None]:
    with patch("dispatch_service.publisher.Producer") as producer_cls:
        yield producer_cls.return_value


def _publish(publisher: KafkaStatusPublisher, **overrides: object) -> dict:
    kwargs: dict = {
        "message_id": uuid.uuid4(),
        "recipient_id": uuid.uuid4(),
        "user_id": uuid.uuid4(),
        "channel": Channel.PUSH,
        "status": DeliveryStatus.FAILED,
        "recipient_status": DeliveryStatus.PENDING,
        "error_message": "UNREGISTERED",
    }
    kwargs.update(overrides)
    publisher.publish_status(**kwargs)
    return kwargs


class TestKafkaStatusPublisher:
    def test_produces_keyed_by_recipient(self, mock_producer: MagicMock) -> None:
        publisher = KafkaStatusPublisher(KafkaConfig())

        sent = _publish(publisher)

        mock_producer.produce.assert_called_once()
        kwargs = mock_producer.produce.call_args.kwargs
        assert kwargs["topic"] == "notification.delivery"
        assert kwargs["key"] == str(sent["recipient_id"]).encode()
        event = json.loads(kwargs["value"])
        assert event["metadata"]["event_type"] == "delivery.status"
        assert event["payload"]["channel"] == "push"
        assert event["payload"]["status"] == "failed"
        assert event["payload"]["recipient_status"] == "pending"
        assert event["payload"]["error_message"] == "UNREGISTERED"
        mock_producer.poll.assert_called_once_with(0)

    def test_broker_errors_are_swallowed(self, mock_producer: MagicMock) -> None:
        mock_producer.produce.side_effect = BufferError("queue full")
        publisher = KafkaStatusPublisher(KafkaConfig())

        _publish(publisher)

        mock_producer.produce.side_effect = KafkaException("broker down")
        _publish(publisher)

    def test_close_flushes(self, mock_producer: MagicMock) -> None:
        mock_producer.flush.return_value = 0
        publisher = KafkaStatusPublisher(KafkaConfig())

        publisher.close()

        mock_producer.flush.assert_called_once_with(timeout=10.0)
