"""Kafka producer for per-recipient delivery status events."""

import logging
from uuid import UUID

from confluent_kafka import KafkaError, KafkaException, Message, Producer

from shared.config import KafkaConfig
from shared.events import DELIVERY_STATUS_EVENT, DeliveryStatusEvent, EventMetadata

logger = logging.getLogger(__name__)


class KafkaStatusPublisher:
    """Publishes terminal delivery outcomes to the notification.delivery topic.

    Dashboards consume the topic to follow a dispatch while it runs.
    Publishing never blocks or fails a delivery: broker errors are logged.
    """

    def __init__(self, config: KafkaConfig) -> None:
        self._topic = config.delivery_events_topic
        self._producer = Producer({
            "bootstrap.servers": config.bootstrap_servers,
            "acks": "all",
            "enable.idempotence": True,
            "linger.ms": 5,
            "compression.type": "lz4",
        })

    def publish_status(
        self,
        *,
        message_id: UUID,
        recipient_id: UUID,
        user_id: UUID,
        channel: str,
        status: str,
        recipient_status: str,
        provider_message_id: str | None = None,
        error_message: str | None = None,
        simulated: bool = False,
    ) -> None:
        """Publish one DeliveryStatusEvent for a terminal log entry."""
        event = DeliveryStatusEvent.model_validate({
            "metadata": EventMetadata(event_type=DELIVERY_STATUS_EVENT),
            "payload": {
                "message_id": message_id,
                "recipient_id": recipient_id,
                "user_id": user_id,
                "channel": channel,
                "status": status,
                "recipient_status": recipient_status,
                "provider_message_id": provider_message_id,
                "error_message": error_message,
                "simulated": simulated,
            },
        })
        try:
            self._producer.produce(
                topic=self._topic,
                key=str(recipient_id).encode("utf-8"),
                value=event.model_dump_json().encode("utf-8"),
                on_delivery=self._on_delivery,
            )
            self._producer.poll(0)
        except (BufferError, KafkaException) as exc:
            logger.error(
                "Failed to enqueue delivery status event",
                extra={"event_id": str(event.metadata.event_id), "error": str(exc)},
            )

    def flush(self, timeout: float = 10.0) -> int:
        """Flush remaining messages. Returns number of unflushed messages."""
        return self._producer.flush(timeout=timeout)

    def close(self) -> None:
        remaining = self.flush()
        if remaining > 0:
            logger.warning(
                "Producer closed with unflushed messages",
                extra={"remaining": remaining},
            )

    @staticmethod
    def _on_delivery(err: KafkaError | None, msg: Message) -> None:
        if err is not None:
            logger.error("Kafka delivery failed: %s", err)
