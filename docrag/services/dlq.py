"""Retry topic publisher for upload events that need re-delivery."""

import json
import logging
import time
from typing import Optional

from aiokafka import AIOKafkaProducer

from docrag.core.config import settings
from docrag.core.exceptions import DLQError
from docrag.monitoring.metrics import ingestion_retries_exhausted_total

logger = logging.getLogger(__name__)


class RetryPublisher:
    """Re-publishes failed upload events to the retry topic."""

    def __init__(self, producer: Optional[AIOKafkaProducer] = None) -> None:
        self.producer = producer
        self.enabled = settings.ingestion_retry_enabled
        self.topic = settings.ingestion_retry_topic
        self.max_attempts = settings.ingestion_retry_max_attempts
        self.base_delay = settings.ingestion_retry_base_delay_seconds
        self.max_delay = settings.ingestion_retry_max_delay_seconds

    async def connect(self) -> None:
        """Connect to Kafka."""
        if not self.enabled or self.producer:
            return

        try:
            self.producer = AIOKafkaProducer(
                bootstrap_servers=settings.kafka_bootstrap_servers,
                value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            )
            await self.producer.start()
            logger.info("Retry publisher connected")
        except Exception as e:
            logger.error(f"Failed to connect retry publisher: {str(e)}")
            raise DLQError(f"Failed to connect retry publisher: {str(e)}") from e

    async def disconnect(self) -> None:
        if self.producer:
            await self.producer.stop()

    def retry_delay(self, attempt: int) -> float:
        """Seconds to wait before re-consuming the given attempt."""
        return min(self.base_delay * (2 ** max(attempt - 1, 0)), self.max_delay)

    async def publish(
        self,
        event_data: dict,
        error: str,
        original_topic: str,
        attempt: int = 1,
        offset: Optional[int] = None,
        partition: Optional[int] = None,
    ) -> bool:
        """
        Send an upload event to the retry topic.

        Events past the last allowed attempt are logged and dropped.

        Args:
            event_data: Original event body.
            error: Why the event needs another attempt.
            original_topic: Topic the event was consumed from.
            attempt: Retry attempt this message represents, starting at 1.
            offset: Original message offset.
            partition: Original message partition.

        Returns:
            True if the event was published.

        Raises:
            DLQError: If the event could not be published.
        """
        if attempt > self.max_attempts:
            ingestion_retries_exhausted_total.inc()
            logger.error(
                f"Dropping upload event after {self.max_attempts} retry attempts: "
                f"topic={original_topic}, offset={offset}, error={error[:100]}, event={event_data}"
            )
            return False

        if not self.enabled or not self.producer:
            logger.warning("Retry topic is disabled, dropping event marked for retry")
            return False

        now = time.time()
        message = {
            "original_event": event_data,
            "error": error,
            "original_topic": original_topic,
            "offset": offset,
            "partition": partition,
            "attempt": attempt,
            "timestamp": now,
            "not_before": now + self.retry_delay(attempt),
        }
        try:
            await self.producer.send_and_wait(self.topic, value=message)
        except Exception as e:
            logger.error(f"Failed to publish retry event: {str(e)}")
            raise DLQError(f"Failed to publish retry event: {str(e)}") from e

        logger.info(
            f"Published retry event: topic={original_topic}, attempt={attempt}, "
            f"offset={offset}, error={error[:100]}"
        )
        return True
