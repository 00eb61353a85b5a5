"""
Kafka publisher for aggregated catalog groups.

Each variant group becomes one message keyed by its group id, so all
updates of a group land on the same partition.
"""
import json
from typing import Optional, Sequence

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from feed_service.internal.domain.product import ProductVariantGroup
from feed_service.internal.metrics import CATALOG_MESSAGES_PRODUCED
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


class KafkaCatalogPublisher:
    """Publishes variant groups to a Kafka topic."""

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str = "catalog-groups",
        client_id: str = "feed-service",
        compression_type: Optional[str] = None,
    ) -> None:
        """
        Initialize the publisher.

        Args:
            bootstrap_servers: Comma-separated list of Kafka brokers.
            topic: Topic receiving catalog groups.
            client_id: Client identifier for the producer.
            compression_type: Producer compression codec, if any.
        """
        self._bootstrap_servers = bootstrap_servers
        self._topic = topic
        self._client_id = client_id
        self._compression_type = compression_type
        self._producer: Optional[AIOKafkaProducer] = None

    @property
    def topic(self) -> str:
        return self._topic

    async def start(self) -> None:
        """Start the Kafka producer."""
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._bootstrap_servers,
            client_id=self._client_id,
            value_serializer=lambda v: json.dumps(v, ensure_ascii=False, default=str).encode("utf-8"),
            key_serializer=lambda k: k.encode("utf-8") if k else None,
            compression_type=self._compression_type,
            acks="all",
        )
        await self._producer.start()
        logger.info(
            "Catalog publisher started",
            bootstrap_servers=self._bootstrap_servers,
            topic=self._topic,
        )

    async def stop(self) -> None:
        """Stop the Kafka producer."""
        if self._producer:
            await self._producer.stop()
            self._producer = None
            logger.info("Catalog publisher stopped")

    async def publish_groups(
        self,
        groups: Sequence[ProductVariantGroup],
        entity_id: Optional[str] = None,
    ) -> int:
        """
        Publish variant groups.

        Args:
            groups: Groups to publish.
            entity_id: Dataset the groups belong to, added to every message.

        Returns:
            Number of messages published.

        Raises:
            RuntimeError: If the producer is not started.
            KafkaError: If the broker rejects a message.
        """
        if not self._producer:
            raise RuntimeError("Producer not started")

        published = 0
        for group in groups:
            value = group.to_dict()
            if entity_id is not None:
                value["entity_id"] = entity_id
            try:
                await self._producer.send_and_wait(
                    topic=self._topic,
                    key=group.group_id,
                    value=value,
                )
            except KafkaError as e:
                CATALOG_MESSAGES_PRODUCED.labels(status="error").inc()
                logger.error(
                    "Failed to publish catalog group",
                    topic=self._topic,
                    group_id=group.group_id,
                    error=str(e),
                )
                raise
            CATALOG_MESSAGES_PRODUCED.labels(status="success").inc()
            published += 1

        logger.info(
            "Catalog groups published",
            topic=self._topic,
            entity_id=entity_id,
            count=published,
        )
        return published
