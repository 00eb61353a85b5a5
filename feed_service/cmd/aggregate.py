"""
One-shot Catalog Aggregation Entry Point.

Fetches every configured feed source, groups the variants and prints the
catalog statistics as JSON. When Kafka is enabled the groups are also
published to the catalog topic.
"""

import asyncio
import json
import sys

from dotenv import load_dotenv

from feed_service.config import get_settings
from feed_service.internal.domain.errors import AggregationError
from feed_service.internal.fetcher import FeedFetcher
from feed_service.internal.infrastructure.kafka import KafkaCatalogPublisher
from feed_service.internal.usecase.aggregate_catalog import CatalogAggregator
from pkg.logger.logger import get_logger, setup_logging
from pkg.resilience.retry import LinearBackoff


# Load environment variables
load_dotenv()

settings = get_settings()

setup_logging(
    level=settings.log_level,
    json_format=settings.log_format == "json",
)

logger = get_logger(__name__)


async def main() -> int:
    """Main entry point."""
    sources = settings.load_sources()
    if not sources:
        logger.warning("No feed sources configured", sources_file=settings.sources_file)
        return 1

    policy = LinearBackoff(
        max_attempts=settings.fetch_max_attempts,
        backoff_unit=settings.fetch_backoff_seconds,
    )
    async with FeedFetcher(
        policy=policy,
        timeout=settings.fetch_timeout_seconds,
        user_agent=settings.fetch_user_agent,
    ) as fetcher:
        aggregator = CatalogAggregator(fetcher, max_concurrency=settings.max_concurrent_sources)
        try:
            result = await aggregator.collect(
                sources, timeout=settings.aggregation_timeout_seconds
            )
        except AggregationError as e:
            logger.error("Aggregation failed", error=e.message)
            return 2

    report = {
        "statistics": result.view().statistics().to_dict(),
        "groups": len(result.groups),
        "sources": [o.to_dict() for o in result.outcomes],
    }
    print(json.dumps(report, ensure_ascii=False, indent=2))

    if settings.kafka_enabled:
        publisher = KafkaCatalogPublisher(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            topic=settings.kafka_catalog_topic,
            client_id=settings.kafka_client_id,
            compression_type=settings.kafka_compression_type,
        )
        await publisher.start()
        try:
            await publisher.publish_groups(result.groups)
        finally:
            await publisher.stop()

    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
