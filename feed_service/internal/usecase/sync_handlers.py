"""
Sync job handlers.
"""
from typing import List, Optional, Protocol, Sequence

from pydantic import ValidationError

from feed_service.internal.domain.errors import AggregationError, JobExecutionError
from feed_service.internal.domain.product import ProductVariantGroup
from feed_service.internal.domain.source import DataSourceConfig
from feed_service.internal.domain.sync_job import SyncJob, SyncSummary
from feed_service.internal.usecase.aggregate_catalog import CatalogAggregator
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


class CatalogPublisher(Protocol):
    """Protocol for the sink receiving aggregated groups."""

    async def publish_groups(
        self,
        groups: Sequence[ProductVariantGroup],
        entity_id: Optional[str] = None,
    ) -> int:
        ...


class DatasetSyncHandler:
    """
    Handler for DATASET_SYNC jobs.

    The job's ``metadata["sources"]`` lists the feed sources of the
    dataset. They are aggregated and the resulting groups are passed to the
    publisher, when one is configured.
    """

    def __init__(
        self,
        aggregator: CatalogAggregator,
        publisher: Optional[CatalogPublisher] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._aggregator = aggregator
        self._publisher = publisher
        self._timeout = timeout

    @staticmethod
    def _sources(job: SyncJob) -> List[DataSourceConfig]:
        raw = job.metadata.get("sources")
        if not raw or not isinstance(raw, list):
            raise JobExecutionError("Job metadata has no sources", retryable=False)
        try:
            return [
                item if isinstance(item, DataSourceConfig) else DataSourceConfig.model_validate(item)
                for item in raw
            ]
        except ValidationError as e:
            raise JobExecutionError(f"Invalid source configuration: {e}", retryable=False)

    async def handle(self, job: SyncJob) -> SyncSummary:
        """
        Aggregate the dataset's sources and publish the result.

        Args:
            job: The claimed job.

        Returns:
            Counts of the run.

        Raises:
            JobExecutionError: If the job is misconfigured (not retryable)
                or every source failed (retryable).
        """
        sources = self._sources(job)
        try:
            result = await self._aggregator.collect(sources, timeout=self._timeout)
        except AggregationError as e:
            raise JobExecutionError(e.message, retryable=True)

        published = 0
        if self._publisher is not None:
            published = await self._publisher.publish_groups(result.groups, entity_id=job.entity_id)

        products = result.products
        failed = result.failed_sources
        skipped = sum(o.skipped_items for o in result.outcomes)
        logger.info(
            "Dataset synchronised",
            job_id=str(job.id),
            entity_id=job.entity_id,
            products=len(products),
            groups=len(result.groups),
            failed_sources=len(failed),
            published=published,
        )
        return SyncSummary(
            products_added=len(products),
            errors_encountered=len(failed) + skipped,
            metadata={
                "groups": len(result.groups),
                "published": published,
                "sources": [o.to_dict() for o in result.outcomes],
                "failed_sources": [o.source.label for o in failed],
            },
        )
