"""
Catalog Aggregation Use Case.

Fans out fetch + parse across all configured feed sources concurrently,
merges every product into one pool and groups variants across platforms.
"""
import asyncio
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, Sequence

from feed_service.internal.domain.errors import AggregationError, DomainError
from feed_service.internal.domain.product import (
    Category,
    ProductVariantGroup,
    UnifiedProduct,
    flatten_groups,
)
from feed_service.internal.domain.source import DataSourceConfig, RawFeedDocument
from feed_service.internal.metrics import AGGREGATED_GROUPS, SOURCES_AGGREGATED
from feed_service.internal.parsers.registry import ParserRegistry
from feed_service.internal.usecase.variant_grouper import VariantGrouper
from pkg.logger.logger import get_logger, set_correlation_id


logger = get_logger(__name__)


class FeedFetcherProtocol(Protocol):
    """Protocol for the feed fetcher."""

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> RawFeedDocument:
        """Fetch a feed document."""
        ...


@dataclass
class SourceOutcome:
    """Result of processing one configured source."""
    source: DataSourceConfig
    products: List[UnifiedProduct] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)
    skipped_items: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "source": self.source.label,
            "platform": self.source.platform_type.value,
            "products": len(self.products),
            "categories": len(self.categories),
            "skipped_items": self.skipped_items,
            "error": self.error,
        }


@dataclass(frozen=True)
class CatalogStatistics:
    """
    Summary statistics of an aggregated catalog.

    Attributes:
        total_products: Number of products.
        available_products: Products that can be ordered.
        unavailable_products: Products that cannot be ordered.
        products_by_platform: Product count per platform.
        products_by_category: Product count per category name (or id).
        average_price: Mean price, zero for an empty catalog.
    """
    total_products: int
    available_products: int
    unavailable_products: int
    products_by_platform: Dict[str, int]
    products_by_category: Dict[str, int]
    average_price: Decimal

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "total_products": self.total_products,
            "available_products": self.available_products,
            "unavailable_products": self.unavailable_products,
            "products_by_platform": dict(self.products_by_platform),
            "products_by_category": dict(self.products_by_category),
            "average_price": str(self.average_price),
        }


class CatalogView:
    """Read-only queries over the products of one aggregation."""

    def __init__(self, products: Sequence[UnifiedProduct]) -> None:
        self._products = tuple(products)

    @property
    def products(self) -> List[UnifiedProduct]:
        return list(self._products)

    def search_by_name(self, term: str) -> List[UnifiedProduct]:
        """
        Case-insensitive substring search over product names.

        Args:
            term: Text to look for; blank terms match nothing.

        Returns:
            Matching products.
        """
        needle = (term or "").strip().lower()
        if not needle:
            return []
        return [p for p in self._products if needle in p.name.lower()]

    def filter_by_category(self, category_id: str) -> List[UnifiedProduct]:
        """Products whose feed category id equals ``category_id``."""
        return [p for p in self._products if p.category_id == category_id]

    def statistics(self) -> CatalogStatistics:
        """
        Compute summary statistics.

        Returns:
            CatalogStatistics over all products.
        """
        total = len(self._products)
        available = sum(1 for p in self._products if p.available)
        by_platform = Counter(p.source_type.value for p in self._products)
        by_category = Counter(
            p.category_name or p.category_id or "uncategorized" for p in self._products
        )
        if total:
            average = (sum((p.price for p in self._products), Decimal("0")) / total)
            average = average.quantize(Decimal("0.01"))
        else:
            average = Decimal("0.00")
        return CatalogStatistics(
            total_products=total,
            available_products=available,
            unavailable_products=total - available,
            products_by_platform=dict(by_platform),
            products_by_category=dict(by_category),
            average_price=average,
        )


@dataclass
class AggregationResult:
    """Grouped catalog plus per-source outcomes."""
    groups: List[ProductVariantGroup] = field(default_factory=list)
    outcomes: List[SourceOutcome] = field(default_factory=list)

    @property
    def products(self) -> List[UnifiedProduct]:
        return flatten_groups(self.groups)

    @property
    def failed_sources(self) -> List[SourceOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    def view(self) -> CatalogView:
        """Build read-only queries over this aggregate."""
        return CatalogView(self.products)


class CatalogAggregator:
    """
    Aggregates product catalogs from several feed sources.

    Sources run concurrently, bounded by ``max_concurrency``. A failing
    source only removes its own contribution; the call fails with
    AggregationError only when every source failed. Products are merged in
    configuration order, so when several sources share a group id the
    first configured source supplies the representative content.
    """

    def __init__(
        self,
        fetcher: FeedFetcherProtocol,
        parsers: Optional[ParserRegistry] = None,
        grouper: Optional[VariantGrouper] = None,
        max_concurrency: int = 4,
    ) -> None:
        """
        Initialize the aggregator.

        Args:
            fetcher: Feed fetcher.
            parsers: Parser registry.
            grouper: Variant grouper.
            max_concurrency: Maximum sources processed at once.
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._fetcher = fetcher
        self._parsers = parsers or ParserRegistry()
        self._grouper = grouper or VariantGrouper()
        self._max_concurrency = max_concurrency

    async def aggregate(
        self,
        sources: Sequence[DataSourceConfig],
        timeout: Optional[float] = None,
    ) -> List[ProductVariantGroup]:
        """
        Aggregate all sources into one grouped catalog.

        Args:
            sources: Configured sources.
            timeout: Seconds after which unfinished sources are cancelled.

        Returns:
            Variant groups across all successful sources.

        Raises:
            AggregationError: If every source failed.
        """
        result = await self.collect(sources, timeout=timeout)
        return result.groups

    async def collect(
        self,
        sources: Sequence[DataSourceConfig],
        timeout: Optional[float] = None,
    ) -> AggregationResult:
        """
        Aggregate sources and keep per-source outcomes.

        Args:
            sources: Configured sources.
            timeout: Seconds after which unfinished sources are cancelled.

        Returns:
            AggregationResult with groups and outcomes.

        Raises:
            AggregationError: If every source failed.
        """
        if not sources:
            logger.info("No sources configured, nothing to aggregate")
            return AggregationResult()

        outcomes = await self._run_sources(list(sources), timeout)

        failed = [o for o in outcomes if not o.succeeded]
        if len(failed) == len(outcomes):
            raise AggregationError([o.source.label for o in failed])

        merged: List[UnifiedProduct] = []
        for outcome in outcomes:
            merged.extend(outcome.products)

        groups = self._grouper.group(merged)
        AGGREGATED_GROUPS.set(len(groups))

        logger.info(
            "Catalog aggregated",
            sources=len(outcomes),
            failed_sources=len(failed),
            products=len(merged),
            groups=len(groups),
        )
        return AggregationResult(groups=groups, outcomes=outcomes)

    async def _run_sources(
        self,
        sources: List[DataSourceConfig],
        timeout: Optional[float],
    ) -> List[SourceOutcome]:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        tasks = [
            asyncio.create_task(self._run_source(index, source, semaphore))
            for index, source in enumerate(sources)
        ]
        try:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Aggregation timed out, cancelled remaining sources",
                timeout_seconds=timeout,
                cancelled=len(pending),
            )

        outcomes = []
        for source, task in zip(sources, tasks):
            if task.cancelled():
                SOURCES_AGGREGATED.labels(
                    platform=source.platform_type.value, status="cancelled"
                ).inc()
                outcomes.append(SourceOutcome(source=source, error="cancelled before completion"))
            else:
                outcomes.append(task.result())
        return outcomes

    async def _run_source(
        self,
        index: int,
        source: DataSourceConfig,
        semaphore: asyncio.Semaphore,
    ) -> SourceOutcome:
        platform = source.platform_type.value
        set_correlation_id(f"source-{index}-{platform.lower()}")
        async with semaphore:
            try:
                parser = self._parsers.get(source.platform_type)
                document = await self._fetcher.fetch(source.url, source.headers)
                # Parsing is CPU bound; keep the loop free for other sources and the deadline
                parsed = await asyncio.to_thread(parser.parse, document)
            except DomainError as e:
                SOURCES_AGGREGATED.labels(platform=platform, status="failed").inc()
                logger.warning(
                    "Source failed, skipping",
                    source=source.label,
                    platform=platform,
                    error=e.message,
                )
                return SourceOutcome(source=source, error=e.message)
            except Exception as e:
                SOURCES_AGGREGATED.labels(platform=platform, status="failed").inc()
                logger.error(
                    "Unexpected error processing source",
                    source=source.label,
                    platform=platform,
                    error=str(e),
                    exc_info=True,
                )
                return SourceOutcome(source=source, error=str(e) or type(e).__name__)

        products = parsed.products
        if not source.export_unavailable:
            products = [p for p in products if p.available]

        SOURCES_AGGREGATED.labels(platform=platform, status="success").inc()
        return SourceOutcome(
            source=source,
            products=products,
            categories=parsed.categories,
            skipped_items=parsed.skipped_items,
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def collect_products(self, sources: Sequence[DataSourceConfig]) -> List[UnifiedProduct]:
        """Aggregate and return the flat product list."""
        return (await self.collect(sources)).products

    async def search_products_by_name(
        self,
        sources: Sequence[DataSourceConfig],
        term: str,
    ) -> List[UnifiedProduct]:
        """Aggregate and search products by name."""
        return (await self.collect(sources)).view().search_by_name(term)

    async def get_products_by_category(
        self,
        sources: Sequence[DataSourceConfig],
        category_id: str,
    ) -> List[UnifiedProduct]:
        """Aggregate and filter products by feed category id."""
        return (await self.collect(sources)).view().filter_by_category(category_id)

    async def get_statistics(self, sources: Sequence[DataSourceConfig]) -> CatalogStatistics:
        """Aggregate and summarise the catalog."""
        return (await self.collect(sources)).view().statistics()
