"""
Unit tests for catalog aggregation.
"""

import asyncio
import time
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from feed_service.internal.domain.errors import AggregationError, FetchError
from feed_service.internal.domain.source import DataSourceConfig, RawFeedDocument, SourceType
from feed_service.internal.parsers import MyDropParser, ParseResult, ParserRegistry
from feed_service.internal.usecase.aggregate_catalog import CatalogAggregator, CatalogView


EASYDROP_URL = "https://easydrop.example.com/feed.xml"
MYDROP_URL = "https://mydrop.example.com/feed.xml"


def _fetcher_for(documents):
    """Build a fetcher mock serving ``documents`` by URL; exceptions are raised."""

    async def fetch(url, headers=None):
        result = documents[url]
        if isinstance(result, BaseException):
            raise result
        return RawFeedDocument(url=url, content=result, headers=dict(headers or {}))

    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(side_effect=fetch)
    return fetcher


def _slow_parser(seconds):
    """Build an EasyDrop parser stand-in that blocks while parsing."""

    def parse(document):
        time.sleep(seconds)
        return ParseResult()

    parser = MagicMock()
    parser.source_type = SourceType.EASYDROP
    parser.parse = MagicMock(side_effect=parse)
    return parser


@pytest.fixture
def sources():
    """One EasyDrop and one MyDrop source."""
    return [
        DataSourceConfig(platform_type=SourceType.EASYDROP, url=EASYDROP_URL, name="easydrop"),
        DataSourceConfig(platform_type=SourceType.MYDROP, url=MYDROP_URL, headers={"X-Key": "k"}),
    ]


class TestCatalogAggregator:
    """Tests for CatalogAggregator."""

    @pytest.mark.asyncio
    async def test_merges_group_across_platforms(self, sources, easydrop_feed, mydrop_feed):
        """Test that one group id on two platforms becomes one group."""
        fetcher = _fetcher_for({EASYDROP_URL: easydrop_feed, MYDROP_URL: mydrop_feed})
        aggregator = CatalogAggregator(fetcher)

        groups = await aggregator.aggregate(sources)

        g1 = [g for g in groups if g.group_id == "G1"]
        assert len(g1) == 1
        assert g1[0].source_platforms == [SourceType.EASYDROP, SourceType.MYDROP]
        assert [v.external_id for v in g1[0].variants] == ["ED-1", "ED-2", "MD-1"]
        # First configured source supplies the representative content
        assert g1[0].name == "Кросівки Nike Air Max black"

    @pytest.mark.asyncio
    async def test_two_products_sharing_group(self):
        """Test the minimal two-source merge."""
        easydrop = '<shop><items><item id="A" group_id="G1"><name>A</name></item></items></shop>'
        mydrop = '<shop><offers><offer id="B" group_id="G1"><name>B</name></offer></offers></shop>'
        fetcher = _fetcher_for({EASYDROP_URL: easydrop, MYDROP_URL: mydrop})
        aggregator = CatalogAggregator(fetcher)

        groups = await aggregator.aggregate([
            DataSourceConfig(platform_type=SourceType.EASYDROP, url=EASYDROP_URL),
            DataSourceConfig(platform_type=SourceType.MYDROP, url=MYDROP_URL),
        ])

        assert len(groups) == 1
        assert len(groups[0]) == 2
        assert groups[0].source_platforms == [SourceType.EASYDROP, SourceType.MYDROP]

    @pytest.mark.asyncio
    async def test_passes_source_headers(self, sources, easydrop_feed, mydrop_feed):
        """Test that per-source headers reach the fetcher."""
        fetcher = _fetcher_for({EASYDROP_URL: easydrop_feed, MYDROP_URL: mydrop_feed})

        await CatalogAggregator(fetcher).aggregate(sources)

        fetcher.fetch.assert_any_await(MYDROP_URL, {"X-Key": "k"})

    @pytest.mark.asyncio
    async def test_failed_source_is_isolated(self, sources, mydrop_feed):
        """Test that one failing source only removes its own products."""
        fetcher = _fetcher_for({
            EASYDROP_URL: FetchError(EASYDROP_URL, ConnectionError("reset")),
            MYDROP_URL: mydrop_feed,
        })

        result = await CatalogAggregator(fetcher).collect(sources)

        assert {p.source_type for p in result.products} == {SourceType.MYDROP}
        assert [o.source.label for o in result.failed_sources] == ["easydrop"]
        assert EASYDROP_URL in result.failed_sources[0].error

    @pytest.mark.asyncio
    async def test_unexpected_error_is_isolated(self, sources, mydrop_feed):
        """Test that non-domain errors are contained per source too."""
        fetcher = _fetcher_for({EASYDROP_URL: RuntimeError("bug"), MYDROP_URL: mydrop_feed})

        result = await CatalogAggregator(fetcher).collect(sources)

        assert len(result.products) == 2
        assert result.failed_sources[0].error == "bug"

    @pytest.mark.asyncio
    async def test_all_sources_failing_raises(self, sources):
        """Test that aggregation fails only when every source failed."""
        fetcher = _fetcher_for({
            EASYDROP_URL: FetchError(EASYDROP_URL),
            MYDROP_URL: FetchError(MYDROP_URL),
        })

        with pytest.raises(AggregationError) as exc_info:
            await CatalogAggregator(fetcher).aggregate(sources)

        assert exc_info.value.failed_sources == ["easydrop", MYDROP_URL]

    @pytest.mark.asyncio
    async def test_unsupported_platform_fails_that_source(self, mydrop_feed):
        """Test that a platform without a parser counts as a failed source."""
        fetcher = _fetcher_for({MYDROP_URL: mydrop_feed})
        sources = [
            DataSourceConfig(platform_type=SourceType.CSV_FILE, url="https://x.example.com/a.csv"),
            DataSourceConfig(platform_type=SourceType.MYDROP, url=MYDROP_URL),
        ]

        result = await CatalogAggregator(fetcher).collect(sources)

        assert len(result.failed_sources) == 1
        assert "Unsupported platform" in result.failed_sources[0].error
        assert len(result.products) == 2

    @pytest.mark.asyncio
    async def test_no_sources(self):
        """Test that an empty source list yields an empty catalog."""
        fetcher = _fetcher_for({})

        assert await CatalogAggregator(fetcher).aggregate([]) == []
        fetcher.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_export_unavailable_false_filters(self, easydrop_feed):
        """Test that unavailable products can be excluded per source."""
        fetcher = _fetcher_for({EASYDROP_URL: easydrop_feed})
        source = DataSourceConfig(
            platform_type=SourceType.EASYDROP, url=EASYDROP_URL, export_unavailable=False
        )

        products = await CatalogAggregator(fetcher).collect_products([source])

        assert [p.external_id for p in products] == ["ED-1", "ED-3"]

    @pytest.mark.asyncio
    async def test_timeout_cancels_slow_sources(self, mydrop_feed):
        """Test that unfinished sources are cancelled at the deadline."""
        release = asyncio.Event()

        async def fetch(url, headers=None):
            if url == EASYDROP_URL:
                await release.wait()
            return RawFeedDocument(url=url, content=mydrop_feed)

        fetcher = MagicMock()
        fetcher.fetch = AsyncMock(side_effect=fetch)
        sources = [
            DataSourceConfig(platform_type=SourceType.EASYDROP, url=EASYDROP_URL),
            DataSourceConfig(platform_type=SourceType.MYDROP, url=MYDROP_URL),
        ]

        result = await CatalogAggregator(fetcher).collect(sources, timeout=0.05)

        assert result.failed_sources[0].source.url == EASYDROP_URL
        assert result.failed_sources[0].error == "cancelled before completion"
        assert len(result.products) == 2

    @pytest.mark.asyncio
    async def test_slow_parsing_overlaps(self, easydrop_feed):
        """Test that parsing of several sources runs side by side."""
        registry = ParserRegistry([_slow_parser(0.2)])
        fetcher = _fetcher_for({
            f"https://s{i}.example.com/f.xml": easydrop_feed for i in range(3)
        })
        sources = [
            DataSourceConfig(platform_type=SourceType.EASYDROP, url=f"https://s{i}.example.com/f.xml")
            for i in range(3)
        ]

        started = time.monotonic()
        result = await CatalogAggregator(fetcher, parsers=registry).collect(sources)
        elapsed = time.monotonic() - started

        assert elapsed < 0.5
        assert result.failed_sources == []

    @pytest.mark.asyncio
    async def test_timeout_fires_during_slow_parsing(self, easydrop_feed, mydrop_feed):
        """Test that the deadline is honoured while parsers are busy."""
        registry = ParserRegistry([_slow_parser(0.5), MyDropParser()])
        slow_urls = [f"https://s{i}.example.com/f.xml" for i in range(2)]
        documents = {url: easydrop_feed for url in slow_urls}
        documents[MYDROP_URL] = mydrop_feed
        sources = [
            DataSourceConfig(platform_type=SourceType.EASYDROP, url=url) for url in slow_urls
        ]
        sources.append(DataSourceConfig(platform_type=SourceType.MYDROP, url=MYDROP_URL))

        started = time.monotonic()
        result = await CatalogAggregator(_fetcher_for(documents), parsers=registry).collect(
            sources, timeout=0.1
        )
        elapsed = time.monotonic() - started

        assert elapsed < 0.4
        assert [o.source.url for o in result.failed_sources] == slow_urls
        assert {o.error for o in result.failed_sources} == {"cancelled before completion"}
        assert len(result.products) == 2

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, mydrop_feed):
        """Test that no more than max_concurrency sources run at once."""
        active = 0
        peak = 0

        async def fetch(url, headers=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return RawFeedDocument(url=url, content=mydrop_feed)

        fetcher = MagicMock()
        fetcher.fetch = AsyncMock(side_effect=fetch)
        sources = [
            DataSourceConfig(platform_type=SourceType.MYDROP, url=f"https://s{i}.example.com/f.xml")
            for i in range(5)
        ]

        await CatalogAggregator(fetcher, max_concurrency=2).collect(sources)

        assert peak == 2

    def test_invalid_concurrency(self):
        """Test that concurrency must be positive."""
        with pytest.raises(ValueError):
            CatalogAggregator(MagicMock(), max_concurrency=0)


class TestCatalogView:
    """Tests for catalog queries and statistics."""

    @pytest.fixture
    def view(self, make_product):
        """A small mixed catalog."""
        return CatalogView([
            make_product("A", name="Nike Air Max", category_id="10", category_name="Взуття",
                         price=Decimal("100")),
            make_product("B", SourceType.MYDROP, name="Adidas Hoodie", category_id="20",
                         price=Decimal("50"), stock=0, available=False),
            make_product("C", name="nike socks", price=Decimal("25.50")),
        ])

    def test_search_by_name_is_case_insensitive(self, view):
        """Test substring search ignoring case."""
        assert [p.external_id for p in view.search_by_name("NIKE")] == ["A", "C"]

    def test_blank_search_matches_nothing(self, view):
        """Test that an empty term returns no products."""
        assert view.search_by_name("  ") == []

    def test_filter_by_category(self, view):
        """Test filtering by feed category id."""
        assert [p.external_id for p in view.filter_by_category("20")] == ["B"]

    def test_statistics(self, view):
        """Test summary statistics."""
        stats = view.statistics()

        assert stats.total_products == 3
        assert stats.available_products == 2
        assert stats.unavailable_products == 1
        assert stats.products_by_platform == {"EASYDROP": 2, "MYDROP": 1}
        assert stats.products_by_category == {"Взуття": 1, "20": 1, "uncategorized": 1}
        assert stats.average_price == Decimal("58.50")

    def test_empty_statistics(self):
        """Test statistics of an empty catalog."""
        stats = CatalogView([]).statistics()

        assert stats.total_products == 0
        assert stats.average_price == Decimal("0.00")
        assert stats.to_dict()["average_price"] == "0.00"
