"""
Unit tests for the HTTP feed fetcher.
"""

from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from feed_service.internal.domain.errors import FetchError
from feed_service.internal.fetcher import FeedFetcher
from pkg.resilience.retry import LinearBackoff


FEED_URL = "https://feeds.example.com/catalog.xml"


class TestFeedFetcher:
    """Tests for FeedFetcher."""

    @pytest.fixture
    def sleep(self):
        """Record backoff waits instead of sleeping."""
        return AsyncMock()

    @pytest.fixture
    def fetcher(self, sleep):
        """Create a fetcher with the default three attempts."""
        return FeedFetcher(policy=LinearBackoff(max_attempts=3, backoff_unit=2.0), sleep=sleep)

    @pytest.mark.asyncio
    async def test_succeeds_on_third_attempt(self, fetcher, sleep):
        """Test that two failures followed by a success return the document."""
        async with respx.mock(assert_all_called=True) as router:
            route = router.get(FEED_URL).mock(
                side_effect=[
                    httpx.Response(500),
                    httpx.Response(503),
                    httpx.Response(200, text="<shop/>"),
                ]
            )
            async with fetcher:
                document = await fetcher.fetch(FEED_URL)

        assert document.content == "<shop/>"
        assert document.url == FEED_URL
        assert document.status_code == 200
        assert route.call_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_three_attempts(self, fetcher):
        """Test that three failures raise a fetch error naming the URL."""
        async with respx.mock(assert_all_called=True) as router:
            route = router.get(FEED_URL).mock(return_value=httpx.Response(502))
            async with fetcher:
                with pytest.raises(FetchError) as exc_info:
                    await fetcher.fetch(FEED_URL)

        assert route.call_count == 3
        assert exc_info.value.url == FEED_URL
        assert FEED_URL in exc_info.value.message
        assert "502" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, fetcher):
        """Test that connection errors count as failed attempts."""
        async with respx.mock(assert_all_called=True) as router:
            router.get(FEED_URL).mock(
                side_effect=[
                    httpx.ConnectError("connection reset"),
                    httpx.Response(200, text="<shop/>"),
                ]
            )
            async with fetcher:
                document = await fetcher.fetch(FEED_URL)

        assert document.content == "<shop/>"

    @pytest.mark.asyncio
    async def test_empty_body_is_retried(self, fetcher):
        """Test that a blank 200 response does not count as success."""
        async with respx.mock(assert_all_called=True) as router:
            route = router.get(FEED_URL).mock(
                side_effect=[
                    httpx.Response(200, text="   "),
                    httpx.Response(200, text="<shop/>"),
                ]
            )
            async with fetcher:
                document = await fetcher.fetch(FEED_URL)

        assert route.call_count == 2
        assert document.content == "<shop/>"

    @pytest.mark.asyncio
    async def test_headers_are_passed_through(self, sleep):
        """Test that caller headers are sent verbatim."""
        async with respx.mock(assert_all_called=True) as router:
            route = router.get(FEED_URL).mock(return_value=httpx.Response(200, text="<shop/>"))
            async with FeedFetcher(sleep=sleep, user_agent="feed-tests") as fetcher:
                document = await fetcher.fetch(FEED_URL, {"Authorization": "Bearer token"})

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer token"
        assert request.headers["User-Agent"] == "feed-tests"
        assert document.headers == {"Authorization": "Bearer token"}

    @pytest.mark.asyncio
    async def test_shared_client_is_not_closed(self, sleep):
        """Test that an injected client stays owned by the caller."""
        async with respx.mock(assert_all_called=True) as router:
            router.get(FEED_URL).mock(return_value=httpx.Response(200, text="<shop/>"))
            async with httpx.AsyncClient() as client:
                fetcher = FeedFetcher(client=client, sleep=sleep)
                await fetcher.fetch(FEED_URL)
                await fetcher.close()

                assert client.is_closed is False
