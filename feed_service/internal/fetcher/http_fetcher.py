"""
HTTP feed fetcher.

Retrieves feed documents over HTTP GET with a bounded number of attempts
and linear backoff between them.
"""
import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional

import httpx

from feed_service.internal.domain.errors import FetchError
from feed_service.internal.domain.source import RawFeedDocument
from feed_service.internal.metrics import FEED_FETCHES, FEED_FETCH_DURATION
from pkg.logger.logger import get_logger
from pkg.resilience.retry import LinearBackoff, RetryExhaustedError, retry_async


logger = get_logger(__name__)


class FeedResponseError(Exception):
    """Raised for a response that arrived but cannot be used (non-2xx or empty)."""

    def __init__(self, status_code: int, reason: str) -> None:
        self.status_code = status_code
        self.message = reason
        super().__init__(reason)


class FeedFetcher:
    """
    Fetches feed documents.

    Transport errors, non-2xx responses and empty bodies are retried up to
    ``policy.max_attempts`` times; once exhausted a FetchError carrying the
    URL and last cause is raised. The fetcher keeps no state between calls.
    """

    DEFAULT_HEADERS = {"Accept": "*/*"}

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        policy: Optional[LinearBackoff] = None,
        timeout: float = 60.0,
        user_agent: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the fetcher.

        Args:
            client: Shared httpx client; one is created on demand if omitted.
            policy: Retry policy (3 attempts, 2s unit by default).
            timeout: Request timeout in seconds for a created client.
            user_agent: User-Agent sent unless the caller overrides it.
            sleep: Awaitable used between attempts.
        """
        self._client = client
        self._owns_client = client is None
        self._policy = policy or LinearBackoff()
        self._timeout = timeout
        self._user_agent = user_agent
        self._sleep = sleep

    async def __aenter__(self) -> "FeedFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if the fetcher created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    def _build_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = dict(self.DEFAULT_HEADERS)
        if self._user_agent:
            merged["User-Agent"] = self._user_agent
        merged.update(headers or {})
        return merged

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> RawFeedDocument:
        """
        Fetch a feed document.

        Args:
            url: Feed URL.
            headers: Request headers, passed through verbatim.

        Returns:
            The retrieved document.

        Raises:
            FetchError: If every attempt failed.
        """
        request_headers = self._build_headers(headers)
        client = self._get_client()

        async def attempt() -> RawFeedDocument:
            response = await client.get(url, headers=request_headers)
            if not response.is_success:
                raise FeedResponseError(response.status_code, f"HTTP {response.status_code}")
            content = response.text
            if not content or not content.strip():
                raise FeedResponseError(response.status_code, "empty response body")
            return RawFeedDocument(
                url=url,
                content=content,
                headers=dict(headers or {}),
                status_code=response.status_code,
            )

        def on_failure(attempt_number: int, error: BaseException) -> None:
            FEED_FETCHES.labels(status="attempt_failed").inc()
            logger.warning(
                "Feed fetch attempt failed",
                url=url,
                attempt=attempt_number,
                error=str(error) or type(error).__name__,
            )

        started = time.monotonic()
        try:
            document = await retry_async(
                attempt,
                self._policy,
                retry_on=(httpx.HTTPError, FeedResponseError),
                operation="fetch_feed",
                sleep=self._sleep,
                on_failure=on_failure,
            )
        except RetryExhaustedError as e:
            FEED_FETCHES.labels(status="failed").inc()
            logger.error(
                "Feed fetch failed",
                url=url,
                attempts=e.attempts,
                error=str(e.last_error),
            )
            raise FetchError(url, e.last_error) from e
        finally:
            FEED_FETCH_DURATION.observe(time.monotonic() - started)

        FEED_FETCHES.labels(status="success").inc()
        logger.info(
            "Feed fetched",
            url=url,
            status_code=document.status_code,
            size=len(document.content),
        )
        return document
