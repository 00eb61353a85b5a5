"""
Feed fetching package.
"""
from .http_fetcher import FeedFetcher

__all__ = ["FeedFetcher"]
