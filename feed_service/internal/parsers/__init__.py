"""
Feed parsers package.

Contains the per-platform feed parsers and their registry.
"""

from .base import FeedParser, ParseResult
from .easydrop import EasyDropParser
from .mydrop import MyDropParser
from .registry import ParserRegistry

__all__ = [
    "FeedParser",
    "ParseResult",
    "EasyDropParser",
    "MyDropParser",
    "ParserRegistry",
]
