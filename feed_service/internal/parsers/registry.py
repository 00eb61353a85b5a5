"""
Parser registry.

Maps each platform identity to its parser. Dispatch is a plain lookup;
platforms without an entry are unsupported.
"""

from typing import Dict, Iterable, Optional

from feed_service.internal.domain.errors import UnsupportedPlatformError
from feed_service.internal.domain.source import SourceType
from feed_service.internal.normalizer.size_normalizer import SizeNormalizer
from feed_service.internal.parsers.base import FeedParser
from feed_service.internal.parsers.easydrop import EasyDropParser
from feed_service.internal.parsers.mydrop import MyDropParser


class ParserRegistry:
    """Holds one shared parser instance per supported platform."""

    def __init__(self, parsers: Optional[Iterable[FeedParser]] = None) -> None:
        """
        Initialize the registry.

        Args:
            parsers: Parsers to register; the EasyDrop and MyDrop parsers
                sharing one size normalizer are used if omitted.
        """
        if parsers is None:
            sizes = SizeNormalizer()
            parsers = (EasyDropParser(sizes), MyDropParser(sizes))
        self._parsers: Dict[SourceType, FeedParser] = {p.source_type: p for p in parsers}

    def get(self, platform: SourceType) -> FeedParser:
        """
        Get the parser for a platform.

        Raises:
            UnsupportedPlatformError: If no parser handles the platform.
        """
        try:
            return self._parsers[platform]
        except KeyError:
            raise UnsupportedPlatformError(getattr(platform, "value", str(platform)))

    def supports(self, platform: SourceType) -> bool:
        return platform in self._parsers

    @property
    def platforms(self) -> list:
        return list(self._parsers)
