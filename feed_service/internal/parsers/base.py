"""
Base Feed Parser.

Defines the contract every platform parser implements and the extraction
helpers they share: HTML cleanup, image collection, brand/colour/material
heuristics and numeric field parsing.
"""

import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterator, List, Optional, Pattern, Sequence, Tuple, Union

from bs4 import BeautifulSoup, Tag

from feed_service.internal.domain.product import Category, UnifiedProduct
from feed_service.internal.domain.errors import FeedItemError
from feed_service.internal.domain.source import RawFeedDocument, SourceType
from feed_service.internal.domain.value_objects import ProductSize
from feed_service.internal.metrics import FEED_ITEMS_PARSED, FEED_PARSE_DURATION
from feed_service.internal.normalizer.size_normalizer import ONE_SIZE, SizeNormalizer
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


MATERIAL_MAX_LENGTH = 100
COUNTRY_MAX_LENGTH = 50
SIZE_PARAM_NAMES = ("розмір", "размер")

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")
IMAGE_KEYWORDS = ("image", "photo", "picture")
HTML_ENTITIES = (
    ("&nbsp;", " "),
    ("&quot;", '"'),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)

_TAG_RE = re.compile(r"<[^>]+>")
_BREAK_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_IMAGE_SPLIT_RE = re.compile(r"[,;|]")


@dataclass
class ParseResult:
    """
    Output of one feed parse.

    Unpacks as ``products, categories``.

    Attributes:
        products: Parsed products in feed order.
        categories: Categories declared by the feed.
        skipped_items: Items dropped because they could not be mapped.
    """
    products: List[UnifiedProduct] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)
    skipped_items: int = 0

    def __iter__(self) -> Iterator:
        return iter((self.products, self.categories))

    @property
    def is_empty(self) -> bool:
        return not self.products and not self.categories


def html_to_text(raw: str, keep_breaks: bool = False) -> str:
    """
    Strip HTML markup and unescape common entities.

    ``raw`` is HTML source as it comes out of the XML parser, whether the
    feed wrapped it in CDATA or escaped it, so its entities are HTML-level
    and are decoded exactly once here.

    Line structure is kept so hints can be cut at line ends; use
    ``collapse_whitespace`` for the final single-line form.

    Args:
        raw: Text that may contain HTML.
        keep_breaks: Turn ``<br>`` variants into newlines first.

    Returns:
        Plain text.
    """
    text = raw
    if keep_breaks:
        text = _BREAK_RE.sub("\n", text)
    text = _TAG_RE.sub(" ", text)
    for entity, replacement in HTML_ENTITIES:
        text = text.replace(entity, replacement)
    return text


def collapse_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def is_valid_image_url(url: str) -> bool:
    """
    Check that a value looks like an image URL.

    Args:
        url: Candidate URL.

    Returns:
        True for http(s) URLs mentioning an image extension or keyword.
    """
    lower = url.lower()
    if not lower.startswith(("http://", "https://")):
        return False
    return any(ext in lower for ext in IMAGE_EXTENSIONS) or any(
        keyword in lower for keyword in IMAGE_KEYWORDS
    )


def truncate(value: str, limit: int) -> str:
    """Cut ``value`` to ``limit`` characters, ending with an ellipsis."""
    if len(value) <= limit:
        return value
    return value[: limit - 3] + "..."


def title_words(value: str) -> str:
    """Upper-case the first letter of every word."""
    return " ".join(word[:1].upper() + word[1:] for word in value.split(" "))


def compile_hint_patterns(labels: Sequence[str]) -> Tuple[Pattern, ...]:
    """Build case-insensitive "label: value" patterns that stop at a line end or bullet."""
    return tuple(
        re.compile(re.escape(label) + r"\s*([^\n\r•]*)", re.IGNORECASE)
        for label in labels
    )


class FeedParser(ABC):
    """
    Abstract base class for platform feed parsers.

    A parser is stateless: the keyword lists and the size normalizer it holds
    are read-only, so one instance can serve concurrent parses.

    Each implementation provides:
    - The platform identity
    - The item tag name and image-bearing tag names
    - Mapping of one item element to a UnifiedProduct
    """

    ITEM_TAG: str = "item"
    IMAGE_TAGS: Tuple[str, ...] = ("image", "picture")
    BRANDS: Tuple[str, ...] = ()
    MATERIAL_LABELS: Tuple[str, ...] = ("матеріал:", "материал:")
    COUNTRY_LABELS: Tuple[str, ...] = ("виробник:", "производитель:")

    def __init__(self, size_normalizer: Optional[SizeNormalizer] = None) -> None:
        """
        Initialize the parser.

        Args:
            size_normalizer: Size normalization collaborator.
        """
        self._sizes = size_normalizer or SizeNormalizer()
        self._material_patterns = compile_hint_patterns(self.MATERIAL_LABELS)
        self._country_patterns = compile_hint_patterns(self.COUNTRY_LABELS)

    @property
    @abstractmethod
    def source_type(self) -> SourceType:
        """
        Get the platform this parser handles.

        Returns:
            Platform identity stamped on every parsed product.
        """
        pass

    @property
    def name(self) -> str:
        """Parser name used in logs and metrics."""
        return self.source_type.display_name

    @abstractmethod
    def parse_item(
        self,
        element: Tag,
        categories: Dict[str, Category],
        source_url: Optional[str] = None,
    ) -> UnifiedProduct:
        """
        Map one feed item to a product.

        Args:
            element: The item element.
            categories: Categories of the same feed, by id.
            source_url: URL of the feed.

        Returns:
            The parsed product.

        Raises:
            FeedItemError: If the item cannot be mapped.
        """
        pass

    # ------------------------------------------------------------------
    # Document level
    # ------------------------------------------------------------------

    def parse(self, document: Union[RawFeedDocument, str, None]) -> ParseResult:
        """
        Parse a feed document.

        Never raises: empty or unreadable documents give an empty result and
        items that cannot be mapped are logged and skipped.

        Args:
            document: Fetched document or raw feed text.

        Returns:
            Products and categories found in the document.
        """
        if isinstance(document, RawFeedDocument):
            content, source_url = document.content, document.url
        else:
            content, source_url = document, None

        started = time.monotonic()
        soup = self._load(content, source_url)
        if soup is None:
            return ParseResult()

        categories = self.parse_categories(soup)
        category_index: Dict[str, Category] = {c.id: c for c in categories}

        result = ParseResult(categories=categories)
        for position, element in enumerate(soup.find_all(self.ITEM_TAG)):
            try:
                product = self.parse_item(element, category_index, source_url)
            except Exception as e:
                result.skipped_items += 1
                FEED_ITEMS_PARSED.labels(platform=self.name, status="error").inc()
                logger.warning(
                    "Skipping feed item",
                    platform=self.name,
                    position=position,
                    item_id=element.get("id"),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            result.products.append(product)
            FEED_ITEMS_PARSED.labels(platform=self.name, status="success").inc()

        FEED_PARSE_DURATION.labels(platform=self.name).observe(time.monotonic() - started)
        logger.info(
            "Feed parsed",
            platform=self.name,
            source_url=source_url,
            products=len(result.products),
            categories=len(result.categories),
            skipped=result.skipped_items,
        )
        return result

    def _load(self, content: Optional[str], source_url: Optional[str]) -> Optional[BeautifulSoup]:
        if not content or not content.strip():
            logger.warning("Empty feed document", platform=self.name, source_url=source_url)
            return None
        try:
            return BeautifulSoup(content, "xml")
        except Exception as e:
            logger.error(
                "Unreadable feed document",
                platform=self.name,
                source_url=source_url,
                error=str(e),
            )
            return None

    def parse_categories(self, soup: BeautifulSoup) -> List[Category]:
        """
        Parse the categories declared in a feed.

        Elements without an id are skipped; the first declaration of an id
        wins.

        Args:
            soup: Parsed feed document.

        Returns:
            Categories in document order.
        """
        categories: Dict[str, Category] = {}
        for node in soup.find_all("category"):
            category_id = (node.get("id") or "").strip()
            if not category_id or category_id in categories:
                continue
            parent_id = node.get("parentId") or node.get("parentID") or node.get("parent_id")
            categories[category_id] = Category(
                id=category_id,
                name=collapse_whitespace(node.get_text()),
                source_type=self.source_type,
                parent_id=parent_id.strip() if parent_id else None,
            )
        return list(categories.values())

    # ------------------------------------------------------------------
    # Field helpers
    # ------------------------------------------------------------------

    @staticmethod
    def child_text(element: Tag, *tags: str) -> Optional[str]:
        """
        Get the text of the first non-empty child among ``tags``.

        Returns:
            Stripped text, or None.
        """
        for tag in tags:
            node = element.find(tag)
            if node is not None:
                text = node.get_text().strip()
                if text:
                    return text
        return None

    @staticmethod
    def attribute(element: Tag, name: str) -> Optional[str]:
        value = element.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None

    @staticmethod
    def parse_decimal(raw: Optional[str], field_name: str, item_id: str) -> Optional[Decimal]:
        """
        Parse a decimal feed value.

        Returns:
            The value, or None when the field is absent.

        Raises:
            FeedItemError: If the field is present but not a number.
        """
        if raw is None or not raw.strip():
            return None
        cleaned = raw.strip().replace("\xa0", "").replace(" ", "").replace(",", ".")
        try:
            value = Decimal(cleaned)
        except InvalidOperation:
            raise FeedItemError(item_id, f"invalid {field_name} {raw!r}")
        if not value.is_finite():
            raise FeedItemError(item_id, f"invalid {field_name} {raw!r}")
        return value

    @classmethod
    def parse_int(cls, raw: Optional[str], field_name: str, item_id: str) -> Optional[int]:
        """Parse an integer feed value, accepting "5" and "5.0"."""
        value = cls.parse_decimal(raw, field_name, item_id)
        if value is None:
            return None
        if value != value.to_integral_value():
            raise FeedItemError(item_id, f"invalid {field_name} {raw!r}")
        return int(value)

    @staticmethod
    def is_available(flag: Optional[str], stock: int) -> bool:
        """An item is available only if flagged "true" and in stock."""
        return (flag or "").strip() == "true" and stock > 0

    def image_urls(self, element: Tag) -> Tuple[str, ...]:
        """
        Collect image URLs from the platform's image tags.

        Cells holding several URLs separated by ``, ; |`` are split.

        Returns:
            Valid, de-duplicated URLs in document order.
        """
        found: Dict[str, None] = {}
        for tag in self.IMAGE_TAGS:
            for node in element.find_all(tag):
                for part in _IMAGE_SPLIT_RE.split(node.get_text()):
                    url = part.strip()
                    if url and url not in found and is_valid_image_url(url):
                        found[url] = None
        return tuple(found)

    def detect_brand(self, name: str) -> Optional[str]:
        """Find the first known brand mentioned in a product name."""
        lower = name.lower()
        for brand in self.BRANDS:
            if brand in lower:
                return title_words(brand)
        return None

    @staticmethod
    def detect_keyword(text: str, keywords: Sequence[str]) -> Optional[str]:
        """Return the first keyword found in ``text`` as a whole word."""
        for keyword in keywords:
            if re.search(r"\b" + re.escape(keyword) + r"\b", text, re.IGNORECASE):
                return keyword
        return None

    @staticmethod
    def extract_hint(text: str, patterns: Sequence[Pattern], limit: int) -> Optional[str]:
        """
        Extract the value of the first "label: value" hint found.

        Args:
            text: Description text with line breaks preserved.
            patterns: Compiled hint patterns, in priority order.
            limit: Maximum length of the returned value.

        Returns:
            Value bounded to ``limit`` characters, or None.
        """
        for pattern in patterns:
            for match in pattern.finditer(text):
                value = collapse_whitespace(match.group(1))
                if value:
                    return truncate(value, limit)
        return None

    def material(self, text: str) -> Optional[str]:
        return self.extract_hint(text, self._material_patterns, MATERIAL_MAX_LENGTH)

    def country(self, text: str) -> Optional[str]:
        return self.extract_hint(text, self._country_patterns, COUNTRY_MAX_LENGTH)

    def params(
        self,
        element: Tag,
        product_name: str,
        category_name: Optional[str],
    ) -> Tuple[Dict[str, str], Optional[ProductSize]]:
        """
        Read ``<param name=".." unit="..">`` attributes.

        The size parameter goes through the size normalizer; every named
        parameter is also kept in the attribute bag.

        Returns:
            Attributes and the normalized size, if any.
        """
        attributes: Dict[str, str] = {}
        size: Optional[ProductSize] = None
        for node in element.find_all("param"):
            param_name = self.attribute(node, "name")
            if not param_name:
                continue
            value = node.get_text().strip()
            attributes[param_name] = value
            if size is None and param_name.lower() in SIZE_PARAM_NAMES:
                size = self._sizes.normalize(value, product_name, category_name)
                unit = self.attribute(node, "unit")
                if unit:
                    size = size.with_unit(unit)
        return attributes, size

    @staticmethod
    def seo_title(
        name: str,
        brand: Optional[str],
        size: Optional[ProductSize],
        color: Optional[str],
    ) -> str:
        """Build an SEO title like "Nike Air Max розмір 42 black"."""
        parts = []
        if brand and brand.lower() not in name.lower():
            parts.append(brand)
        parts.append(name)
        if size and size.normalized_value not in (ONE_SIZE, "UNKNOWN"):
            parts.append(f"розмір {size.normalized_value}")
        if color:
            parts.append(color)
        return collapse_whitespace(" ".join(p for p in parts if p))

    @staticmethod
    def tags(
        brand: Optional[str],
        color: Optional[str],
        category_name: Optional[str],
        size: Optional[ProductSize],
        material: Optional[str] = None,
        country: Optional[str] = None,
    ) -> Tuple[str, ...]:
        """Build search tags; material and country become prefixed tags."""
        values = []
        for value in (brand, color, category_name):
            if value:
                values.append(value.lower())
        if size is not None:
            values.append(size.type.value.lower())
        if material:
            values.append("material_" + _WHITESPACE_RE.sub("_", material.lower()))
        if country:
            values.append("country_" + _WHITESPACE_RE.sub("_", country.lower()))
        return tuple(dict.fromkeys(values))
