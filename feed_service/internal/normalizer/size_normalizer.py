"""
Size normalization.

Turns a raw size token from a feed into a ProductSize, using the product
name and category name to tell shoe sizes from clothing sizes.
"""
import re
from typing import Dict, List, Optional, Tuple

from feed_service.internal.domain.value_objects import ProductSize, SizeType
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


ONE_SIZE = "ONE_SIZE"

SIZE_SYNONYMS: Dict[str, str] = {
    "SMALL": "S",
    "MEDIUM": "M",
    "LARGE": "L",
    "EXTRA LARGE": "XL",
    "EXTRA-LARGE": "XL",
    "S-M": "S/M",
    "M-L": "M/L",
    "L-XL": "L/XL",
    "XL-XXL": "XL/XXL",
    "2XL/3XL": "XXL/3XL",
    "2XL": "XXL",
    "-": ONE_SIZE,
    "": ONE_SIZE,
    "ONE SIZE": ONE_SIZE,
    "ONESIZE": ONE_SIZE,
    "FREE SIZE": ONE_SIZE,
    "УНИВЕРСАЛЬНЫЙ": ONE_SIZE,
    "УНІВЕРСАЛЬНИЙ": ONE_SIZE,
}

# Keyword -> size system, checked in order against "<name> <category>"
CATEGORY_KEYWORDS: Tuple[Tuple[str, SizeType], ...] = (
    ("футболк", SizeType.CLOTHING_ALPHA),
    ("куртк", SizeType.CLOTHING_ALPHA),
    ("худі", SizeType.CLOTHING_ALPHA),
    ("свитш", SizeType.CLOTHING_ALPHA),
    ("світш", SizeType.CLOTHING_ALPHA),
    ("жилет", SizeType.CLOTHING_ALPHA),
    ("білизн", SizeType.CLOTHING_ALPHA),
    ("шорт", SizeType.CLOTHING_ALPHA),
    ("штан", SizeType.PANTS_WAIST),
    ("джинс", SizeType.PANTS_WAIST),
    ("кросівк", SizeType.SHOES_EU),
    ("кроссовк", SizeType.SHOES_EU),
    ("черевик", SizeType.SHOES_EU),
    ("туфл", SizeType.SHOES_EU),
    ("босоніж", SizeType.SHOES_EU),
    ("сандал", SizeType.SHOES_EU),
    ("шлепк", SizeType.SHOES_EU),
    ("yeezy", SizeType.SHOES_EU),
    ("jordan", SizeType.SHOES_EU),
    ("nike", SizeType.SHOES_EU),
    ("adidas", SizeType.SHOES_EU),
    ("окуляр", SizeType.ACCESSORIES),
    ("сумк", SizeType.ACCESSORIES),
    ("рюкзак", SizeType.ACCESSORIES),
    ("гаман", SizeType.ACCESSORIES),
    ("шапк", SizeType.ACCESSORIES),
    ("панамк", SizeType.ACCESSORIES),
)

RECOMMENDED_SIZES: Dict[SizeType, Tuple[str, ...]] = {
    SizeType.CLOTHING_ALPHA: ("XS", "S", "M", "L", "XL", "XXL", "3XL"),
    SizeType.CLOTHING_NUMERIC: tuple(str(n) for n in range(28, 48, 2)),
    SizeType.SHOES_EU: tuple(str(n) for n in range(35, 51)),
    SizeType.SHOES_US: tuple(str(n / 2).rstrip("0").rstrip(".") for n in range(8, 29)),
    SizeType.PANTS_WAIST: tuple(str(n) for n in range(28, 41)),
    SizeType.COMBINED: ("XS/S", "S/M", "M/L", "L/XL", "XL/XXL", "XXL/3XL"),
    SizeType.ACCESSORIES: (ONE_SIZE,),
}

_CLEANUP_RE = re.compile(r"[^A-Z0-9/.\-]")
_ALPHA_RE = re.compile(r"^(XXXL|XXL|XL|XS|S|M|L|[3-5]XL)$")
_COMBINED_RE = re.compile(r"^(\w+)/(\w+)$")
_INTEGER_RE = re.compile(r"^\d+$")
_US_SHOE_RE = re.compile(r"^(\d{1,2})(\.5)?$")


class SizeNormalizer:
    """
    Size normalization collaborator.

    Stateless and safe to share between concurrent parses.
    """

    def normalize(
        self,
        raw_value: Optional[str],
        product_name: Optional[str] = None,
        category_name: Optional[str] = None,
    ) -> ProductSize:
        """
        Normalize a raw size token.

        Args:
            raw_value: Size token from the feed.
            product_name: Product name, used as context.
            category_name: Category name, used as context.

        Returns:
            ProductSize; UNKNOWN type when the token cannot be classified.
        """
        original = (raw_value or "").strip()
        try:
            expected = self.expected_size_type(product_name, category_name)
            size_type, value, extra = self._classify(self._clean(original), expected)
        except (ValueError, TypeError) as e:
            logger.warning("Failed to normalize size", size=original, error=str(e))
            return ProductSize(original_value=original)

        logger.debug(
            "Size normalized",
            size=original,
            size_type=size_type.value,
            normalized=value,
        )
        return ProductSize(
            original_value=original,
            type=size_type,
            normalized_value=value,
            additional_sizes=extra,
        )

    def expected_size_type(
        self,
        product_name: Optional[str],
        category_name: Optional[str],
    ) -> SizeType:
        """
        Guess the size system from product name and category keywords.

        Returns:
            Matching size type, or UNKNOWN.
        """
        haystack = f"{product_name or ''} {category_name or ''}".lower()
        for keyword, size_type in CATEGORY_KEYWORDS:
            if keyword in haystack:
                return size_type
        return SizeType.UNKNOWN

    def _clean(self, value: str) -> str:
        upper = value.upper()
        if upper in SIZE_SYNONYMS:
            return SIZE_SYNONYMS[upper]
        cleaned = _CLEANUP_RE.sub("", upper)
        return SIZE_SYNONYMS.get(cleaned, cleaned)

    def _classify(
        self,
        value: str,
        expected: SizeType,
    ) -> Tuple[SizeType, str, Dict[str, str]]:
        if value in (ONE_SIZE, "-", ""):
            return SizeType.ACCESSORIES, ONE_SIZE, {}

        match = _COMBINED_RE.match(value)
        if match:
            return SizeType.COMBINED, value, {
                "size1": match.group(1),
                "size2": match.group(2),
            }

        match = _ALPHA_RE.match(value)
        if match:
            return SizeType.CLOTHING_ALPHA, match.group(1), {}

        if _INTEGER_RE.match(value):
            number = int(value)
            if expected == SizeType.SHOES_EU and 35 <= number <= 50:
                return SizeType.SHOES_EU, value, {}
            if expected == SizeType.SHOES_EU and 4 <= number <= 14:
                return SizeType.SHOES_US, value, {}
            if 28 <= number <= 46 and number % 2 == 0:
                return SizeType.CLOTHING_NUMERIC, value, {}
            if 28 <= number <= 40:
                return SizeType.PANTS_WAIST, value, {}
            return SizeType.UNKNOWN, value, {}

        match = _US_SHOE_RE.match(value)
        if match and expected == SizeType.SHOES_EU and 4 <= float(value) <= 14:
            return SizeType.SHOES_US, value, {}

        return SizeType.UNKNOWN, value or "UNKNOWN", {}

    def recommended_sizes(self, size_type: SizeType) -> List[str]:
        """List the common sizes of a size system."""
        return list(RECOMMENDED_SIZES.get(size_type, ()))

    def is_valid_size_for_type(self, size: Optional[str], size_type: Optional[SizeType]) -> bool:
        """
        Check a size against the common values of a size system.

        Size systems without a fixed list accept any value.
        """
        if size is None or size_type is None:
            return False
        common = RECOMMENDED_SIZES.get(size_type)
        if not common:
            return True
        return size.upper() in common
