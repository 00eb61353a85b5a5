"""
Domain model for unified products.

Canonical records produced from feed items and the variant groups they are
folded into.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .errors import DomainValidationError
from .source import SourceType
from .value_objects import ProductSize


UNKNOWN_EXTERNAL_ID = "unknown"


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Category:
    """
    Feed category, valid within one parse of one feed.

    Attributes:
        id: Category identifier as used by the feed.
        name: Display name.
        source_type: Platform that declared the category.
        parent_id: Parent category identifier, if the feed declares one.
    """
    id: str
    name: str
    source_type: SourceType
    parent_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate category constraints."""
        if not self.id:
            raise DomainValidationError("category id is required")

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "name": self.name,
            "source_type": self.source_type.value,
        }


@dataclass(frozen=True)
class UnifiedProduct:
    """
    Canonical, platform-agnostic representation of one feed item.

    Instances are built once per parsed item and not changed afterwards.
    Two records describe the same variant when they share ``external_id``
    and ``source_type`` (see ``variant_key``).

    Attributes:
        external_id: Item id in the source feed ("unknown" if absent).
        source_type: Platform that produced the record.
        group_id: Variant group id declared by the feed, if any.
        name: Product name.
        description: Description with HTML removed.
        category_id: Feed category id.
        category_name: Resolved category name.
        price: Price, never negative.
        stock: Units in stock, never negative.
        available: True only when the feed marks the item available and
            stock is positive.
        image_urls: Validated, de-duplicated image URLs in feed order.
        attributes: Free-form attributes.
        platform_specific_data: Source fields without a canonical home.
        brand: Detected brand.
        color: Detected colour.
        material: Extracted material hint.
        country: Extracted country of manufacture hint.
        size: Normalized size, if the item declares one.
        seo_title: Generated SEO title.
        seo_description: Generated SEO description.
        tags: Generated search tags.
        weight: Shipping weight, if the feed provides it.
        dimensions: Shipping dimensions as "LxWxH", if provided.
        source_url: URL of the feed the record came from.
        last_updated: When the record was produced.
    """
    external_id: str
    source_type: SourceType
    group_id: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    price: Decimal = Decimal("0")
    stock: int = 0
    available: bool = False
    image_urls: Tuple[str, ...] = ()
    attributes: Dict[str, str] = field(default_factory=dict)
    platform_specific_data: Dict[str, Any] = field(default_factory=dict)
    brand: Optional[str] = None
    color: Optional[str] = None
    material: Optional[str] = None
    country: Optional[str] = None
    size: Optional[ProductSize] = None
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    weight: Optional[Decimal] = None
    dimensions: Optional[str] = None
    source_url: Optional[str] = None
    last_updated: datetime = field(default_factory=utcnow, compare=False)

    def __post_init__(self) -> None:
        """Validate domain invariants after initialization."""
        self._validate()

    def _validate(self) -> None:
        """
        Validate domain invariants.

        Raises:
            DomainValidationError: If validation fails.
        """
        if not self.external_id:
            raise DomainValidationError("external_id is required")
        if not isinstance(self.source_type, SourceType):
            raise DomainValidationError("source_type is required")
        if self.price < 0:
            raise DomainValidationError("price cannot be negative")
        if self.stock < 0:
            raise DomainValidationError("stock cannot be negative")
        if self.available and self.stock <= 0:
            raise DomainValidationError("available product must have positive stock")
        if self.image_urls is None or self.attributes is None or self.platform_specific_data is None:
            raise DomainValidationError("image_urls, attributes and platform_specific_data must not be None")

    def __hash__(self) -> int:
        return hash(self.variant_key)

    @property
    def partition_key(self) -> str:
        """Key used to group variants: group id, else the external id."""
        return self.group_id or self.external_id

    @property
    def variant_key(self) -> Tuple[str, SourceType]:
        """Identity of the record within a variant group."""
        return (self.external_id, self.source_type)

    def to_dict(self) -> dict:
        """
        Convert to dictionary representation.

        Returns:
            Dictionary with all product data.
        """
        return {
            "external_id": self.external_id,
            "group_id": self.group_id,
            "source_type": self.source_type.value,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "price": str(self.price),
            "stock": self.stock,
            "available": self.available,
            "image_urls": list(self.image_urls),
            "attributes": dict(self.attributes),
            "platform_specific_data": dict(self.platform_specific_data),
            "brand": self.brand,
            "color": self.color,
            "material": self.material,
            "country": self.country,
            "size": self.size.to_dict() if self.size else None,
            "seo_title": self.seo_title,
            "seo_description": self.seo_description,
            "tags": list(self.tags),
            "weight": str(self.weight) if self.weight is not None else None,
            "dimensions": self.dimensions,
            "source_url": self.source_url,
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass
class ProductVariantGroup:
    """
    Products sharing a group id, e.g. one item offered in several sizes.

    Representative content is taken from the first variant seen. Variants
    are unique by ``UnifiedProduct.variant_key``.

    Attributes:
        group_id: Group identifier.
        name: Representative name.
        description: Representative description.
        category_id: Representative category id.
        category_name: Representative category name.
        image_urls: Representative images.
        variants: Member products in insertion order.
        source_platforms: Platforms contributing to the group, in first-seen
            order and without repeats.
        last_updated: Time of the last change.
    """
    group_id: str
    name: str = ""
    description: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    image_urls: Tuple[str, ...] = ()
    variants: List[UnifiedProduct] = field(default_factory=list)
    source_platforms: List[SourceType] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utcnow, compare=False)
    _variant_keys: Set[Tuple[str, SourceType]] = field(
        default_factory=set, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        """Validate the group and index initial variants."""
        if not self.group_id:
            raise DomainValidationError("group_id is required")
        initial = self.variants
        self.variants = []
        for product in initial:
            self._append(product)

    @classmethod
    def from_product(cls, product: UnifiedProduct) -> "ProductVariantGroup":
        """
        Start a group with ``product`` as its representative.

        Args:
            product: First variant of the group.

        Returns:
            New group keyed by the product's partition key.
        """
        return cls(
            group_id=product.partition_key,
            name=product.name,
            description=product.description,
            category_id=product.category_id,
            category_name=product.category_name,
            image_urls=product.image_urls,
            variants=[product],
        )

    def _append(self, product: UnifiedProduct) -> bool:
        if product.variant_key in self._variant_keys:
            return False
        self._variant_keys.add(product.variant_key)
        self.variants.append(product)
        if product.source_type not in self.source_platforms:
            self.source_platforms.append(product.source_type)
        return True

    def add_variant(self, product: UnifiedProduct) -> bool:
        """
        Add a variant to the group.

        Args:
            product: Product to add.

        Returns:
            False if the same variant was already present.
        """
        added = self._append(product)
        if added:
            self.last_updated = utcnow()
        return added

    def __len__(self) -> int:
        return len(self.variants)

    @property
    def available_variants(self) -> List[UnifiedProduct]:
        """Variants that can be ordered."""
        return [v for v in self.variants if v.available]

    @property
    def price_range(self) -> Optional[Tuple[Decimal, Decimal]]:
        """Lowest and highest variant price."""
        if not self.variants:
            return None
        prices = [v.price for v in self.variants]
        return min(prices), max(prices)

    def to_dict(self) -> dict:
        """
        Convert to dictionary representation.

        Returns:
            Dictionary with group data and its variants.
        """
        return {
            "group_id": self.group_id,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "image_urls": list(self.image_urls),
            "source_platforms": [p.value for p in self.source_platforms],
            "variants": [v.to_dict() for v in self.variants],
            "last_updated": self.last_updated.isoformat(),
        }


def flatten_groups(groups: Iterable[ProductVariantGroup]) -> List[UnifiedProduct]:
    """List the variants of ``groups`` in group order."""
    return [variant for group in groups for variant in group.variants]
