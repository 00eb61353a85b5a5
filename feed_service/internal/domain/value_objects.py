"""
Value Objects for the feed domain.

Value objects are immutable and defined by their attributes.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from .errors import DomainValidationError


class SizeType(str, Enum):
    """Size classification produced by the size normalizer."""
    CLOTHING_ALPHA = "CLOTHING_ALPHA"
    CLOTHING_NUMERIC = "CLOTHING_NUMERIC"
    SHOES_EU = "SHOES_EU"
    SHOES_US = "SHOES_US"
    PANTS_WAIST = "PANTS_WAIST"
    COMBINED = "COMBINED"
    ACCESSORIES = "ACCESSORIES"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class ProductSize:
    """
    Normalized product size.

    Attributes:
        original_value: Size token as it appeared in the feed.
        type: Inferred size system.
        normalized_value: Canonical size token (e.g. "M", "42", "S/M").
        unit: Optional unit reported by the feed.
        additional_sizes: Extra components, e.g. both halves of "S/M".
    """
    original_value: str
    type: SizeType = SizeType.UNKNOWN
    normalized_value: str = "UNKNOWN"
    unit: Optional[str] = None
    additional_sizes: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate size constraints."""
        if self.original_value is None:
            raise DomainValidationError("original_value is required")
        if not self.normalized_value:
            raise DomainValidationError("normalized_value cannot be empty")

    def __hash__(self) -> int:
        return hash((self.original_value, self.type, self.normalized_value, self.unit))

    @property
    def display_value(self) -> str:
        """Normalized value with its unit, if any."""
        if self.unit:
            return f"{self.normalized_value} {self.unit}"
        return self.normalized_value

    def with_unit(self, unit: Optional[str]) -> "ProductSize":
        """Return a copy carrying the given unit."""
        return ProductSize(
            original_value=self.original_value,
            type=self.type,
            normalized_value=self.normalized_value,
            unit=unit or None,
            additional_sizes=dict(self.additional_sizes),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "original_value": self.original_value,
            "type": self.type.value,
            "normalized_value": self.normalized_value,
            "unit": self.unit,
            "additional_sizes": dict(self.additional_sizes),
        }
