"""
Variant grouping use case.

Folds a flat product list into variant groups keyed by group id, falling
back to the product's own external id.
"""
from functools import reduce
from typing import Dict, Iterable, List

from feed_service.internal.domain.product import (
    ProductVariantGroup,
    UnifiedProduct,
    flatten_groups,
)
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


class VariantGrouper:
    """
    Groups products into ProductVariantGroups.

    The first product seen for a key supplies the group's representative
    content. The result depends only on keys and input order.
    """

    def group(self, products: Iterable[UnifiedProduct]) -> List[ProductVariantGroup]:
        """
        Group products by partition key.

        Args:
            products: Products in a stable order.

        Returns:
            Groups in order of first appearance.
        """
        groups: Dict[str, ProductVariantGroup] = reduce(self._fold, products, {})
        logger.debug("Products grouped", groups=len(groups))
        return list(groups.values())

    @staticmethod
    def _fold(
        groups: Dict[str, ProductVariantGroup],
        product: UnifiedProduct,
    ) -> Dict[str, ProductVariantGroup]:
        key = product.partition_key
        group = groups.get(key)
        if group is None:
            groups[key] = ProductVariantGroup.from_product(product)
        else:
            group.add_variant(product)
        return groups

    def regroup(self, groups: Iterable[ProductVariantGroup]) -> List[ProductVariantGroup]:
        """Flatten groups back to their variants and group them again."""
        return self.group(flatten_groups(groups))
