"""
EasyDrop feed parser.

EasyDrop exports a Prom-style XML catalog: ``<category id="..">`` entries
followed by ``<item id=".." group_id=".." available="true"
selling_type="..">`` elements priced in UAH.
"""

from decimal import Decimal
from typing import Dict, Optional

from bs4 import Tag

from feed_service.internal.domain.product import Category, UnifiedProduct, UNKNOWN_EXTERNAL_ID
from feed_service.internal.domain.source import SourceType
from feed_service.internal.parsers.base import FeedParser, collapse_whitespace, html_to_text


class EasyDropParser(FeedParser):
    """
    Parser for EasyDrop XML feeds.

    Field mapping:
    - ``priceuah`` -> price, ``quantity_in_stock`` -> stock
    - ``barcode`` and the ``selling_type`` attribute -> platform data
    - ``param`` elements -> attributes, "Розмір"/"Размер" -> size
    """

    ITEM_TAG = "item"
    IMAGE_TAGS = ("image", "picture", "gallery", "photos", "img")
    BRANDS = (
        "yeezy", "nike", "adidas", "jordan", "without", "prada",
        "balenciaga", "dr.martens", "new balance", "under armour",
        "reebok", "salomon", "osiris",
    )
    COLORS = (
        "black", "white", "red", "blue", "green", "yellow",
        "чорний", "білий", "червоний",
    )

    @property
    def source_type(self) -> SourceType:
        return SourceType.EASYDROP

    def parse_item(
        self,
        element: Tag,
        categories: Dict[str, Category],
        source_url: Optional[str] = None,
    ) -> UnifiedProduct:
        """
        Map one ``<item>`` to a product.

        Args:
            element: The item element.
            categories: Categories of the same feed, by id.
            source_url: URL of the feed.

        Returns:
            The parsed product.
        """
        external_id = self.attribute(element, "id") or UNKNOWN_EXTERNAL_ID
        group_id = self.attribute(element, "group_id")

        name = collapse_whitespace(self.child_text(element, "name") or "")
        brand = self.detect_brand(name)

        category_id = self.child_text(element, "categoryId")
        category = categories.get(category_id) if category_id else None
        category_name = category.name if category else None

        description = None
        material = country = color = None
        raw_description = self.child_text(element, "description")
        if raw_description:
            text = html_to_text(raw_description)
            description = collapse_whitespace(text) or None
            material = self.material(text)
            country = self.country(text)
            color = self.detect_keyword(text, self.COLORS)
        if color is None:
            color = self.detect_keyword(name, self.COLORS)

        price = self.parse_decimal(self.child_text(element, "priceuah"), "priceuah", external_id)
        stock = self.parse_int(
            self.child_text(element, "quantity_in_stock"), "quantity_in_stock", external_id
        ) or 0
        available = self.is_available(self.attribute(element, "available"), stock)

        image_urls = self.image_urls(element)
        attributes, size = self.params(element, name, category_name)

        platform_data = {}
        barcode = self.child_text(element, "barcode")
        if barcode:
            platform_data["barcode"] = barcode
        selling_type = self.attribute(element, "selling_type")
        if selling_type:
            platform_data["selling_type"] = selling_type

        return UnifiedProduct(
            external_id=external_id,
            group_id=group_id,
            source_type=self.source_type,
            name=name,
            description=description,
            category_id=category_id,
            category_name=category_name,
            price=price if price is not None else Decimal("0"),
            stock=stock,
            available=available,
            image_urls=image_urls,
            attributes=attributes,
            platform_specific_data=platform_data,
            brand=brand,
            color=color,
            material=material,
            country=country,
            size=size,
            seo_title=self.seo_title(name, brand, size, None) if name else None,
            tags=self.tags(brand, color, category_name, size),
            source_url=source_url,
        )
