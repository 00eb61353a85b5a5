"""
MyDrop feed parser.

MyDrop exports YML (Yandex Market Language): ``<categories>`` with
``<category id=".." parentId="..">`` and ``<offers>`` with
``<offer id=".." group_id=".." available="true">`` elements. Descriptions
are usually HTML wrapped in CDATA.
"""

from decimal import Decimal
from typing import Dict, Optional

from bs4 import Tag

from feed_service.internal.domain.product import Category, UnifiedProduct, UNKNOWN_EXTERNAL_ID
from feed_service.internal.domain.source import SourceType
from feed_service.internal.parsers.base import (
    FeedParser,
    collapse_whitespace,
    html_to_text,
    title_words,
)


SIZE_INFO_MAX_LENGTH = 100

# Ukrainian and Russian colour words mapped to English
COLOR_TRANSLATIONS = {
    "чорний": "black",
    "черный": "black",
    "білий": "white",
    "белый": "white",
    "червоний": "red",
    "красный": "red",
    "синій": "blue",
    "синий": "blue",
    "зелений": "green",
    "зеленый": "green",
    "сірий": "gray",
    "серый": "gray",
}


class MyDropParser(FeedParser):
    """
    Parser for MyDrop YML feeds.

    Field mapping:
    - ``price`` -> price, ``quantity_in_stock`` -> stock
    - ``vendorCode``, ``currencyId`` and ``vendor`` -> platform data
    - ``vendor`` is the brand when the name mentions no known brand
    - ``length``/``width``/``height`` -> dimensions, ``weight`` -> weight
    """

    ITEM_TAG = "offer"
    IMAGE_TAGS = ("picture", "image", "gallery", "photos")
    BRANDS = (
        "without", "nike", "adidas", "puma", "under armour", "reebok",
        "new balance", "converse", "vans", "champion", "calvin klein",
        "tommy hilfiger", "lacoste", "polo ralph lauren", "guess",
    )
    ENGLISH_COLORS = (
        "black", "white", "red", "blue", "green", "yellow",
        "gray", "brown", "pink", "purple",
    )
    MATERIAL_LABELS = ("склад:", "состав:", "матеріал:", "материал:")
    COUNTRY_LABELS = ("виробник:", "производитель:", "країна:")
    STOCK_TAGS = ("quantity_in_stock", "stock_quantity")

    @property
    def source_type(self) -> SourceType:
        return SourceType.MYDROP

    def parse_item(
        self,
        element: Tag,
        categories: Dict[str, Category],
        source_url: Optional[str] = None,
    ) -> UnifiedProduct:
        """
        Map one ``<offer>`` to a product.

        Args:
            element: The offer element.
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
        material = country = color = size_info = None
        raw_description = self.child_text(element, "description")
        if raw_description:
            text = html_to_text(raw_description, keep_breaks=True)
            description = collapse_whitespace(text) or None
            material = self.material(text)
            country = self.country(text)
            color = self.detect_color(text)
            size_info = self.size_info(text)
        if color is None:
            color = self.detect_color(name)

        price = self.parse_decimal(self.child_text(element, "price"), "price", external_id)
        stock = self.parse_int(
            self.child_text(element, *self.STOCK_TAGS), "quantity_in_stock", external_id
        ) or 0
        available = self.is_available(self.attribute(element, "available"), stock)

        image_urls = self.image_urls(element)
        attributes, size = self.params(element, name, category_name)
        if size_info and "size_info" not in attributes:
            attributes["size_info"] = size_info

        platform_data = {}
        vendor_code = self.child_text(element, "vendorCode")
        if vendor_code:
            platform_data["vendor_code"] = vendor_code
        currency = self.child_text(element, "currencyId")
        if currency:
            platform_data["currency"] = currency
        selling_type = self.attribute(element, "selling_type")
        if selling_type:
            platform_data["selling_type"] = selling_type
        vendor = self.child_text(element, "vendor")
        if vendor and vendor != "-":
            platform_data["vendor"] = vendor
            if brand is None:
                brand = title_words(vendor)

        weight = self.parse_decimal(self.child_text(element, "weight"), "weight", external_id)

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
            seo_title=self.seo_title(name, brand, size, color) if name else None,
            seo_description=self.seo_description(name, brand, price, category_name) if name else None,
            tags=self.tags(brand, color, category_name, size, material, country),
            weight=weight,
            dimensions=self.dimensions(element, external_id),
            source_url=source_url,
        )

    def detect_color(self, text: str) -> Optional[str]:
        """
        Detect a colour, preferring English colour words.

        Returns:
            English colour name, or None.
        """
        english = self.detect_keyword(text, self.ENGLISH_COLORS)
        if english:
            return english
        local = self.detect_keyword(text, tuple(COLOR_TRANSLATIONS))
        return COLOR_TRANSLATIONS[local] if local else None

    @staticmethod
    def size_info(text: str) -> Optional[str]:
        """First short description line that talks about sizing."""
        for line in text.splitlines():
            line = collapse_whitespace(line)
            lower = line.lower()
            if ("розмір" in lower or "размер" in lower) and len(line) <= SIZE_INFO_MAX_LENGTH:
                return line
        return None

    def dimensions(self, element: Tag, item_id: str) -> Optional[str]:
        """Format ``length``/``width``/``height`` as "LxWxH"."""
        values = [
            self.parse_decimal(self.child_text(element, tag), tag, item_id)
            for tag in ("length", "width", "height")
        ]
        if all(v is None for v in values):
            return None
        return "x".join("?" if v is None else f"{v.normalize():f}" for v in values)

    @staticmethod
    def seo_description(
        name: str,
        brand: Optional[str],
        price: Optional[Decimal],
        category_name: Optional[str],
    ) -> str:
        """Build the storefront meta description."""
        text = name
        if brand:
            text += f" від {brand}"
        if price is not None and price > 0:
            text += f". Ціна: {price.quantize(Decimal('0.01'))} грн"
        if category_name:
            text += f". Категорія: {category_name}"
        return text + ". Швидка доставка по Україні."
