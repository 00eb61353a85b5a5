"""
Pytest configuration and fixtures.
"""
from decimal import Decimal

import pytest

from feed_service.internal.domain.product import UnifiedProduct
from feed_service.internal.domain.source import SourceType


EASYDROP_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<shop>
  <categories>
    <category id="10">Кросівки</category>
    <category id="11" parentId="10">Бігові кросівки</category>
    <category id="12">Рюкзаки</category>
  </categories>
  <items>
    <item id="ED-1" group_id="G1" available="true" selling_type="r">
      <name>Кросівки Nike Air Max black</name>
      <categoryId>10</categoryId>
      <priceuah>2500.00</priceuah>
      <quantity_in_stock>5</quantity_in_stock>
      <barcode>4820000000011</barcode>
      <image>https://cdn.example.com/ed1.jpg, https://cdn.example.com/ed1-back.jpg</image>
      <picture>https://cdn.example.com/ed1.jpg</picture>
      <description><![CDATA[<p>Легкі кросівки для бігу.</p>
Матеріал: текстиль
Виробник: В'єтнам]]></description>
      <param name="Розмір">42</param>
      <param name="Колір">black</param>
    </item>
    <item id="ED-2" group_id="G1" available="true">
      <name>Кросівки Nike Air Max black</name>
      <categoryId>10</categoryId>
      <priceuah>2550</priceuah>
      <quantity_in_stock>0</quantity_in_stock>
      <image>https://cdn.example.com/ed2.jpg</image>
      <param name="Розмір">43</param>
    </item>
    <item id="ED-3" available="true">
      <name>Рюкзак Adidas Classic</name>
      <categoryId>12</categoryId>
      <priceuah>1200</priceuah>
      <quantity_in_stock>3</quantity_in_stock>
      <image>https://cdn.example.com/ed3.png</image>
    </item>
  </items>
</shop>
"""


MYDROP_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<yml_catalog date="2024-01-01 10:00">
  <shop>
    <categories>
      <category id="1">Одяг</category>
      <category id="2" parentId="1">Футболки</category>
    </categories>
    <offers>
      <offer id="MD-1" group_id="G1" available="true">
        <name>Футболка Nike Dri-FIT</name>
        <price>899</price>
        <currencyId>UAH</currencyId>
        <categoryId>2</categoryId>
        <picture>https://img.mydrop.com.ua/md1.jpg</picture>
        <picture>https://img.mydrop.com.ua/md1.jpg</picture>
        <picture>not-a-url</picture>
        <vendor>Nike</vendor>
        <vendorCode>NK-001</vendorCode>
        <quantity_in_stock>7</quantity_in_stock>
        <description><![CDATA[Спортивна футболка<br>Склад: 100% поліестер<br/>Країна: Китай<br>Колір: чорний<br>Розмір: M відповідає 48]]></description>
        <param name="Размер">M</param>
        <weight>0.3</weight>
        <length>30</length>
        <width>20</width>
        <height>5</height>
      </offer>
      <offer id="MD-2" available="false">
        <name>Кепка унісекс</name>
        <price>1 200,50</price>
        <categoryId>99</categoryId>
        <vendor>-</vendor>
        <stock_quantity>2</stock_quantity>
      </offer>
    </offers>
  </shop>
</yml_catalog>
"""


@pytest.fixture
def easydrop_feed():
    """Sample EasyDrop feed document."""
    return EASYDROP_FEED


@pytest.fixture
def mydrop_feed():
    """Sample MyDrop feed document."""
    return MYDROP_FEED


@pytest.fixture
def make_product():
    """Factory for unified products with sensible defaults."""

    def _make(external_id="P-1", source_type=SourceType.EASYDROP, **overrides):
        data = {
            "external_id": external_id,
            "source_type": source_type,
            "name": f"Product {external_id}",
            "price": Decimal("100"),
            "stock": 1,
            "available": True,
        }
        data.update(overrides)
        return UnifiedProduct(**data)

    return _make
