"""
Google Merchant Center 피드

RSS 2.0 + g: 네임스페이스 스키마로 렌더링합니다.
"""
import xml.etree.ElementTree as ET

from catalog_sync.enums import FeedFormat
from catalog_sync.models import Catalog
from catalog_sync.services.feeds.base import FeedGenerator, FeedProduct, xml_safe
from catalog_sync.services.feeds.xml_generator import serialize

GOOGLE_NS = "http://base.google.com/ns/1.0"
ET.register_namespace("g", GOOGLE_NS)

# 내부 availability 값 → GMC 표기
_AVAILABILITY_MAP = {
    "in_stock": "in stock",
    "out_of_stock": "out of stock",
    "preorder": "preorder",
    "backorder": "backorder",
}


def _g(tag: str) -> str:
    return f"{{{GOOGLE_NS}}}{tag}"


class GoogleMerchantFeedGenerator(FeedGenerator):
    format = FeedFormat.GOOGLE_MERCHANT_CENTER

    def _render(self, catalog: Catalog, products: list[FeedProduct]) -> str:
        root = ET.Element("rss", {"version": "2.0"})
        channel = ET.SubElement(root, "channel")
        ET.SubElement(channel, "title").text = xml_safe(catalog.name or "Product Feed")
        ET.SubElement(channel, "description").text = xml_safe(catalog.description or "Product catalog feed.")

        for product in products:
            item = ET.SubElement(channel, "item")
            ET.SubElement(item, _g("id")).text = xml_safe(product.id)
            if product.title:
                ET.SubElement(item, _g("title")).text = xml_safe(product.title)
            if product.description:
                ET.SubElement(item, _g("description")).text = xml_safe(product.description)
            if product.product_url:
                ET.SubElement(item, _g("link")).text = xml_safe(product.product_url)
            if product.image_url:
                ET.SubElement(item, _g("image_link")).text = xml_safe(product.image_url)
            availability = _AVAILABILITY_MAP.get(product.availability, product.availability)
            ET.SubElement(item, _g("availability")).text = xml_safe(availability)
            ET.SubElement(item, _g("price")).text = product.price_text
            if product.brand:
                ET.SubElement(item, _g("brand")).text = xml_safe(product.brand)
            if product.gtin:
                ET.SubElement(item, _g("gtin")).text = xml_safe(product.gtin)
            if product.mpn:
                ET.SubElement(item, _g("mpn")).text = xml_safe(product.mpn)
            if product.category:
                ET.SubElement(item, _g("google_product_category")).text = xml_safe(product.category)

        return serialize(root)
