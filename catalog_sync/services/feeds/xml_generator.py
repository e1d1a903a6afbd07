import xml.etree.ElementTree as ET

from catalog_sync.enums import FeedFormat
from catalog_sync.models import Catalog
from catalog_sync.services.feeds.base import FeedGenerator, FeedProduct, xml_safe

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


def serialize(root: ET.Element) -> str:
    ET.indent(root, space="  ")
    return XML_DECLARATION + ET.tostring(root, encoding="unicode")


class XmlFeedGenerator(FeedGenerator):
    """범용 XML 피드 (<items><item>...</item></items>)"""

    format = FeedFormat.XML

    def _render(self, catalog: Catalog, products: list[FeedProduct]) -> str:
        root = ET.Element("items")
        for product in products:
            item = ET.SubElement(root, "item")
            fields = [
                ("id", product.id),
                ("title", product.title),
                ("description", product.description),
                ("price", product.price_text),
                ("availability", product.availability),
                ("image_url", product.image_url),
                ("product_url", product.product_url),
                ("brand", product.brand),
                ("gtin", product.gtin),
                ("mpn", product.mpn),
                ("category", product.category),
                ("stock_level", product.stock_level),
            ]
            for tag, value in fields:
                # id 외의 빈 값은 요소를 만들지 않는다
                if tag != "id" and (value is None or value == ""):
                    continue
                ET.SubElement(item, tag).text = xml_safe(value)
        return serialize(root)
