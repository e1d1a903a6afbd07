import csv
from io import StringIO

from catalog_sync.enums import FeedFormat
from catalog_sync.models import Catalog
from catalog_sync.services.feeds.base import FeedGenerator, FeedProduct

CSV_HEADERS = [
    "id",
    "title",
    "description",
    "price",
    "availability",
    "image_link",
    "link",
    "brand",
    "gtin",
    "mpn",
    "google_product_category",
    "stock_level",
]


class CsvFeedGenerator(FeedGenerator):
    """CSV 피드. 모든 필드를 따옴표로 감싸 쉼표/개행이 포함된 텍스트도 안전하게 기록한다."""

    format = FeedFormat.CSV
    content_type = "text/csv"
    file_extension = "csv"

    def _row(self, product: FeedProduct) -> dict[str, str]:
        return {
            "id": product.id,
            "title": product.title,
            "description": product.description,
            "price": product.price_text,
            "availability": product.availability,
            "image_link": product.image_url,
            "link": product.product_url,
            "brand": product.brand or "",
            "gtin": product.gtin or "",
            "mpn": product.mpn or "",
            "google_product_category": product.category or "",
            "stock_level": str(product.stock_level),
        }

    def _render(self, catalog: Catalog, products: list[FeedProduct]) -> str:
        output = StringIO()
        writer = csv.DictWriter(output, fieldnames=CSV_HEADERS, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
        writer.writeheader()
        for product in products:
            writer.writerow(self._row(product))
        return output.getvalue()
