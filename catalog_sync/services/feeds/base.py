"""
피드 생성기 공통 정의

렌더링 전용 상품 사본(FeedProduct)과 생성기 인터페이스를 정의합니다.
저장된 Product 는 여기서 절대 변경하지 않습니다.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import re
from typing import Iterable, Optional

from catalog_sync.enums import FeedFormat
from catalog_sync.models import Catalog, CatalogProductItem, Product
from catalog_sync.services.exceptions import FeedGenerationError

# XML 1.0 에서 허용되지 않는 제어 문자
_XML_ILLEGAL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f￾￿]")


@dataclass(frozen=True)
class FeedProduct:
    """오버라이드가 적용된 렌더링용 상품 사본"""
    id: str
    title: str
    description: str
    price: Decimal
    currency: str
    availability: str
    stock_level: int
    image_url: str = ""
    product_url: str = ""
    brand: Optional[str] = None
    gtin: Optional[str] = None
    mpn: Optional[str] = None
    category: Optional[str] = None
    source_updated_at: Optional[datetime] = None
    out_of_stock_since: Optional[datetime] = None
    item_ref: Optional[str] = None  # 카탈로그 항목 ID (오류 메시지용)

    @classmethod
    def from_product(cls, product: Product, item: Optional[CatalogProductItem] = None) -> "FeedProduct":
        title = item.custom_title if item and item.custom_title else product.title
        description = item.custom_description if item and item.custom_description else product.description
        return cls(
            id=product.id,
            title=title or "",
            description=description or "",
            price=Decimal(product.price if product.price is not None else 0),
            currency=product.currency,
            availability=product.availability,
            stock_level=product.stock_level or 0,
            image_url=product.image_url or "",
            product_url=product.product_url or "",
            brand=product.brand,
            gtin=product.gtin,
            mpn=product.mpn,
            category=product.category,
            source_updated_at=product.source_updated_at,
            out_of_stock_since=product.out_of_stock_since,
            item_ref=str(item.id) if item is not None and item.id is not None else None,
        )

    @property
    def is_out_of_stock(self) -> bool:
        return self.stock_level <= 0 or self.availability == "out_of_stock"

    @property
    def price_text(self) -> str:
        """가격은 "금액 통화" 형식으로 렌더링한다 (예: 10.99 USD)"""
        return f"{self.price.quantize(Decimal('0.01'))} {self.currency}"


def build_feed_products(
    products: Iterable[Product],
    items_by_product_id: dict[str, CatalogProductItem],
) -> list[FeedProduct]:
    return [FeedProduct.from_product(p, items_by_product_id.get(p.id)) for p in products]


def xml_safe(value: object) -> str:
    return _XML_ILLEGAL_CHARS.sub("", str(value))


class FeedGenerator(ABC):
    """포맷별 피드 렌더러"""

    format: FeedFormat
    content_type: str = "application/xml"
    file_extension: str = "xml"

    def supports(self, feed_format: FeedFormat) -> bool:
        return feed_format == self.format

    def generate(self, catalog: Catalog, products: list[FeedProduct]) -> str:
        for product in products:
            if not product.id or not str(product.id).strip():
                ref = product.item_ref or product.title or "<unknown>"
                raise FeedGenerationError(
                    f"Product {ref} is missing its required identifier",
                    product_id=ref,
                    feed_format=self.format.value,
                )
        return self._render(catalog, products)

    @abstractmethod
    def _render(self, catalog: Catalog, products: list[FeedProduct]) -> str:
        raise NotImplementedError


def build_feed_file_name(catalog: Catalog, generator: FeedGenerator, epoch_ms: int) -> str:
    """{customFileName 또는 공백을 _ 로 바꾼 카탈로그명}-{epoch_ms}.{확장자}"""
    custom = catalog.feed_settings.custom_file_name if catalog.feed_settings else None
    base_name = custom or re.sub(r"\s+", "_", (catalog.name or "").strip()) or str(catalog.id)
    return f"{base_name}-{epoch_ms}.{generator.file_extension}"
