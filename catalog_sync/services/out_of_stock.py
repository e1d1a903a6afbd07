"""
품절 필터

렌더링 직전에 카탈로그의 품절 규칙을 적용합니다.
입력과 출력 모두 FeedProduct 사본이므로 저장된 Product 는 변경되지 않습니다.

ALLOW_TEMPORARILY 기준 시각:
    out_of_stock_since (품절 최초 감지 시각) → 없으면 source_updated_at.
    둘 다 없으면 경과 시간을 알 수 없으므로 유지합니다.
"""
from dataclasses import replace
from datetime import datetime, timedelta
import logging

from catalog_sync.enums import OUT_OF_STOCK, OutOfStockHandling
from catalog_sync.models import OutOfStockRule
from catalog_sync.services.feeds.base import FeedProduct
from catalog_sync.timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)


def _allowance_expired(product: FeedProduct, allowance_days: int | None, now: datetime) -> bool:
    if allowance_days is None:
        return False
    reference = as_utc(product.out_of_stock_since or product.source_updated_at)
    if reference is None:
        return False
    return now - reference >= timedelta(days=allowance_days)


def apply_out_of_stock_rule(
    rule: OutOfStockRule,
    products: list[FeedProduct],
    now: datetime | None = None,
) -> list[FeedProduct]:
    now = as_utc(now) if now is not None else utcnow()
    result: list[FeedProduct] = []

    for product in products:
        if not product.is_out_of_stock:
            result.append(product)
            continue

        if rule.handling == OutOfStockHandling.EXCLUDE_FROM_FEED:
            logger.debug(f"[FEED] Excluding out-of-stock product {product.id}")
            continue

        if rule.handling == OutOfStockHandling.MARK_AS_OUT_OF_STOCK:
            result.append(replace(product, availability=OUT_OF_STOCK))
            continue

        if rule.handling == OutOfStockHandling.ALLOW_TEMPORARILY:
            if _allowance_expired(product, rule.temporary_allowance_days, now):
                logger.debug(f"[FEED] Temporary allowance expired for product {product.id}")
                continue
            result.append(product)
            continue

        result.append(product)

    return result
