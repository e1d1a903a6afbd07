"""
품절 규칙 단위 테스트.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from catalog_sync.enums import OutOfStockHandling
from catalog_sync.models import OutOfStockRule
from catalog_sync.services.feeds.base import FeedProduct
from catalog_sync.services.out_of_stock import apply_out_of_stock_rule

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _product(product_id, stock_level=5, availability="in_stock", **kwargs) -> FeedProduct:
    return FeedProduct(
        id=product_id,
        title=f"Title {product_id}",
        description="",
        price=Decimal("10"),
        currency="USD",
        availability=availability,
        stock_level=stock_level,
        **kwargs,
    )


@pytest.mark.unit
class TestOutOfStockRule:
    def test_exclude_drops_out_of_stock(self):
        """재고 0 상품은 피드에서 제외"""
        rule = OutOfStockRule(handling=OutOfStockHandling.EXCLUDE_FROM_FEED)
        products = [_product("p-1"), _product("p-2", stock_level=0), _product("p-3", availability="out_of_stock")]

        result = apply_out_of_stock_rule(rule, products, now=NOW)

        assert [p.id for p in result] == ["p-1"]

    def test_mark_keeps_item_with_out_of_stock_availability(self):
        rule = OutOfStockRule(handling=OutOfStockHandling.MARK_AS_OUT_OF_STOCK)
        original = _product("p-2", stock_level=0, availability="in_stock")

        result = apply_out_of_stock_rule(rule, [_product("p-1"), original], now=NOW)

        assert [p.id for p in result] == ["p-1", "p-2"]
        assert result[1].availability == "out_of_stock"
        # 입력 사본은 변경되지 않음
        assert original.availability == "in_stock"

    def test_allow_temporarily_within_window(self):
        """허용 기간 내 품절 상품은 유지"""
        rule = OutOfStockRule(handling=OutOfStockHandling.ALLOW_TEMPORARILY, temporary_allowance_days=3)
        product = _product("p-1", stock_level=0, out_of_stock_since=NOW - timedelta(days=2))

        result = apply_out_of_stock_rule(rule, [product], now=NOW)

        assert [p.id for p in result] == ["p-1"]
        assert result[0].availability == "in_stock"

    def test_allow_temporarily_expired(self):
        """허용 기간이 지나면 제외"""
        rule = OutOfStockRule(handling=OutOfStockHandling.ALLOW_TEMPORARILY, temporary_allowance_days=3)
        product = _product("p-1", stock_level=0, out_of_stock_since=NOW - timedelta(days=4))

        assert apply_out_of_stock_rule(rule, [product], now=NOW) == []

    def test_allow_temporarily_falls_back_to_source_update_time(self):
        rule = OutOfStockRule(handling=OutOfStockHandling.ALLOW_TEMPORARILY, temporary_allowance_days=1)
        stale = _product("p-1", stock_level=0, source_updated_at=NOW - timedelta(days=5))
        fresh = _product("p-2", stock_level=0, source_updated_at=NOW - timedelta(hours=3))

        result = apply_out_of_stock_rule(rule, [stale, fresh], now=NOW)

        assert [p.id for p in result] == ["p-2"]

    def test_allow_temporarily_without_reference_time_keeps_item(self):
        rule = OutOfStockRule(handling=OutOfStockHandling.ALLOW_TEMPORARILY, temporary_allowance_days=1)

        result = apply_out_of_stock_rule(rule, [_product("p-1", stock_level=0)], now=NOW)

        assert [p.id for p in result] == ["p-1"]

    def test_naive_reference_time_treated_as_utc(self):
        """SQLite 에서 읽은 naive datetime 도 비교 가능"""
        rule = OutOfStockRule(handling=OutOfStockHandling.ALLOW_TEMPORARILY, temporary_allowance_days=1)
        naive = (NOW - timedelta(days=2)).replace(tzinfo=None)

        assert apply_out_of_stock_rule(rule, [_product("p-1", stock_level=0, out_of_stock_since=naive)], now=NOW) == []

    def test_in_stock_products_untouched_for_every_policy(self):
        products = [_product("p-1"), _product("p-2")]
        for handling in OutOfStockHandling:
            rule = OutOfStockRule(handling=handling, temporary_allowance_days=1)
            assert apply_out_of_stock_rule(rule, products, now=NOW) == products
