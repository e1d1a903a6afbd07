"""
피드 생성기 단위 테스트.
"""

import csv
from decimal import Decimal
from io import StringIO
import xml.etree.ElementTree as ET

import pytest

from catalog_sync.enums import AdPlatform, FeedFormat, OutOfStockHandling
from catalog_sync.models import Catalog, CatalogProductItem, FeedSettings, OutOfStockRule, Product
from catalog_sync.services.exceptions import ConfigurationError, FeedGenerationError
from catalog_sync.services.feeds.base import FeedProduct, build_feed_file_name
from catalog_sync.services.feeds.csv_generator import CSV_HEADERS, CsvFeedGenerator
from catalog_sync.services.feeds.google_merchant_generator import GOOGLE_NS, GoogleMerchantFeedGenerator
from catalog_sync.services.feeds.registry import get_feed_generator
from catalog_sync.services.feeds.xml_generator import XmlFeedGenerator


def _catalog(feed_format=FeedFormat.CSV, name="Summer Sale", custom_file_name=None) -> Catalog:
    return Catalog(
        merchant_id="m-1",
        name=name,
        description="Seasonal picks",
        ad_platform=AdPlatform.GOOGLE_ADS,
        feed_settings=FeedSettings(format=feed_format, custom_file_name=custom_file_name),
        out_of_stock_rule=OutOfStockRule(handling=OutOfStockHandling.EXCLUDE_FROM_FEED),
    )


def _product(product_id="p-1", **overrides) -> FeedProduct:
    values = dict(
        id=product_id,
        title=f"Title {product_id}",
        description="Plain description",
        price=Decimal("10.5"),
        currency="USD",
        availability="in_stock",
        stock_level=3,
        image_url=f"https://cdn.example.com/{product_id}.jpg",
        product_url=f"https://shop.example.com/{product_id}",
        brand="Acme",
        gtin="00012345678905",
        mpn="MPN-1",
        category="Apparel",
    )
    values.update(overrides)
    return FeedProduct(**values)


@pytest.mark.unit
class TestFeedProduct:
    def test_overrides_applied_from_catalog_item(self):
        product = Product(
            id="p-1", merchant_id="m-1", title="Original", description="Original desc",
            price=Decimal("5"), currency="EUR", availability="in_stock", stock_level=1,
            image_url="", product_url="",
        )
        item = CatalogProductItem(product_id="p-1", custom_title="Custom", custom_description=None)

        rendered = FeedProduct.from_product(product, item)

        assert rendered.title == "Custom"
        assert rendered.description == "Original desc"
        assert product.title == "Original"

    def test_price_text_is_amount_and_currency(self):
        assert _product(price=Decimal("10.5")).price_text == "10.50 USD"

    def test_file_name_uses_catalog_name_with_underscores(self):
        name = build_feed_file_name(_catalog(name="Summer  Sale 2026"), CsvFeedGenerator(), 1700000000000)
        assert name == "Summer_Sale_2026-1700000000000.csv"

    def test_file_name_prefers_custom_file_name(self):
        catalog = _catalog(FeedFormat.XML, custom_file_name="google-feed")
        assert build_feed_file_name(catalog, XmlFeedGenerator(), 42) == "google-feed-42.xml"


@pytest.mark.unit
class TestCsvFeedGenerator:
    def test_empty_list_produces_header_only(self):
        content = CsvFeedGenerator().generate(_catalog(), [])
        rows = list(csv.reader(StringIO(content)))
        assert rows == [CSV_HEADERS]

    def test_round_trip_preserves_values(self):
        tricky = _product(
            "p-2",
            title='Shirt, "limited"',
            description="Line one\nLine two, with comma",
            brand=None,
        )
        products = [_product("p-1"), tricky]

        content = CsvFeedGenerator().generate(_catalog(), products)
        rows = list(csv.DictReader(StringIO(content)))

        assert [r["id"] for r in rows] == ["p-1", "p-2"]
        assert rows[1]["title"] == 'Shirt, "limited"'
        assert rows[1]["description"] == "Line one\nLine two, with comma"
        assert rows[1]["brand"] == ""
        assert rows[0]["price"] == "10.50 USD"
        assert rows[0]["stock_level"] == "3"
        assert rows[0]["image_link"] == "https://cdn.example.com/p-1.jpg"
        assert rows[0]["google_product_category"] == "Apparel"

    def test_missing_identifier_aborts(self):
        with pytest.raises(FeedGenerationError) as excinfo:
            CsvFeedGenerator().generate(_catalog(), [_product("p-1"), _product("", item_ref="item-9")])
        assert excinfo.value.product_id == "item-9"
        assert "item-9" in excinfo.value.message


@pytest.mark.unit
class TestXmlFeedGenerator:
    def test_empty_list_is_valid_document(self):
        root = ET.fromstring(XmlFeedGenerator().generate(_catalog(FeedFormat.XML), []).encode("utf-8"))
        assert root.tag == "items"
        assert list(root) == []

    def test_free_text_is_escaped(self):
        product = _product(title="Tom & Jerry <Deluxe>", description="5 > 3 & \x0bbad control char")
        content = XmlFeedGenerator().generate(_catalog(FeedFormat.XML), [product])

        root = ET.fromstring(content.encode("utf-8"))
        item = root.find("item")
        assert item.findtext("id") == "p-1"
        assert item.findtext("title") == "Tom & Jerry <Deluxe>"
        assert item.findtext("description") == "5 > 3 & bad control char"
        assert item.findtext("price") == "10.50 USD"
        assert item.findtext("stock_level") == "3"

    def test_optional_fields_omitted_when_empty(self):
        content = XmlFeedGenerator().generate(_catalog(FeedFormat.XML), [_product(brand=None, gtin=None)])
        item = ET.fromstring(content.encode("utf-8")).find("item")
        assert item.find("brand") is None
        assert item.find("gtin") is None


@pytest.mark.unit
class TestGoogleMerchantFeedGenerator:
    def test_rss_structure_and_namespace(self):
        products = [_product("p-1"), _product("p-2", availability="out_of_stock")]
        content = GoogleMerchantFeedGenerator().generate(_catalog(FeedFormat.GOOGLE_MERCHANT_CENTER), products)

        root = ET.fromstring(content.encode("utf-8"))
        assert root.tag == "rss"
        assert root.get("version") == "2.0"
        channel = root.find("channel")
        assert channel.findtext("title") == "Summer Sale"

        items = channel.findall("item")
        ns = {"g": GOOGLE_NS}
        assert [i.findtext("g:id", namespaces=ns) for i in items] == ["p-1", "p-2"]
        assert items[0].findtext("g:price", namespaces=ns) == "10.50 USD"
        assert items[0].findtext("g:availability", namespaces=ns) == "in stock"
        assert items[1].findtext("g:availability", namespaces=ns) == "out of stock"
        assert items[0].findtext("g:link", namespaces=ns) == "https://shop.example.com/p-1"
        assert items[0].findtext("g:google_product_category", namespaces=ns) == "Apparel"

    def test_empty_channel(self):
        content = GoogleMerchantFeedGenerator().generate(_catalog(FeedFormat.GOOGLE_MERCHANT_CENTER), [])
        channel = ET.fromstring(content.encode("utf-8")).find("channel")
        assert channel.findall("item") == []


@pytest.mark.unit
class TestFeedGeneratorRegistry:
    @pytest.mark.parametrize(
        "feed_format, generator_cls",
        [
            (FeedFormat.CSV, CsvFeedGenerator),
            (FeedFormat.XML, XmlFeedGenerator),
            (FeedFormat.GOOGLE_MERCHANT_CENTER, GoogleMerchantFeedGenerator),
        ],
    )
    def test_exact_format_lookup(self, feed_format, generator_cls):
        generator = get_feed_generator(feed_format)
        assert isinstance(generator, generator_cls)
        assert generator.supports(feed_format)

    def test_string_format_accepted(self):
        assert isinstance(get_feed_generator("XML"), XmlFeedGenerator)

    def test_unknown_format_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            get_feed_generator("JSON")

    def test_missing_generator_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            get_feed_generator(FeedFormat.XML, generators={FeedFormat.CSV: CsvFeedGenerator()})

    def test_content_types(self):
        assert get_feed_generator(FeedFormat.CSV).content_type == "text/csv"
        assert get_feed_generator(FeedFormat.XML).content_type == "application/xml"
        assert get_feed_generator(FeedFormat.GOOGLE_MERCHANT_CENTER).content_type == "application/xml"
