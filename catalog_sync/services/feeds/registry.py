from catalog_sync.enums import FeedFormat
from catalog_sync.services.exceptions import ConfigurationError
from catalog_sync.services.feeds.base import FeedGenerator
from catalog_sync.services.feeds.csv_generator import CsvFeedGenerator
from catalog_sync.services.feeds.google_merchant_generator import GoogleMerchantFeedGenerator
from catalog_sync.services.feeds.xml_generator import XmlFeedGenerator

# 포맷 → 생성기 (정확히 일치하는 포맷만 선택)
FEED_GENERATORS: dict[FeedFormat, FeedGenerator] = {
    FeedFormat.CSV: CsvFeedGenerator(),
    FeedFormat.XML: XmlFeedGenerator(),
    FeedFormat.GOOGLE_MERCHANT_CENTER: GoogleMerchantFeedGenerator(),
}


def get_feed_generator(
    feed_format: FeedFormat | str,
    generators: dict[FeedFormat, FeedGenerator] | None = None,
) -> FeedGenerator:
    registry = FEED_GENERATORS if generators is None else generators
    try:
        key = FeedFormat(feed_format)
    except ValueError:
        raise ConfigurationError(f"No feed generator for format {feed_format}", feed_format=str(feed_format))

    generator = registry.get(key)
    if generator is None:
        raise ConfigurationError(f"No feed generator for format {key.value}", feed_format=key.value)
    return generator
