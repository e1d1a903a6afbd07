"""
카탈로그 서비스

가맹점 요청(API/CLI)의 동기 작업을 처리합니다.
모든 조회는 요청 가맹점 소유 범위로 제한되며, 소유가 아니면 NotFound 로 응답합니다.
"""
import logging
from typing import Any, Iterable, Optional

from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_sync.enums import AdPlatform, FeedFormat, TriggerType
from catalog_sync.models import Catalog, CatalogSyncHistory, FeedSettings, OutOfStockRule, Product
from catalog_sync.schemas.catalog import (
    CatalogCreate,
    CatalogItemIn,
    CatalogUpdate,
    FeedSettingsIn,
    OutOfStockRuleIn,
    ProductUpsertIn,
)
from catalog_sync.services.exceptions import CatalogSyncInProgressError, NotFoundError, ValidationError
from catalog_sync.services.storage_service import FeedStorage, create_feed_storage
from catalog_sync.services.sync_orchestrator import load_owned_catalog, render_catalog_feed
from catalog_sync.services.trigger_queue import SyncTrigger, TriggerQueue
from catalog_sync.timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)


def _feed_settings(data: FeedSettingsIn) -> FeedSettings:
    return FeedSettings(format=data.format, custom_file_name=data.customFileName or None)


def _out_of_stock_rule(data: OutOfStockRuleIn) -> OutOfStockRule:
    return OutOfStockRule(handling=data.handling, temporary_allowance_days=data.temporaryAllowanceDays)


def _validate_cron(expression: Optional[str]) -> Optional[str]:
    if not expression:
        return None
    try:
        CronTrigger.from_crontab(expression)
    except ValueError as e:
        raise ValidationError(f"Invalid cron expression: {expression} ({e})", field="syncScheduleCron")
    return expression


class CatalogService:
    def __init__(self, session: Session, queue: Optional[TriggerQueue] = None, storage: Optional[FeedStorage] = None):
        self.session = session
        self.queue = queue or TriggerQueue()
        self.storage = storage

    def _ensure_products_owned(self, merchant_id: str, product_ids: Iterable[str]) -> None:
        wanted = set(product_ids)
        if not wanted:
            return
        found = set(
            self.session.scalars(
                select(Product.id).where(Product.merchant_id == merchant_id, Product.id.in_(wanted))
            ).all()
        )
        missing = sorted(wanted - found)
        if missing:
            raise ValidationError(
                f"Unknown product ids for merchant {merchant_id}: {', '.join(missing)}",
                field="productIds",
                product_ids=missing,
            )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    def create_catalog(self, merchant_id: str, data: CatalogCreate) -> Catalog:
        self._ensure_products_owned(merchant_id, data.productIds)
        catalog = Catalog(
            merchant_id=merchant_id,
            name=data.name,
            description=data.description,
            ad_platform=data.adPlatform,
            feed_settings=_feed_settings(data.feedSettings),
            out_of_stock_rule=_out_of_stock_rule(data.outOfStockRule),
            sync_enabled=data.syncEnabled,
            sync_schedule_cron=_validate_cron(data.syncScheduleCron),
        )
        for product_id in dict.fromkeys(data.productIds):
            catalog.add_product_item(product_id)
        self.session.add(catalog)
        self.session.flush()
        logger.info(f"[SYNC] Created catalog {catalog.id} for merchant {merchant_id}")
        return catalog

    def get_catalog(self, merchant_id: str, catalog_id: Any) -> Catalog:
        return load_owned_catalog(self.session, catalog_id, merchant_id)

    def list_catalogs(self, merchant_id: str) -> list[Catalog]:
        return list(
            self.session.scalars(
                select(Catalog).where(Catalog.merchant_id == merchant_id).order_by(Catalog.created_at, Catalog.name)
            ).all()
        )

    def update_catalog(self, merchant_id: str, catalog_id: Any, data: CatalogUpdate) -> Catalog:
        catalog = self.get_catalog(merchant_id, catalog_id)
        catalog.update_details(name=data.name, description=data.description, ad_platform=data.adPlatform)
        if data.feedSettings is not None:
            catalog.update_feed_settings(_feed_settings(data.feedSettings))
        if data.outOfStockRule is not None:
            catalog.update_out_of_stock_rule(_out_of_stock_rule(data.outOfStockRule))
        if data.syncEnabled is not None:
            catalog.sync_enabled = data.syncEnabled
        if "syncScheduleCron" in data.model_fields_set:
            catalog.sync_schedule_cron = _validate_cron(data.syncScheduleCron)
            catalog.next_scheduled_sync_at = None

        if data.productIds is not None:
            self._ensure_products_owned(merchant_id, data.productIds)
            wanted = list(dict.fromkeys(data.productIds))
            for item in list(catalog.product_items):
                if item.product_id not in wanted:
                    catalog.remove_product_item(item.product_id)
            existing = catalog.overrides_by_product_id()
            for product_id in wanted:
                override = data.productOverrides.get(product_id)
                if override is not None:
                    catalog.add_product_item(product_id, override.customTitle, override.customDescription)
                elif product_id not in existing:
                    catalog.add_product_item(product_id)
        elif data.productOverrides:
            existing = catalog.overrides_by_product_id()
            for product_id, override in data.productOverrides.items():
                if product_id in existing:
                    catalog.add_product_item(product_id, override.customTitle, override.customDescription)

        self.session.flush()
        return catalog

    def delete_catalog(self, merchant_id: str, catalog_id: Any) -> None:
        catalog = self.get_catalog(merchant_id, catalog_id)
        self.session.delete(catalog)
        self.session.flush()
        logger.info(f"[SYNC] Deleted catalog {catalog_id} for merchant {merchant_id}")

    def add_product(self, merchant_id: str, catalog_id: Any, data: CatalogItemIn):
        catalog = self.get_catalog(merchant_id, catalog_id)
        self._ensure_products_owned(merchant_id, [data.productId])
        item = catalog.add_product_item(data.productId, data.customTitle, data.customDescription)
        self.session.flush()
        return item

    def remove_product(self, merchant_id: str, catalog_id: Any, product_id: str) -> None:
        catalog = self.get_catalog(merchant_id, catalog_id)
        if not catalog.remove_product_item(product_id):
            raise NotFoundError(
                f"Product {product_id} is not in catalog {catalog_id}",
                resource="catalog_product_item",
                resource_id=product_id,
            )
        self.session.flush()

    # ------------------------------------------------------------------
    # 피드 / 동기화
    # ------------------------------------------------------------------
    def generate_feed(self, merchant_id: str, catalog_id: Any, feed_format: Optional[FeedFormat] = None) -> str:
        """피드를 렌더링해 저장하고 URL 을 반환한다. 플랫폼 전송과 이력 기록은 하지 않는다."""
        catalog = self.get_catalog(merchant_id, catalog_id)
        feed = render_catalog_feed(self.session, catalog, feed_format)
        if self.storage is None:
            self.storage = create_feed_storage()
        return self.storage.upload(feed.content, feed.file_name, feed.content_type, merchant_id, str(catalog.id))

    def trigger_sync(self, merchant_id: str, catalog_id: Any, platform: Optional[AdPlatform] = None):
        catalog = self.get_catalog(merchant_id, catalog_id)
        if catalog.sync_lease_owner and catalog.sync_lease_expires_at and as_utc(catalog.sync_lease_expires_at) > utcnow():
            raise CatalogSyncInProgressError(catalog.id, lease_owner=catalog.sync_lease_owner)

        target = platform or catalog.ad_platform
        trigger = SyncTrigger(
            merchantId=merchant_id,
            triggerType=TriggerType.MANUAL_SYNC.value,
            catalogId=str(catalog.id),
            adPlatform=AdPlatform(target).value,
            source="api",
        )
        message_id = self.queue.send(self.session, trigger)
        logger.info(f"[SYNC] Manual sync for catalog {catalog.id} on {trigger.adPlatform} enqueued as {message_id}")
        return message_id

    def get_sync_history(
        self,
        merchant_id: str,
        catalog_id: Any,
        platform: Optional[AdPlatform] = None,
        limit: int = 50,
    ) -> list[CatalogSyncHistory]:
        catalog = self.get_catalog(merchant_id, catalog_id)
        stmt = select(CatalogSyncHistory).where(CatalogSyncHistory.catalog_id == catalog.id)
        if platform is not None:
            stmt = stmt.where(CatalogSyncHistory.ad_platform == platform)
        stmt = stmt.order_by(CatalogSyncHistory.sync_started_at.desc()).limit(limit)
        return list(self.session.scalars(stmt).all())

    def get_sync_status(self, merchant_id: str, catalog_id: Any) -> list[dict[str, Any]]:
        """플랫폼별 가장 최근 시도"""
        catalog = self.get_catalog(merchant_id, catalog_id)
        platforms = self.session.scalars(
            select(CatalogSyncHistory.ad_platform).where(CatalogSyncHistory.catalog_id == catalog.id).distinct()
        ).all()
        latest: dict[AdPlatform, CatalogSyncHistory] = {}
        for platform in sorted(platforms, key=lambda p: AdPlatform(p).value):
            recent = self.get_sync_history(merchant_id, catalog.id, platform=platform, limit=1)
            if recent:
                latest[platform] = recent[0]
        return [
            {
                "platform": platform,
                "lastSyncStartedAt": history.sync_started_at,
                "lastSyncEndedAt": history.sync_ended_at,
                "status": history.status,
                "errorMessage": history.error_message,
            }
            for platform, history in latest.items()
        ]

    # ------------------------------------------------------------------
    # 상품 일괄 임포트
    # ------------------------------------------------------------------
    def upsert_products(self, merchant_id: str, products: list[ProductUpsertIn]) -> dict[str, int]:
        ids = [p.id for p in products]
        existing = {
            p.id: p
            for p in self.session.scalars(select(Product).where(Product.id.in_(ids))).all()
        }
        now = utcnow()
        created = updated = 0
        for data in products:
            product = existing.get(data.id)
            if product is not None and product.merchant_id != merchant_id:
                raise ValidationError(f"Product {data.id} belongs to another merchant", field="id")
            if product is None:
                product = Product(id=data.id, merchant_id=merchant_id)
                self.session.add(product)
                existing[data.id] = product
                created += 1
            else:
                updated += 1
            product.title = data.title
            product.description = data.description
            product.price = data.price
            product.currency = data.currency.upper()
            product.availability = data.availability
            product.stock_level = data.stockLevel
            product.image_url = data.imageUrl
            product.product_url = data.productUrl
            product.brand = data.brand
            product.gtin = data.gtin
            product.mpn = data.mpn
            product.category = data.category
            product.source_updated_at = now
            product.mark_stock_observed(now)
        self.session.flush()
        logger.info(f"[INGEST] Bulk import for merchant {merchant_id}: created={created}, updated={updated}")
        return {"created": created, "updated": updated}
