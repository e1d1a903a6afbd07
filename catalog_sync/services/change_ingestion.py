"""
재고 변경 이벤트 인제스트

1. merchantId + externalId 로 상품 조회 (없는 ID 는 경고 후 건너뜀)
2. 재고/판매상태 반영, source_updated_at = now
3. 저장
4. 변경 상품을 포함한 같은 가맹점의 카탈로그 조회
5. 광고 플랫폼이 설정된 카탈로그마다 WEBHOOK_PRODUCT_UPDATE 트리거 적재

enable_realtime_ingestion_processing 이 꺼져 있으면 4-5 단계는 건너뜁니다.
"""
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_sync.enums import TriggerType
from catalog_sync.models import Catalog, CatalogProductItem, Product
from catalog_sync.schemas.ingestion import InventoryUpdatePayload
from catalog_sync.services.exceptions import IngestionPayloadError
from catalog_sync.services.trigger_queue import SyncTrigger, TriggerQueue
from catalog_sync.session_factory import session_factory as default_session_factory
from catalog_sync.settings import settings
from catalog_sync.timeutil import utcnow

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    updated_product_ids: list[str] = field(default_factory=list)
    skipped_external_ids: list[str] = field(default_factory=list)
    enqueued_catalog_ids: list[str] = field(default_factory=list)


def parse_inventory_payload(payload: Any) -> InventoryUpdatePayload:
    if isinstance(payload, InventoryUpdatePayload):
        return payload
    if not isinstance(payload, dict):
        raise IngestionPayloadError("Inventory update payload must be an object", payload=payload)
    try:
        return InventoryUpdatePayload.model_validate(payload)
    except PydanticValidationError as e:
        raise IngestionPayloadError(f"Malformed inventory update payload: {e.errors()}", payload=payload) from e


class ChangeIngestionService:
    def __init__(
        self,
        queue: Optional[TriggerQueue] = None,
        session_factory: Callable[[], Session] = default_session_factory,
    ):
        self.queue = queue or TriggerQueue()
        self.session_factory = session_factory

    def accept_event(self, session: Session, payload: Any, source: Optional[str] = None):
        """이벤트를 검증한 뒤 큐에 적재한다. 실제 반영은 큐 컨슈머가 process() 로 수행한다."""
        update = parse_inventory_payload(payload)
        trigger = SyncTrigger(
            merchantId=update.merchantId,
            triggerType=TriggerType.WEBHOOK_PRODUCT_UPDATE.value,
            webhookPayload=update.model_dump(exclude_none=True),
            source=source,
        )
        message_id = self.queue.send(session, trigger, group_key=f"ingest:{update.merchantId}")
        logger.info(
            f"[INGEST] Accepted {len(update.productUpdates)} product updates from {source or 'unknown'} "
            f"for merchant {update.merchantId} as message {message_id}"
        )
        return message_id, update

    def process(self, payload: Any, source: Optional[str] = None, session: Optional[Session] = None) -> IngestionResult:
        update = parse_inventory_payload(payload)
        if session is not None:
            return self._process(session, update, source)

        with self.session_factory() as own_session:
            result = self._process(own_session, update, source)
            own_session.commit()
            return result

    def _process(self, session: Session, update: InventoryUpdatePayload, source: Optional[str]) -> IngestionResult:
        result = IngestionResult()
        merchant_id = update.merchantId
        if not update.productUpdates:
            logger.warning(f"[INGEST] Event from {source or 'unknown'} for merchant {merchant_id} has no product updates")
            return result

        external_ids = [u.externalId for u in update.productUpdates]
        products = session.scalars(
            select(Product).where(Product.merchant_id == merchant_id, Product.id.in_(external_ids))
        ).all()
        by_id = {p.id: p for p in products}

        now = utcnow()
        for product_update in update.productUpdates:
            product = by_id.get(product_update.externalId)
            if product is None:
                logger.warning(
                    f"[INGEST] Product {product_update.externalId} not found for merchant {merchant_id}; skipping"
                )
                result.skipped_external_ids.append(product_update.externalId)
                continue
            if product_update.stock is not None:
                product.stock_level = product_update.stock
            if product_update.availability:
                product.availability = product_update.availability
            product.source_updated_at = now
            product.mark_stock_observed(now)
            if product.id not in result.updated_product_ids:
                result.updated_product_ids.append(product.id)

        if not result.updated_product_ids:
            logger.info(f"[INGEST] No matching products for merchant {merchant_id}")
            return result

        session.flush()
        logger.info(f"[INGEST] Updated {len(result.updated_product_ids)} products for merchant {merchant_id}")

        if not settings.enable_realtime_ingestion_processing:
            logger.info("[INGEST] Realtime ingestion processing is disabled. Skipping sync triggers.")
            return result

        catalogs = session.scalars(
            select(Catalog)
            .join(CatalogProductItem, CatalogProductItem.catalog_id == Catalog.id)
            .where(Catalog.merchant_id == merchant_id)
            .where(CatalogProductItem.product_id.in_(result.updated_product_ids))
            .distinct()
        ).all()

        for catalog in catalogs:
            if not catalog.ad_platform:
                continue
            trigger = SyncTrigger(
                merchantId=catalog.merchant_id,
                triggerType=TriggerType.WEBHOOK_PRODUCT_UPDATE.value,
                catalogId=str(catalog.id),
                adPlatform=catalog.ad_platform.value,
                source=source,
            )
            try:
                with session.begin_nested():
                    self.queue.send(session, trigger)
                result.enqueued_catalog_ids.append(str(catalog.id))
            except Exception as e:
                logger.error(f"[INGEST] Failed to enqueue sync trigger for catalog {catalog.id}: {e}")

        logger.info(f"[INGEST] Enqueued {len(result.enqueued_catalog_ids)} sync triggers for merchant {merchant_id}")
        return result
