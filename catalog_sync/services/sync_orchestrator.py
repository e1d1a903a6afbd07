"""
카탈로그 동기화 오케스트레이터

스케줄/큐/수동 트리거가 모두 이 진입점(run_sync)으로 모입니다.

흐름:
    1. 가맹점 소유 카탈로그 조회 (없으면 NotFound, 이력 미기록)
    2. 카탈로그 임대(lease) 획득 (보유 중이면 CatalogSyncInProgressError)
    3. 이력 PENDING → IN_PROGRESS
    4. 품절 필터 → 피드 렌더링 → 저장 → 플랫폼 전송
    5. 이력 종료 (SUCCESS / PARTIAL_SUCCESS / FAILED / QUARANTINED)
    6. 가맹점 알림 (실패해도 무시)
    7. 임대 해제
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import os
import socket
import time
from typing import Any, Callable, Optional
import uuid

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from catalog_sync.enums import AdPlatform, SyncStatus, TriggerType
from catalog_sync.models import Catalog, CatalogSyncHistory, Product
from catalog_sync.services.exceptions import (
    CatalogNotFoundError,
    CatalogSyncError,
    CatalogSyncInProgressError,
    ValidationError,
)
from catalog_sync.services.feeds.base import FeedProduct, build_feed_file_name, build_feed_products
from catalog_sync.services.feeds.registry import get_feed_generator
from catalog_sync.services.notification_service import MerchantNotifier
from catalog_sync.services.out_of_stock import apply_out_of_stock_rule
from catalog_sync.services.platforms.base import AdPlatformClient
from catalog_sync.services.platforms.delivery import DeliveryOutcome, PlatformDeliveryAdapter
from catalog_sync.services.platforms.http_client import build_platform_clients, get_platform_client
from catalog_sync.services.storage_service import FeedStorage, create_feed_storage
from catalog_sync.session_factory import session_factory as default_session_factory
from catalog_sync.settings import settings
from catalog_sync.timeutil import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    history_id: uuid.UUID
    status: SyncStatus
    retries: int = 0
    feed_url: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class RenderedFeed:
    content: str
    file_name: str
    content_type: str
    item_count: int


def parse_catalog_id(catalog_id: Any) -> uuid.UUID:
    if isinstance(catalog_id, uuid.UUID):
        return catalog_id
    try:
        return uuid.UUID(str(catalog_id))
    except (ValueError, TypeError):
        raise CatalogNotFoundError(catalog_id)


def load_owned_catalog(session: Session, catalog_id: Any, merchant_id: str) -> Catalog:
    catalog = session.scalars(
        select(Catalog).where(Catalog.id == parse_catalog_id(catalog_id), Catalog.merchant_id == merchant_id)
    ).first()
    if catalog is None:
        raise CatalogNotFoundError(catalog_id)
    return catalog


def resolve_feed_products(session: Session, catalog: Catalog) -> list[FeedProduct]:
    """카탈로그 항목 순서대로 상품을 조회하고 오버라이드를 적용한 사본을 만든다."""
    items = catalog.overrides_by_product_id()
    if not items:
        return []
    products = session.scalars(
        select(Product).where(Product.id.in_(list(items)), Product.merchant_id == catalog.merchant_id)
    ).all()
    by_id = {p.id: p for p in products}

    ordered: list[Product] = []
    for item in catalog.product_items:
        product = by_id.get(item.product_id)
        if product is None:
            logger.warning(f"[FEED] Catalog {catalog.id} references unknown product {item.product_id}; skipping")
            continue
        ordered.append(product)
    return build_feed_products(ordered, items)


def render_catalog_feed(
    session: Session,
    catalog: Catalog,
    feed_format=None,
    now: Optional[datetime] = None,
    generators=None,
) -> RenderedFeed:
    """품절 규칙 적용 후 피드를 렌더링한다. 저장된 상품은 변경하지 않는다."""
    generator = get_feed_generator(feed_format or catalog.feed_settings.format, generators)
    products = resolve_feed_products(session, catalog)
    survivors = apply_out_of_stock_rule(catalog.out_of_stock_rule, products, now=now)
    content = generator.generate(catalog, survivors)
    file_name = build_feed_file_name(catalog, generator, int(time.time() * 1000))
    logger.info(
        f"[FEED] Rendered {generator.format.value} feed for catalog {catalog.id}: "
        f"{len(survivors)}/{len(products)} items"
    )
    return RenderedFeed(
        content=content,
        file_name=file_name,
        content_type=generator.content_type,
        item_count=len(survivors),
    )


def _default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class SyncOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session] = default_session_factory,
        storage: Optional[FeedStorage] = None,
        platform_clients: Optional[dict[str, AdPlatformClient]] = None,
        delivery: Optional[PlatformDeliveryAdapter] = None,
        notifier: Optional[MerchantNotifier] = None,
        lease_seconds: Optional[int] = None,
        worker_id: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.storage = storage if storage is not None else create_feed_storage()
        self.platform_clients = platform_clients if platform_clients is not None else build_platform_clients()
        self.delivery = delivery or PlatformDeliveryAdapter()
        self.notifier = notifier or MerchantNotifier()
        self.lease_seconds = settings.catalog_sync_lease_seconds if lease_seconds is None else lease_seconds
        self.worker_id = worker_id or _default_worker_id()

    # ------------------------------------------------------------------
    # 임대
    # ------------------------------------------------------------------
    def _acquire_lease(self, session: Session, catalog_id: uuid.UUID) -> None:
        now = utcnow()
        result = session.execute(
            update(Catalog)
            .where(Catalog.id == catalog_id)
            .where(or_(Catalog.sync_lease_owner.is_(None), Catalog.sync_lease_expires_at < now))
            .values(
                sync_lease_owner=self.worker_id,
                sync_lease_expires_at=now + timedelta(seconds=self.lease_seconds),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            owner = session.scalar(select(Catalog.sync_lease_owner).where(Catalog.id == catalog_id))
            raise CatalogSyncInProgressError(catalog_id, lease_owner=owner)
        session.commit()

    def _release_lease(self, session: Session, catalog_id: uuid.UUID) -> None:
        try:
            session.rollback()
            session.execute(
                update(Catalog)
                .where(Catalog.id == catalog_id, Catalog.sync_lease_owner == self.worker_id)
                .values(sync_lease_owner=None, sync_lease_expires_at=None)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        except Exception as e:
            logger.error(f"[SYNC] Failed to release lease for catalog {catalog_id}: {e}")

    # ------------------------------------------------------------------
    # 이력
    # ------------------------------------------------------------------
    def _finalize(
        self,
        session: Session,
        history: CatalogSyncHistory,
        status: SyncStatus,
        retries: int = 0,
        error_message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        history.status = status
        history.sync_ended_at = utcnow()
        history.retries = retries
        history.error_message = error_message
        history.error_code = error_code
        history.details = details
        session.commit()

    def _should_quarantine(self, session: Session, history: CatalogSyncHistory) -> bool:
        if not settings.enable_auto_quarantine:
            return False
        needed = settings.auto_quarantine_failure_threshold - 1
        previous = session.scalars(
            select(CatalogSyncHistory.status)
            .where(
                CatalogSyncHistory.catalog_id == history.catalog_id,
                CatalogSyncHistory.ad_platform == history.ad_platform,
                CatalogSyncHistory.id != history.id,
                CatalogSyncHistory.sync_ended_at.is_not(None),
            )
            .order_by(CatalogSyncHistory.sync_started_at.desc())
            .limit(needed)
        ).all()
        failed = (SyncStatus.FAILED, SyncStatus.QUARANTINED)
        return len(previous) == needed and all(status in failed for status in previous)

    def _fail(
        self,
        session: Session,
        catalog: Catalog,
        history: CatalogSyncHistory,
        error_message: str,
        error_code: Optional[str],
        retries: int = 0,
        details: Optional[dict] = None,
    ) -> SyncStatus:
        status = SyncStatus.FAILED
        if self._should_quarantine(session, history):
            status = SyncStatus.QUARANTINED
            catalog.sync_enabled = False
            logger.error(
                f"[SYNC] Catalog {catalog.id} quarantined on {history.ad_platform.value} after "
                f"{settings.auto_quarantine_failure_threshold} consecutive failures; scheduled sync disabled"
            )
        self._finalize(session, history, status, retries, error_message, error_code, details)
        return status

    # ------------------------------------------------------------------
    # 진입점
    # ------------------------------------------------------------------
    def run_sync(
        self,
        catalog_id: Any,
        merchant_id: str,
        platform: Optional[AdPlatform | str] = None,
        trigger_type: TriggerType | str = TriggerType.MANUAL_SYNC,
    ) -> SyncResult:
        trigger = TriggerType(trigger_type).value
        with self.session_factory() as session:
            catalog = load_owned_catalog(session, catalog_id, merchant_id)
            try:
                target = AdPlatform(platform) if platform else catalog.ad_platform
            except ValueError:
                raise ValidationError(f"Unsupported ad platform: {platform}", field="adPlatform")
            if target != catalog.ad_platform:
                logger.warning(
                    f"[SYNC] Catalog {catalog.id} is configured for {catalog.ad_platform.value} "
                    f"but sync requested for {target.value}"
                )
            session.commit()

            self._acquire_lease(session, catalog.id)
            try:
                return self._run_attempt(session, catalog, target, trigger)
            finally:
                self._release_lease(session, catalog.id)

    def _run_attempt(self, session: Session, catalog: Catalog, platform: AdPlatform, trigger: str) -> SyncResult:
        history = CatalogSyncHistory(
            catalog_id=catalog.id,
            ad_platform=platform,
            status=SyncStatus.PENDING,
            trigger_type=trigger,
            sync_started_at=utcnow(),
            retries=0,
        )
        session.add(history)
        session.commit()
        logger.info(f"[SYNC] Starting sync {history.id} for catalog {catalog.id} on {platform.value} ({trigger})")

        history.status = SyncStatus.IN_PROGRESS
        session.commit()

        try:
            feed = render_catalog_feed(session, catalog)
            feed_url = self.storage.upload(
                feed.content,
                feed.file_name,
                feed.content_type,
                catalog.merchant_id,
                str(catalog.id),
            )
            client = get_platform_client(self.platform_clients, platform)
        except CatalogSyncError as e:
            logger.error(f"[SYNC] Sync {history.id} for catalog {catalog.id} failed before delivery: {e.message}")
            status = self._fail(session, catalog, history, e.message, e.error_code, details=e.to_dict()["context"])
            self._notify(catalog, platform, status, e.message, e.error_code)
            return SyncResult(history.id, status, error_message=e.message, error_code=e.error_code)
        except Exception as e:
            logger.error(f"[SYNC] Sync {history.id} for catalog {catalog.id} crashed: {e}", exc_info=True)
            session.rollback()
            self._fail(session, catalog, history, str(e), "INTERNAL_ERROR")
            raise

        credentials = settings.get_platform_credentials(platform.value)
        outcome = self.delivery.submit(client, feed_url, credentials, catalog.name)
        return self._record_outcome(session, catalog, history, platform, feed, feed_url, outcome)

    def _record_outcome(
        self,
        session: Session,
        catalog: Catalog,
        history: CatalogSyncHistory,
        platform: AdPlatform,
        feed: RenderedFeed,
        feed_url: str,
        outcome: DeliveryOutcome,
    ) -> SyncResult:
        details: dict[str, Any] = {
            "feedUrl": feed_url,
            "fileName": feed.file_name,
            "itemCount": feed.item_count,
            "platformResponse": outcome.response,
        }

        if outcome.success:
            rejected = outcome.response.get("rejectedItems") or outcome.response.get("itemErrors")
            status = SyncStatus.SUCCESS
            if rejected:
                status = SyncStatus.PARTIAL_SUCCESS
                details["rejectedItems"] = rejected
            self._finalize(session, history, status, outcome.retries_attempted, details=details)
            logger.info(
                f"[SYNC] Sync {history.id} finished {status.value} "
                f"(catalog={catalog.id}, retries={outcome.retries_attempted})"
            )
            self._notify(catalog, platform, status)
            return SyncResult(history.id, status, retries=outcome.retries_attempted, feed_url=feed_url)

        error = outcome.error
        details["isTransient"] = error.is_transient
        code = error.platform_error_code or error.error_code
        status = self._fail(session, catalog, history, error.message, code, outcome.retries_attempted, details)
        logger.error(
            f"[SYNC] Sync {history.id} failed after {outcome.retries_attempted} retries "
            f"(catalog={catalog.id}, code={code}): {error.message}"
        )
        self._notify(catalog, platform, status, error.message, code)
        return SyncResult(
            history.id,
            status,
            retries=outcome.retries_attempted,
            feed_url=feed_url,
            error_message=error.message,
            error_code=code,
        )

    def _notify(
        self,
        catalog: Catalog,
        platform: AdPlatform,
        status: SyncStatus,
        message: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        try:
            if status in (SyncStatus.SUCCESS, SyncStatus.PARTIAL_SUCCESS):
                self.notifier.notify_sync_success(catalog.merchant_id, catalog.name, platform.value)
            else:
                self.notifier.notify_sync_failure(
                    catalog.merchant_id, catalog.name, platform.value, message or status.value, code
                )
        except Exception as e:
            logger.error(f"[NOTIFY] Notification for catalog {catalog.id} failed: {e}")
