from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import uuid

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, composite, mapped_column, relationship
from sqlalchemy.sql import func

from catalog_sync.enums import AdPlatform, FeedFormat, OutOfStockHandling, SyncStatus
from catalog_sync.timeutil import utcnow


class CatalogBase(DeclarativeBase):
    pass


def _enum_column(enum_cls):
    return SAEnum(enum_cls, native_enum=False, length=40, validate_strings=True)


@dataclass(frozen=True)
class FeedSettings:
    """카탈로그에 값으로 포함되는 피드 설정 (독립 식별자 없음)"""
    format: FeedFormat
    custom_file_name: str | None = None


@dataclass(frozen=True)
class OutOfStockRule:
    """카탈로그에 값으로 포함되는 품절 처리 규칙"""
    handling: OutOfStockHandling
    temporary_allowance_days: int | None = None


class Catalog(CatalogBase):
    """
    카탈로그 애그리거트 루트.

    상품 항목(CatalogProductItem)의 추가/삭제는 반드시 이 클래스를 통해서만 수행한다.
    """
    __tablename__ = "catalogs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    merchant_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    ad_platform: Mapped[AdPlatform] = mapped_column(_enum_column(AdPlatform), nullable=False)

    feed_settings: Mapped[FeedSettings] = composite(
        mapped_column("feed_format", _enum_column(FeedFormat), nullable=False),
        mapped_column("feed_custom_file_name", String(255), nullable=True),
    )
    out_of_stock_rule: Mapped[OutOfStockRule] = composite(
        mapped_column("oos_handling", _enum_column(OutOfStockHandling), nullable=False),
        mapped_column("oos_temporary_allowance_days", Integer, nullable=True),
    )

    # 스케줄 동기화
    sync_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sync_schedule_cron: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_scheduled_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # 카탈로그 단위 동기화 임대(lease)
    sync_lease_owner: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    product_items: Mapped[list["CatalogProductItem"]] = relationship(
        "CatalogProductItem",
        back_populates="catalog",
        cascade="all, delete-orphan",
        order_by="CatalogProductItem.added_at",
    )
    sync_histories: Mapped[list["CatalogSyncHistory"]] = relationship(
        "CatalogSyncHistory",
        back_populates="catalog",
        cascade="all, delete-orphan",
    )

    def add_product_item(
        self,
        product_id: str,
        custom_title: str | None = None,
        custom_description: str | None = None,
    ) -> "CatalogProductItem":
        """상품을 추가한다. 이미 있으면 새 행을 만들지 않고 오버라이드만 갱신한다."""
        for item in self.product_items:
            if item.product_id == product_id:
                item.custom_title = custom_title
                item.custom_description = custom_description
                item.added_at = utcnow()
                return item

        item = CatalogProductItem(
            product_id=product_id,
            custom_title=custom_title,
            custom_description=custom_description,
            added_at=utcnow(),
        )
        self.product_items.append(item)
        return item

    def remove_product_item(self, product_id: str) -> bool:
        for item in list(self.product_items):
            if item.product_id == product_id:
                self.product_items.remove(item)
                return True
        return False

    def update_details(
        self,
        name: str | None = None,
        description: str | None = None,
        ad_platform: AdPlatform | None = None,
    ) -> None:
        if name is not None:
            self.name = name
        if description is not None:
            self.description = description
        if ad_platform is not None:
            self.ad_platform = ad_platform

    def update_feed_settings(self, new_settings: FeedSettings) -> None:
        self.feed_settings = new_settings

    def update_out_of_stock_rule(self, new_rule: OutOfStockRule) -> None:
        self.out_of_stock_rule = new_rule

    def overrides_by_product_id(self) -> dict[str, "CatalogProductItem"]:
        return {item.product_id: item for item in self.product_items}


class CatalogProductItem(CatalogBase):
    __tablename__ = "catalog_product_items"
    __table_args__ = (
        UniqueConstraint("catalog_id", "product_id", name="uq_catalog_product_items_catalog_product"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    catalog_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("catalogs.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    custom_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    custom_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    catalog: Mapped["Catalog"] = relationship("Catalog", back_populates="product_items")


class Product(CatalogBase):
    """
    외부 재고 소스가 소유하는 상품.
    동기화 엔진은 생성하지 않고 인제스트/일괄 임포트로만 upsert 한다.
    """
    __tablename__ = "catalog_products"

    id: Mapped[str] = mapped_column(Text, primary_key=True)  # 외부 소스 상품 ID
    merchant_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    availability: Mapped[str] = mapped_column(Text, nullable=False, default="in_stock")  # in_stock, out_of_stock, preorder
    stock_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    image_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    product_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    brand: Mapped[str | None] = mapped_column(Text, nullable=True)
    gtin: Mapped[str | None] = mapped_column(Text, nullable=True)
    mpn: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    out_of_stock_since: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="품절이 처음 감지된 시점 (재입고 시 초기화)",
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_out_of_stock(self) -> bool:
        return (self.stock_level or 0) <= 0 or self.availability == "out_of_stock"

    def mark_stock_observed(self, observed_at: datetime) -> None:
        """재고 상태 관측 시 out_of_stock_since 를 갱신한다."""
        if self.is_out_of_stock:
            if self.out_of_stock_since is None:
                self.out_of_stock_since = observed_at
        else:
            self.out_of_stock_since = None


class CatalogSyncHistory(CatalogBase):
    """동기화 시도 1건의 감사 기록. 시작 시 생성되고 종료 상태로 한 번만 갱신된다."""
    __tablename__ = "catalog_sync_history"
    __table_args__ = (
        Index("ix_catalog_sync_history_catalog_platform_started", "catalog_id", "ad_platform", "sync_started_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    catalog_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("catalogs.id", ondelete="CASCADE"), nullable=False
    )
    ad_platform: Mapped[AdPlatform] = mapped_column(_enum_column(AdPlatform), nullable=False)
    status: Mapped[SyncStatus] = mapped_column(_enum_column(SyncStatus), nullable=False)
    trigger_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    sync_ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    retries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    catalog: Mapped["Catalog"] = relationship("Catalog", back_populates="sync_histories")


class CatalogSyncMessage(CatalogBase):
    """
    동기화 트리거 전송용 큐 테이블.
    ack 시 행을 삭제하고, 수신 횟수가 한도를 넘으면 dead_letter 로 격리한다.
    """
    __tablename__ = "catalog_sync_messages"
    __table_args__ = (
        Index("ix_catalog_sync_messages_status_visible", "status", "visible_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    body: Mapped[str] = mapped_column(Text, nullable=False)  # 원본 JSON 문자열 (잘못된 메시지도 그대로 보존)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="queued")  # queued, dead_letter
    group_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    receive_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    visible_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
