from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, model_validator

from catalog_sync.enums import AdPlatform, FeedFormat, OutOfStockHandling, SyncStatus


class FeedSettingsIn(BaseModel):
    format: FeedFormat
    customFileName: Optional[str] = Field(default=None, max_length=200)


class OutOfStockRuleIn(BaseModel):
    handling: OutOfStockHandling
    temporaryAllowanceDays: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def validate_allowance(self) -> "OutOfStockRuleIn":
        if self.handling == OutOfStockHandling.ALLOW_TEMPORARILY and self.temporaryAllowanceDays is None:
            raise ValueError("ALLOW_TEMPORARILY 정책에는 temporaryAllowanceDays가 필요합니다.")
        return self


class ProductOverrideIn(BaseModel):
    customTitle: Optional[str] = Field(default=None, max_length=255)
    customDescription: Optional[str] = None


class CatalogCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    adPlatform: AdPlatform
    feedSettings: FeedSettingsIn
    outOfStockRule: OutOfStockRuleIn
    productIds: List[str] = []
    syncEnabled: bool = True
    syncScheduleCron: Optional[str] = None


class CatalogUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    adPlatform: Optional[AdPlatform] = None
    feedSettings: Optional[FeedSettingsIn] = None
    outOfStockRule: Optional[OutOfStockRuleIn] = None
    productIds: Optional[List[str]] = None
    productOverrides: Dict[str, ProductOverrideIn] = {}
    syncEnabled: Optional[bool] = None
    syncScheduleCron: Optional[str] = None


class CatalogItemIn(BaseModel):
    productId: str = Field(min_length=1)
    customTitle: Optional[str] = Field(default=None, max_length=255)
    customDescription: Optional[str] = None


class CatalogItemResponse(BaseModel):
    id: uuid.UUID
    product_id: str
    custom_title: Optional[str] = None
    custom_description: Optional[str] = None
    added_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FeedSettingsOut(BaseModel):
    format: FeedFormat
    custom_file_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OutOfStockRuleOut(BaseModel):
    handling: OutOfStockHandling
    temporary_allowance_days: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class CatalogResponse(BaseModel):
    id: uuid.UUID
    merchant_id: str
    name: str
    description: Optional[str] = None
    ad_platform: AdPlatform
    feed_settings: FeedSettingsOut
    out_of_stock_rule: OutOfStockRuleOut
    sync_enabled: bool
    sync_schedule_cron: Optional[str] = None
    next_scheduled_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    product_items: List[CatalogItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class FeedGenerateIn(BaseModel):
    format: Optional[FeedFormat] = None


class FeedUrlResponse(BaseModel):
    feedUrl: str


class SyncTriggerIn(BaseModel):
    platform: Optional[AdPlatform] = None


class SyncAccepted(BaseModel):
    status: str = "accepted"
    messageId: uuid.UUID


class SyncStatusResponse(BaseModel):
    platform: AdPlatform
    lastSyncStartedAt: Optional[datetime] = None
    lastSyncEndedAt: Optional[datetime] = None
    status: SyncStatus
    errorMessage: Optional[str] = None


class SyncHistoryResponse(BaseModel):
    id: uuid.UUID
    catalog_id: uuid.UUID
    ad_platform: AdPlatform
    status: SyncStatus
    trigger_type: Optional[str] = None
    sync_started_at: datetime
    sync_ended_at: Optional[datetime] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    details: Optional[dict] = None
    retries: int

    model_config = ConfigDict(from_attributes=True)


class ProductUpsertIn(BaseModel):
    id: str = Field(min_length=1)
    title: str
    description: str = ""
    price: Decimal = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    availability: str = "in_stock"
    stockLevel: int = 0
    imageUrl: str = ""
    productUrl: str = ""
    brand: Optional[str] = None
    gtin: Optional[str] = None
    mpn: Optional[str] = None
    category: Optional[str] = None


class ProductUpsertResult(BaseModel):
    created: int
    updated: int
