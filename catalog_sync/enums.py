"""
카탈로그 동기화 도메인 열거형
"""
from enum import Enum


class AdPlatform(str, Enum):
    """피드 전송 대상 광고 플랫폼"""
    GOOGLE_ADS = "GOOGLE_ADS"
    FACEBOOK_ADS = "FACEBOOK_ADS"
    TIKTOK_ADS = "TIKTOK_ADS"
    SNAPCHAT_ADS = "SNAPCHAT_ADS"


class FeedFormat(str, Enum):
    """피드 문서 포맷"""
    CSV = "CSV"
    XML = "XML"
    GOOGLE_MERCHANT_CENTER = "GOOGLE_MERCHANT_CENTER"


class OutOfStockHandling(str, Enum):
    """품절 상품 노출 정책"""
    EXCLUDE_FROM_FEED = "EXCLUDE_FROM_FEED"
    MARK_AS_OUT_OF_STOCK = "MARK_AS_OUT_OF_STOCK"
    ALLOW_TEMPORARILY = "ALLOW_TEMPORARILY"


class SyncStatus(str, Enum):
    """동기화 이력 상태"""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    QUARANTINED = "QUARANTINED"


TERMINAL_SYNC_STATUSES = frozenset({
    SyncStatus.SUCCESS,
    SyncStatus.FAILED,
    SyncStatus.PARTIAL_SUCCESS,
    SyncStatus.QUARANTINED,
})


class TriggerType(str, Enum):
    """동기화 트리거 사유"""
    MANUAL_SYNC = "MANUAL_SYNC"
    WEBHOOK_PRODUCT_UPDATE = "WEBHOOK_PRODUCT_UPDATE"
    SCHEDULED_SYNC_JOB_ENQUEUED = "SCHEDULED_SYNC_JOB_ENQUEUED"


OUT_OF_STOCK = "out_of_stock"
