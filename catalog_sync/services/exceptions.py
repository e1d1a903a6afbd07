"""
Catalog Sync Exception Classes

카탈로그 동기화 엔진의 구조화된 에러 분류
"""
from typing import Optional, Dict, Any


class CatalogSyncError(Exception):
    """
    Base exception for all catalog sync errors

    Attributes:
        message: 에러 메시지
        error_code: 에러 코드
        context: 추가 컨텍스트 정보
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """에러 정보를 딕셔너리로 변환"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class ValidationError(CatalogSyncError):
    """요청 값 검증 실패"""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, error_code="VALIDATION_ERROR", context={"field": field, **kwargs})
        self.field = field


class NotFoundError(CatalogSyncError):
    """대상이 없거나 요청한 가맹점 소유가 아님"""

    def __init__(self, message: str, resource: Optional[str] = None, resource_id: Optional[str] = None):
        super().__init__(
            message,
            error_code="NOT_FOUND",
            context={"resource": resource, "resource_id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class CatalogNotFoundError(NotFoundError):
    def __init__(self, catalog_id: Any):
        super().__init__(f"Catalog {catalog_id} not found", resource="catalog", resource_id=str(catalog_id))


class FeedGenerationError(CatalogSyncError):
    """
    피드 렌더링 실패 (지원하지 않는 포맷, 필수 필드 누락 등)

    Attributes:
        product_id: 문제가 된 상품 ID
    """

    def __init__(self, message: str, product_id: Optional[str] = None, feed_format: Optional[str] = None):
        super().__init__(
            message,
            error_code="FEED_GENERATION_ERROR",
            context={"product_id": product_id, "feed_format": feed_format},
        )
        self.product_id = product_id
        self.feed_format = feed_format


class DeliveryError(CatalogSyncError):
    """
    광고 플랫폼 전송 실패

    Attributes:
        is_transient: 재시도로 해결될 수 있는 오류인지 여부
        platform_error_code: 플랫폼이 반환한 오류 코드
    """

    def __init__(
        self,
        message: str,
        platform: Optional[str] = None,
        platform_error_code: Optional[str] = None,
        is_transient: bool = True,
        retries: int = 0,
    ):
        super().__init__(
            message,
            error_code="DELIVERY_ERROR",
            context={
                "platform": platform,
                "platform_error_code": platform_error_code,
                "is_transient": is_transient,
                "retries": retries,
            },
        )
        self.platform = platform
        self.platform_error_code = platform_error_code
        self.is_transient = is_transient
        self.retries = retries


class ConfigurationError(CatalogSyncError):
    """생성기/플랫폼 클라이언트/자격증명 등 설정 누락"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", context=kwargs)


class IngestionPayloadError(CatalogSyncError):
    """인바운드 재고 변경 이벤트 형식 오류"""

    def __init__(self, message: str, payload: Optional[Any] = None):
        super().__init__(message, error_code="INGESTION_PAYLOAD_ERROR", context={"payload": payload})
        self.payload = payload


class CatalogSyncInProgressError(CatalogSyncError):
    """다른 워커가 같은 카탈로그의 동기화 임대를 보유 중"""

    def __init__(self, catalog_id: Any, lease_owner: Optional[str] = None):
        super().__init__(
            f"Catalog {catalog_id} is already being synchronized",
            error_code="SYNC_IN_PROGRESS",
            context={"catalog_id": str(catalog_id), "lease_owner": lease_owner},
        )
        self.catalog_id = catalog_id


class StorageError(CatalogSyncError):
    """렌더링된 피드 저장 실패"""

    def __init__(self, message: str, file_name: Optional[str] = None):
        super().__init__(message, error_code="STORAGE_ERROR", context={"file_name": file_name})
        self.file_name = file_name
