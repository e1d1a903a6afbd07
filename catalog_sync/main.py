import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from catalog_sync.api.endpoints import catalogs, health, ingestion, products
from catalog_sync.services.exceptions import (
    CatalogSyncError,
    CatalogSyncInProgressError,
    ConfigurationError,
    FeedGenerationError,
    IngestionPayloadError,
    NotFoundError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="catalog-sync")

app.include_router(catalogs.router, prefix="/api/catalogs", tags=["Catalogs"])
app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(ingestion.router, prefix="/api/ingestion", tags=["Ingestion"])
app.include_router(health.router, prefix="/api/health", tags=["Health"])

# 도메인 예외 → HTTP 상태 코드
ERROR_STATUS_CODES: list[tuple[type[CatalogSyncError], int]] = [
    (ValidationError, 400),
    (IngestionPayloadError, 400),
    (NotFoundError, 404),
    (CatalogSyncInProgressError, 409),
    (ConfigurationError, 422),
    (FeedGenerationError, 422),
    (StorageError, 502),
]


def status_code_for(exc: CatalogSyncError) -> int:
    for exc_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


@app.exception_handler(CatalogSyncError)
async def handle_catalog_sync_error(request: Request, exc: CatalogSyncError):
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    body = exc.to_dict()
    # 원본 페이로드는 응답에 되돌려주지 않는다
    body["context"] = {k: v for k, v in body["context"].items() if k != "payload"}
    return JSONResponse(status_code=status_code, content={"detail": body})
