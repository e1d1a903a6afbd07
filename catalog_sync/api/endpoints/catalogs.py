from typing import List

from fastapi import APIRouter, Depends, Query, Response, status

from catalog_sync.dependencies import get_catalog_service, get_merchant_id
from catalog_sync.enums import AdPlatform
from catalog_sync.schemas.catalog import (
    CatalogCreate,
    CatalogItemIn,
    CatalogItemResponse,
    CatalogResponse,
    CatalogUpdate,
    FeedGenerateIn,
    FeedUrlResponse,
    SyncAccepted,
    SyncHistoryResponse,
    SyncStatusResponse,
    SyncTriggerIn,
)
from catalog_sync.services.catalog_service import CatalogService

router = APIRouter()


@router.post("", response_model=CatalogResponse, status_code=status.HTTP_201_CREATED)
def create_catalog(
    payload: CatalogCreate,
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_catalog(merchant_id, payload)


@router.get("", response_model=List[CatalogResponse])
def list_catalogs(
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.list_catalogs(merchant_id)


@router.get("/{catalog_id}", response_model=CatalogResponse)
def get_catalog(
    catalog_id: str,
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.get_catalog(merchant_id, catalog_id)


@router.patch("/{catalog_id}", response_model=CatalogResponse)
def update_catalog(
    catalog_id: str,
    payload: CatalogUpdate,
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_catalog(merchant_id, catalog_id, payload)


@router.delete("/{catalog_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_catalog(
    catalog_id: str,
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    service.delete_catalog(merchant_id, catalog_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{catalog_id}/items", response_model=CatalogItemResponse)
def add_catalog_item(
    catalog_id: str,
    payload: CatalogItemIn,
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    """같은 상품을 다시 추가하면 기존 항목의 오버라이드만 갱신된다."""
    return service.add_product(merchant_id, catalog_id, payload)


@router.delete("/{catalog_id}/items/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_catalog_item(
    catalog_id: str,
    product_id: str,
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    service.remove_product(merchant_id, catalog_id, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{catalog_id}/feed", response_model=FeedUrlResponse)
def generate_feed(
    catalog_id: str,
    payload: FeedGenerateIn | None = None,
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    feed_format = payload.format if payload else None
    return {"feedUrl": service.generate_feed(merchant_id, catalog_id, feed_format)}


@router.post("/{catalog_id}/sync", response_model=SyncAccepted, status_code=status.HTTP_202_ACCEPTED)
def trigger_sync(
    catalog_id: str,
    payload: SyncTriggerIn | None = None,
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    platform = payload.platform if payload else None
    message_id = service.trigger_sync(merchant_id, catalog_id, platform)
    return {"status": "accepted", "messageId": message_id}


@router.get("/{catalog_id}/sync-status", response_model=List[SyncStatusResponse])
def get_sync_status(
    catalog_id: str,
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.get_sync_status(merchant_id, catalog_id)


@router.get("/{catalog_id}/sync-history", response_model=List[SyncHistoryResponse])
def get_sync_history(
    catalog_id: str,
    platform: AdPlatform | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.get_sync_history(merchant_id, catalog_id, platform, limit)
