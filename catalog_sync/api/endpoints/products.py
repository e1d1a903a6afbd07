from typing import List

from fastapi import APIRouter, Depends

from catalog_sync.dependencies import get_catalog_service, get_merchant_id
from catalog_sync.schemas.catalog import ProductUpsertIn, ProductUpsertResult
from catalog_sync.services.catalog_service import CatalogService

router = APIRouter()


@router.post("/bulk-upsert", response_model=ProductUpsertResult)
def bulk_upsert_products(
    payload: List[ProductUpsertIn],
    merchant_id: str = Depends(get_merchant_id),
    service: CatalogService = Depends(get_catalog_service),
):
    """외부 재고 소스의 상품을 일괄 생성/갱신한다."""
    return service.upsert_products(merchant_id, payload)
