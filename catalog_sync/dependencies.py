from functools import lru_cache

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from catalog_sync.db import get_session
from catalog_sync.services.catalog_service import CatalogService
from catalog_sync.services.change_ingestion import ChangeIngestionService
from catalog_sync.services.storage_service import FeedStorage, create_feed_storage
from catalog_sync.services.trigger_queue import TriggerQueue


@lru_cache
def get_trigger_queue() -> TriggerQueue:
    return TriggerQueue()


@lru_cache
def get_feed_storage() -> FeedStorage:
    return create_feed_storage()


def get_merchant_id(x_merchant_id: str | None = Header(default=None)) -> str:
    """인증은 상위 게이트웨이가 담당하고, 확인된 가맹점 ID 를 헤더로 전달받는다."""
    if not x_merchant_id or not x_merchant_id.strip():
        raise HTTPException(status_code=401, detail="X-Merchant-Id 헤더가 필요합니다.")
    return x_merchant_id.strip()


def get_catalog_service(
    session: Session = Depends(get_session),
    queue: TriggerQueue = Depends(get_trigger_queue),
    storage: FeedStorage = Depends(get_feed_storage),
) -> CatalogService:
    return CatalogService(session, queue=queue, storage=storage)


def get_ingestion_service(queue: TriggerQueue = Depends(get_trigger_queue)) -> ChangeIngestionService:
    return ChangeIngestionService(queue=queue)
