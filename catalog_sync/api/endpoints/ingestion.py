from typing import Any

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from catalog_sync.db import get_session
from catalog_sync.dependencies import get_ingestion_service
from catalog_sync.schemas.ingestion import IngestionAccepted
from catalog_sync.services.change_ingestion import ChangeIngestionService

router = APIRouter()


@router.post("/inventory/{source}", response_model=IngestionAccepted, status_code=status.HTTP_202_ACCEPTED)
def receive_inventory_update(
    source: str,
    payload: Any = Body(...),
    session: Session = Depends(get_session),
    service: ChangeIngestionService = Depends(get_ingestion_service),
):
    """
    재고 소스(웹훅)로부터 재고 변경 이벤트를 받는다.
    형식만 검증해 큐에 적재하고, 상품 반영과 동기화 트리거는 워커가 비동기로 처리한다.
    """
    message_id, update = service.accept_event(session, payload, source=source)
    return {"status": "accepted", "messageId": message_id, "productUpdates": len(update.productUpdates)}
