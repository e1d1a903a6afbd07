"""
동기화 트리거 큐 (DB 테이블 기반 전송)

- send: 메시지를 queued 상태로 적재
- receive: 보이는(visible_at <= now) 메시지를 가져오고 visibility timeout 동안 숨김
- ack: 처리 완료된 메시지 삭제
- record_failure: 처리 실패 기록 (메시지는 visibility timeout 후 재전달)
수신 횟수가 queue_max_receive_count 를 넘은 메시지는 dead_letter 로 격리합니다.
"""
from dataclasses import asdict, dataclass
from datetime import timedelta
import json
import logging
from typing import Any, Optional
import uuid

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from catalog_sync.models import CatalogSyncMessage
from catalog_sync.settings import settings
from catalog_sync.timeutil import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SyncTrigger:
    """트리거 메시지 본문"""
    merchantId: str
    triggerType: str
    catalogId: Optional[str] = None
    adPlatform: Optional[str] = None
    webhookPayload: Optional[dict[str, Any]] = None
    source: Optional[str] = None

    def to_json(self) -> str:
        body = {k: v for k, v in asdict(self).items() if v is not None}
        return json.dumps(body, ensure_ascii=False)


@dataclass
class ReceivedMessage:
    id: uuid.UUID
    body: str
    receive_count: int


class TriggerQueue:
    def __init__(
        self,
        visibility_timeout_seconds: Optional[int] = None,
        max_receive_count: Optional[int] = None,
    ):
        self.visibility_timeout_seconds = (
            settings.queue_visibility_timeout_seconds
            if visibility_timeout_seconds is None
            else visibility_timeout_seconds
        )
        self.max_receive_count = settings.queue_max_receive_count if max_receive_count is None else max_receive_count

    def send(self, session: Session, trigger: SyncTrigger | str, group_key: Optional[str] = None) -> uuid.UUID:
        body = trigger if isinstance(trigger, str) else trigger.to_json()
        if group_key is None and isinstance(trigger, SyncTrigger):
            group_key = trigger.catalogId
        message = CatalogSyncMessage(body=body, status="queued", group_key=group_key, visible_at=utcnow())
        session.add(message)
        session.flush()
        logger.info(f"[QUEUE] Enqueued message {message.id} (group={group_key})")
        return message.id

    def receive(self, session: Session, max_messages: int = 1) -> list[ReceivedMessage]:
        now = utcnow()
        stmt = (
            select(CatalogSyncMessage)
            .where(CatalogSyncMessage.status == "queued")
            .where(CatalogSyncMessage.visible_at <= now)
            .order_by(CatalogSyncMessage.created_at, CatalogSyncMessage.id)
            .limit(max_messages)
            .with_for_update(skip_locked=True)
        )
        received: list[ReceivedMessage] = []
        for message in session.scalars(stmt).all():
            if message.receive_count >= self.max_receive_count:
                message.status = "dead_letter"
                logger.error(
                    f"[QUEUE] Message {message.id} moved to dead letter after {message.receive_count} receives: "
                    f"{message.last_error}"
                )
                continue
            message.receive_count += 1
            message.visible_at = now + timedelta(seconds=self.visibility_timeout_seconds)
            received.append(ReceivedMessage(id=message.id, body=message.body, receive_count=message.receive_count))
        session.flush()
        return received

    def ack(self, session: Session, message_id: uuid.UUID) -> None:
        session.execute(delete(CatalogSyncMessage).where(CatalogSyncMessage.id == message_id))

    def record_failure(self, session: Session, message_id: uuid.UUID, error: str) -> None:
        message = session.get(CatalogSyncMessage, message_id)
        if message is not None:
            message.last_error = error[:2000]

    def count(self, session: Session, status: str = "queued") -> int:
        return len(session.scalars(select(CatalogSyncMessage.id).where(CatalogSyncMessage.status == status)).all())
