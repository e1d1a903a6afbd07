"""
동기화 트리거 큐 컨슈머

메시지 종류:
- WEBHOOK_PRODUCT_UPDATE + webhookPayload: 재고 변경 인제스트 (추가 트리거를 적재할 수 있음)
- WEBHOOK_PRODUCT_UPDATE / MANUAL_SYNC / SCHEDULED_SYNC_JOB_ENQUEUED: 오케스트레이터 실행

처리 실패는 ack 하지 않고 다시 던집니다. 재전달/데드레터는 큐의 정책을 따릅니다.
"""
import json
import logging
import threading
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from catalog_sync.enums import TriggerType
from catalog_sync.services.change_ingestion import ChangeIngestionService
from catalog_sync.services.exceptions import IngestionPayloadError
from catalog_sync.services.sync_orchestrator import SyncOrchestrator
from catalog_sync.services.trigger_queue import ReceivedMessage, TriggerQueue
from catalog_sync.session_factory import session_factory as default_session_factory
from catalog_sync.settings import settings

logger = logging.getLogger(__name__)

SYNC_TRIGGERS = {
    TriggerType.MANUAL_SYNC.value,
    TriggerType.SCHEDULED_SYNC_JOB_ENQUEUED.value,
    TriggerType.WEBHOOK_PRODUCT_UPDATE.value,
}


def parse_message_body(body: Optional[str]) -> dict[str, Any]:
    if not body:
        raise IngestionPayloadError("Trigger message body is empty", payload=body)
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise IngestionPayloadError(f"Trigger message body is not valid JSON: {e}", payload=body) from e
    if not isinstance(payload, dict):
        raise IngestionPayloadError("Trigger message body must be an object", payload=body)

    trigger_type = payload.get("triggerType")
    if not payload.get("merchantId") or not trigger_type:
        raise IngestionPayloadError("Trigger message is missing merchantId or triggerType", payload=payload)
    if trigger_type not in SYNC_TRIGGERS:
        raise IngestionPayloadError(f"Unknown triggerType: {trigger_type}", payload=payload)

    is_ingestion = trigger_type == TriggerType.WEBHOOK_PRODUCT_UPDATE.value and payload.get("webhookPayload")
    if not is_ingestion and (not payload.get("catalogId") or not payload.get("adPlatform")):
        raise IngestionPayloadError("Sync trigger is missing catalogId or adPlatform", payload=payload)
    return payload


class TriggerQueueConsumer:
    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        ingestion: ChangeIngestionService,
        queue: Optional[TriggerQueue] = None,
        session_factory: Callable[[], Session] = default_session_factory,
        batch_size: Optional[int] = None,
    ):
        self.orchestrator = orchestrator
        self.ingestion = ingestion
        self.queue = queue or TriggerQueue()
        self.session_factory = session_factory
        self.batch_size = settings.queue_batch_size if batch_size is None else batch_size

    def handle_message(self, body: Optional[str]) -> None:
        payload = parse_message_body(body)
        trigger_type = payload["triggerType"]

        webhook_payload = payload.get("webhookPayload")
        if trigger_type == TriggerType.WEBHOOK_PRODUCT_UPDATE.value and webhook_payload:
            if isinstance(webhook_payload, dict) and "merchantId" not in webhook_payload:
                webhook_payload = {**webhook_payload, "merchantId": payload["merchantId"]}
            logger.info(f"[QUEUE] Processing inventory update for merchant {payload['merchantId']}")
            self.ingestion.process(webhook_payload, source=payload.get("source"))
            return

        logger.info(
            f"[QUEUE] Initiating sync for catalog {payload['catalogId']} "
            f"on {payload['adPlatform']} due to {trigger_type}"
        )
        self.orchestrator.run_sync(
            payload["catalogId"],
            payload["merchantId"],
            payload["adPlatform"],
            trigger_type=trigger_type,
        )

    def _receive(self) -> list[ReceivedMessage]:
        with self.session_factory() as session:
            messages = self.queue.receive(session, self.batch_size)
            session.commit()
            return messages

    def _ack(self, message: ReceivedMessage) -> None:
        with self.session_factory() as session:
            self.queue.ack(session, message.id)
            session.commit()

    def _record_failure(self, message: ReceivedMessage, error: Exception) -> None:
        try:
            with self.session_factory() as session:
                self.queue.record_failure(session, message.id, f"{error.__class__.__name__}: {error}")
                session.commit()
        except Exception as e:
            logger.error(f"[QUEUE] Failed to record failure for message {message.id}: {e}")

    def poll_once(self) -> int:
        """한 배치를 처리하고 ack 한 메시지 수를 반환한다.

        배치의 모든 메시지를 처리한 뒤 첫 번째 처리 실패를 다시 던진다.
        실패한 메시지만 ack 되지 않고 visibility timeout 후 재전달된다.
        """
        processed = 0
        first_error: Optional[Exception] = None
        for message in self._receive():
            logger.info(f"[QUEUE] Received message {message.id} (receive #{message.receive_count})")
            try:
                self.handle_message(message.body)
            except Exception as e:
                logger.error(f"[QUEUE] Error processing message {message.id}: {e}", exc_info=True)
                self._record_failure(message, e)
                if first_error is None:
                    first_error = e
                continue
            self._ack(message)
            processed += 1
        if first_error is not None:
            raise first_error
        return processed

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        stop_event = stop_event or threading.Event()
        logger.info("[QUEUE] Trigger consumer started")
        while not stop_event.is_set():
            try:
                processed = self.poll_once()
            except Exception:
                # 메시지는 ack 되지 않았으므로 visibility timeout 후 재전달된다
                processed = 0
            if processed == 0:
                stop_event.wait(settings.queue_poll_interval_seconds)
        logger.info("[QUEUE] Trigger consumer stopped")
