"""
트리거 큐 / 컨슈머 테스트.
"""

import json
import threading
from unittest.mock import Mock

import pytest
from sqlalchemy import select

from catalog_sync.enums import TriggerType
from catalog_sync.models import CatalogSyncMessage
from catalog_sync.services.exceptions import IngestionPayloadError
from catalog_sync.services.queue_consumer import TriggerQueueConsumer, parse_message_body
from catalog_sync.services.trigger_queue import SyncTrigger, TriggerQueue
from catalog_sync.settings import settings


def _manual_trigger(catalog_id="c-1", platform="GOOGLE_ADS") -> SyncTrigger:
    return SyncTrigger(
        merchantId="m-1",
        triggerType=TriggerType.MANUAL_SYNC.value,
        catalogId=catalog_id,
        adPlatform=platform,
        source="api",
    )


@pytest.fixture
def queue() -> TriggerQueue:
    return TriggerQueue(visibility_timeout_seconds=0, max_receive_count=2)


@pytest.fixture
def orchestrator():
    return Mock()


@pytest.fixture
def ingestion():
    return Mock()


@pytest.fixture
def consumer(orchestrator, ingestion, queue, session_factory) -> TriggerQueueConsumer:
    return TriggerQueueConsumer(orchestrator, ingestion, queue=queue, session_factory=session_factory, batch_size=5)


def _send(session_factory, queue, trigger) -> object:
    with session_factory() as session:
        message_id = queue.send(session, trigger)
        session.commit()
        return message_id


def _rows(session_factory) -> list[CatalogSyncMessage]:
    with session_factory() as session:
        return list(session.scalars(select(CatalogSyncMessage)).all())


@pytest.mark.unit
class TestParseMessageBody:
    @pytest.mark.parametrize(
        "body",
        [
            None,
            "",
            "{not json",
            "[1, 2]",
            json.dumps({"triggerType": "MANUAL_SYNC"}),
            json.dumps({"merchantId": "m-1", "triggerType": "FULL_RESYNC", "catalogId": "c", "adPlatform": "X"}),
            json.dumps({"merchantId": "m-1", "triggerType": "MANUAL_SYNC", "catalogId": "c-1"}),
        ],
    )
    def test_malformed_bodies(self, body):
        with pytest.raises(IngestionPayloadError):
            parse_message_body(body)

    def test_ingestion_message_needs_no_catalog(self):
        body = json.dumps({
            "merchantId": "m-1",
            "triggerType": "WEBHOOK_PRODUCT_UPDATE",
            "webhookPayload": {"productUpdates": []},
        })
        assert parse_message_body(body)["merchantId"] == "m-1"


class TestHandleMessage:
    def test_manual_sync_routes_to_orchestrator(self, consumer, orchestrator, ingestion):
        consumer.handle_message(_manual_trigger().to_json())

        orchestrator.run_sync.assert_called_once_with(
            "c-1", "m-1", "GOOGLE_ADS", trigger_type=TriggerType.MANUAL_SYNC.value
        )
        ingestion.process.assert_not_called()

    def test_scheduled_and_webhook_sync_route_to_orchestrator(self, consumer, orchestrator):
        for trigger_type in (TriggerType.SCHEDULED_SYNC_JOB_ENQUEUED, TriggerType.WEBHOOK_PRODUCT_UPDATE):
            trigger = _manual_trigger()
            trigger.triggerType = trigger_type.value
            consumer.handle_message(trigger.to_json())

        assert orchestrator.run_sync.call_count == 2
        assert orchestrator.run_sync.call_args.kwargs["trigger_type"] == TriggerType.WEBHOOK_PRODUCT_UPDATE.value

    def test_webhook_payload_routes_to_ingestion(self, consumer, orchestrator, ingestion):
        trigger = SyncTrigger(
            merchantId="m-1",
            triggerType=TriggerType.WEBHOOK_PRODUCT_UPDATE.value,
            webhookPayload={"productUpdates": [{"externalId": "p-1", "stock": 0}]},
            source="shopify",
        )

        consumer.handle_message(trigger.to_json())

        ingestion.process.assert_called_once_with(
            {"productUpdates": [{"externalId": "p-1", "stock": 0}], "merchantId": "m-1"},
            source="shopify",
        )
        orchestrator.run_sync.assert_not_called()


class TestPollOnce:
    def test_success_acks_message(self, consumer, orchestrator, queue, session_factory):
        _send(session_factory, queue, _manual_trigger())

        assert consumer.poll_once() == 1
        assert orchestrator.run_sync.call_count == 1
        assert _rows(session_factory) == []

    def test_empty_queue(self, consumer):
        assert consumer.poll_once() == 0

    def test_failure_is_not_acked_and_reraised(self, consumer, orchestrator, queue, session_factory):
        orchestrator.run_sync.side_effect = RuntimeError("platform exploded")
        _send(session_factory, queue, _manual_trigger())

        with pytest.raises(RuntimeError):
            consumer.poll_once()

        rows = _rows(session_factory)
        assert len(rows) == 1
        assert rows[0].status == "queued"
        assert rows[0].receive_count == 1
        assert "platform exploded" in rows[0].last_error

    def test_malformed_message_kept_with_error(self, consumer, orchestrator, ingestion, queue, session_factory):
        _send(session_factory, queue, "{broken")

        with pytest.raises(IngestionPayloadError):
            consumer.poll_once()

        orchestrator.run_sync.assert_not_called()
        ingestion.process.assert_not_called()
        rows = _rows(session_factory)
        assert rows[0].body == "{broken"
        assert "IngestionPayloadError" in rows[0].last_error

    def test_repeated_failures_move_to_dead_letter(self, consumer, queue, session_factory):
        """max_receive_count(2) 회 실패 후 다음 수신 시 dead_letter 로 격리"""
        _send(session_factory, queue, "{broken")

        for _ in range(2):
            with pytest.raises(IngestionPayloadError):
                consumer.poll_once()

        assert consumer.poll_once() == 0
        rows = _rows(session_factory)
        assert rows[0].status == "dead_letter"
        with session_factory() as session:
            assert queue.count(session, "dead_letter") == 1
            assert queue.count(session, "queued") == 0

    def test_poison_message_does_not_starve_batch_siblings(self, orchestrator, ingestion, queue, session_factory):
        """배치 안의 깨진 메시지가 정상 메시지 처리를 막지 않는다"""
        consumer = TriggerQueueConsumer(orchestrator, ingestion, queue=queue, session_factory=session_factory, batch_size=5)
        _send(session_factory, queue, "{broken")
        _send(session_factory, queue, _manual_trigger())

        with pytest.raises(IngestionPayloadError):
            consumer.poll_once()

        orchestrator.run_sync.assert_called_once_with(
            "c-1", "m-1", "GOOGLE_ADS", trigger_type=TriggerType.MANUAL_SYNC.value
        )
        rows = _rows(session_factory)
        assert [row.body for row in rows] == ["{broken"]
        assert "IngestionPayloadError" in rows[0].last_error

        # 남은 깨진 메시지만 재전달되다가 dead_letter 로 격리된다
        with pytest.raises(IngestionPayloadError):
            consumer.poll_once()
        assert consumer.poll_once() == 0
        assert orchestrator.run_sync.call_count == 1
        with session_factory() as session:
            assert queue.count(session, "dead_letter") == 1

    def test_invisible_message_not_redelivered(self, orchestrator, ingestion, session_factory):
        queue = TriggerQueue(visibility_timeout_seconds=300, max_receive_count=5)
        consumer = TriggerQueueConsumer(orchestrator, ingestion, queue=queue, session_factory=session_factory)
        orchestrator.run_sync.side_effect = RuntimeError("boom")
        _send(session_factory, queue, _manual_trigger())

        with pytest.raises(RuntimeError):
            consumer.poll_once()

        assert consumer.poll_once() == 0
        assert orchestrator.run_sync.call_count == 1


def test_run_forever_survives_poll_errors(monkeypatch, consumer):
    monkeypatch.setattr(settings, "queue_poll_interval_seconds", 0)
    stop = threading.Event()
    calls = []

    def fake_poll():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("transient db error")
        stop.set()
        return 0

    consumer.poll_once = fake_poll
    consumer.run_forever(stop)

    assert len(calls) == 2
