import logging
from typing import Any, Optional

import httpx

from catalog_sync.settings import settings

logger = logging.getLogger(__name__)


class MerchantNotifier:
    """
    동기화 결과를 가맹점에 알린다.
    webhook URL 이 없으면 로그만 남긴다. 전송 실패는 호출자에게 전파하지 않는다.
    """

    def __init__(self, webhook_url: Optional[str] = None, transport: Optional[httpx.BaseTransport] = None):
        self.webhook_url = settings.notification_webhook_url if webhook_url is None else webhook_url
        self.transport = transport

    def _send(self, payload: dict[str, Any]) -> None:
        if not self.webhook_url:
            logger.info(f"[NOTIFY] {payload}")
            return
        try:
            with httpx.Client(timeout=httpx.Timeout(10.0, connect=5.0), transport=self.transport) as client:
                resp = client.post(self.webhook_url, json=payload)
                resp.raise_for_status()
        except Exception as e:
            logger.error(f"[NOTIFY] Failed to deliver notification for merchant {payload.get('merchantId')}: {e}")

    def notify_sync_success(self, merchant_id: str, catalog_name: str, platform: str) -> None:
        self._send({
            "event": "CATALOG_SYNC_SUCCEEDED",
            "merchantId": merchant_id,
            "catalogName": catalog_name,
            "platform": platform,
        })

    def notify_sync_failure(
        self,
        merchant_id: str,
        catalog_name: str,
        platform: str,
        message: str,
        code: Optional[str] = None,
    ) -> None:
        self._send({
            "event": "CATALOG_SYNC_FAILED",
            "merchantId": merchant_id,
            "catalogName": catalog_name,
            "platform": platform,
            "message": message,
            "code": code,
        })
