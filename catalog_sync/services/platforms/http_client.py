"""
HTTP 기반 광고 플랫폼 피드 제출 클라이언트

상태 코드 분류:
- 2xx: 성공
- 408, 429, 5xx: 일시적 오류 (재시도 대상)
- 그 외 4xx: 영구 오류
- 타임아웃/연결 오류: 일시적 오류
"""
import logging
from typing import Any, Optional

import httpx

from catalog_sync.enums import AdPlatform
from catalog_sync.services.exceptions import ConfigurationError
from catalog_sync.services.platforms.base import AdPlatformClient, SubmitResult
from catalog_sync.settings import settings

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 429}


def is_transient_status(status_code: int) -> bool:
    return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


class HttpAdPlatformClient:
    def __init__(
        self,
        platform: str,
        endpoint: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.platform = platform
        self.endpoint = endpoint
        timeout_s = timeout if timeout is not None else settings.platform_request_timeout_seconds
        self.timeout = httpx.Timeout(timeout_s, connect=10.0)
        self.transport = transport

    def _headers(self, credentials: dict[str, Any]) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = credentials.get("access_token") or credentials.get("api_key")
        if token:
            headers["Authorization"] = f"Bearer {token}"
        extra = credentials.get("headers")
        if isinstance(extra, dict):
            headers.update({str(k): str(v) for k, v in extra.items()})
        return headers

    def submit_feed(self, feed_url: str, credentials: dict[str, Any], catalog_name: str) -> SubmitResult:
        payload = {"feedUrl": feed_url, "catalogName": catalog_name}
        account_id = credentials.get("account_id")
        if account_id:
            payload["accountId"] = account_id

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(self.endpoint, json=payload, headers=self._headers(credentials))
        except httpx.TimeoutException as e:
            return SubmitResult.failure(f"Timeout submitting feed to {self.platform}: {e}", code="TIMEOUT")
        except httpx.TransportError as e:
            return SubmitResult.failure(f"Network error submitting feed to {self.platform}: {e}", code="NETWORK_ERROR")

        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {"_raw": resp.text}
        if not isinstance(data, dict):
            data = {"_raw": data}

        if resp.status_code < 300:
            return SubmitResult.ok(data)

        message = str(data.get("message") or data.get("error") or resp.text or f"HTTP {resp.status_code}")
        code = str(data.get("code") or f"HTTP_{resp.status_code}")
        return SubmitResult.failure(
            message,
            code=code,
            is_transient=is_transient_status(resp.status_code),
            response=data,
        )


def build_platform_clients() -> dict[str, AdPlatformClient]:
    """설정에 엔드포인트가 있는 플랫폼만 클라이언트를 만든다."""
    clients: dict[str, AdPlatformClient] = {}
    for platform in AdPlatform:
        endpoint = settings.get_platform_endpoint(platform.value)
        if endpoint:
            clients[platform.value] = HttpAdPlatformClient(platform.value, endpoint)
    return clients


def get_platform_client(clients: dict[str, AdPlatformClient], platform: AdPlatform | str) -> AdPlatformClient:
    key = platform.value if isinstance(platform, AdPlatform) else str(platform)
    client = clients.get(key)
    if client is None:
        raise ConfigurationError(f"No platform client configured for {key}", platform=key)
    return client
